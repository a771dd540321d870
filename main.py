import time, subprocess, modal
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
import config

app = modal.App("portfolio-visitor-analytics")

volume = modal.Volume.from_name("visitor-redis-data", create_if_missing=True)
logs_volume = modal.Volume.from_name("visitor-app-logs", create_if_missing=True)

app_image = (modal.Image.debian_slim(python_version="3.12")
    .pip_install("python-fasthtml>=0.12", "httpx>=0.27", "redis>=5.3.0", "pytz")
    .apt_install("redis-server")
    .add_local_python_source("config", "models", "fingerprint", "geo", "persistence", "store", "stats", "sync",
                             "fasthtml_components", "dashboard", "widget", "routes"))

def setup_logging(logs_dir: str = config.LOGS_DIR):
    """File (rotating) and console logging for the visitor_app logger"""
    Path(logs_dir).mkdir(parents=True, exist_ok=True)
    logger = logging.getLogger("visitor_app")
    logger.setLevel(logging.INFO)
    logger.handlers = []

    # max 10MB per file, keep 5 backups
    file_handler = RotatingFileHandler(f"{logs_dir}/app.log", maxBytes=10*1024*1024, backupCount=5)
    file_handler.setFormatter(logging.Formatter('[%(asctime)s] [%(levelname)s] %(message)s'))

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter('[%(levelname)s] %(message)s'))

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)
    return logger

# one container: upserts are only serialized within a process
@app.function(image=app_image, max_containers=1, volumes={"/data": volume, config.LOGS_DIR: logs_volume}, timeout=3600)
@modal.concurrent(max_inputs=1000)
@modal.asgi_app()
def web():
    from redis.asyncio import Redis
    import routes

    logger = setup_logging()
    logger.info("=" * 60)
    logger.info("🚀 Portfolio visitor analytics starting")
    logger.info("=" * 60)

    # redis persisted to the volume, snapshot every minute if at least 1 change
    redis_process = subprocess.Popen(
        ["redis-server", "--protected-mode", "no", "--bind", "127.0.0.1", "--port", "6379", "--dir", "/data",
         "--save", "60", "1"], stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
    time.sleep(1)
    redis = Redis.from_url(config.REDIS_URL)
    logger.info("Redis server started with persistent storage")

    async def on_shutdown():
        logger.info("Shutting down... Saving Redis data")
        try:
            await redis.save()
            logger.info("Redis data saved successfully")
        except Exception as e: logger.error(f"Error saving Redis data: {e}")
        await redis.aclose()
        redis_process.terminate()
        redis_process.wait()
        await volume.commit.aio()
        await logs_volume.commit.aio()
        logger.info("Logs and Volume committed - data persisted")

    return routes.create_app(redis, on_shutdown=[on_shutdown])
