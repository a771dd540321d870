import json, logging
from typing import Any
from redis.exceptions import RedisError

log = logging.getLogger("visitor_app")


class JsonStorage:
    """JSON values under plain redis keys, the server-side stand-in for browser localStorage.

    Reads never raise: a missing key, a redis error, unparsable JSON or a value of the
    wrong shape all come back as ``default``. Writes report failure by returning False.
    """

    def __init__(self, redis):
        self.redis = redis

    async def load(self, key: str, default: Any = None, expect: type = None):
        try:
            raw = await self.redis.get(key)
        except RedisError as e:
            log.error(f"[STORE ERROR] Failed to read {key}: {e}")
            return default
        if raw is None: return default
        try:
            value = json.loads(raw)
        except (TypeError, ValueError) as e:
            log.error(f"[STORE ERROR] {key} holds malformed JSON: {e}")
            return default
        if expect is not None and not isinstance(value, expect):
            log.error(f"[STORE ERROR] {key} holds {type(value).__name__}, expected {expect.__name__}")
            return default
        return value

    async def save(self, key: str, value: Any) -> bool:
        try:
            await self.redis.set(key, json.dumps(value))
            return True
        except (RedisError, TypeError, ValueError) as e:
            log.error(f"[STORE ERROR] Failed to save {key}: {e}")
            return False
