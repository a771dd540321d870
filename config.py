import os
import pytz

def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None: return default
    return raw.strip().lower() in ("1", "true", "yes", "on")

REDIS_URL = os.environ.get("REDIS_URL", "redis://127.0.0.1:6379")
LOCAL_TIMEZONE = pytz.timezone(os.environ.get("LOCAL_TIMEZONE", "America/Chicago"))
LOGS_DIR = os.environ.get("LOGS_DIR", "/logs")

# storage keys, kept compatible with the data the portfolio page wrote to localStorage
VISITOR_DATA_KEY = "visitorData"
ALL_VISITORS_KEY = "portfolioAllVisitors"
SIMPLE_TRACKING_KEY = "portfolioSimpleTracking"
ENGAGEMENT_KEY = "portfolioEngagement"

IP_LOOKUP_URL = "https://api.ipify.org?format=json"
LOCATION_LOOKUP_URL = "https://ipapi.co/json/"
LOCATION_LOOKUP_URL_FOR_IP = "https://ipapi.co/{ip}/json/"
GEO_TIMEOUT = float(os.environ.get("GEO_TIMEOUT", "3.0"))
GEO_CACHE_TTL = 604800 # 7 days

API_BASE_URL = os.environ.get("VISITOR_API_BASE_URL", "").rstrip("/")
API_ENDPOINTS = { "visitors": "/visitors", "visitor_detail": "/visitors/{id}", "visitor_stats": "/visitors/stats" }
API_HEADERS = { "Content-Type": "application/json", "Accept": "application/json" }
if (API_TOKEN := os.environ.get("VISITOR_API_TOKEN")): API_HEADERS["Authorization"] = f"Bearer {API_TOKEN}"
API_TIMEOUT = float(os.environ.get("VISITOR_API_TIMEOUT", "10.0"))
USE_FALLBACK = _env_flag("VISITOR_USE_FALLBACK", True)
SYNC_MODE = os.environ.get("VISITOR_SYNC_MODE", "local") # "local" | "remote"

IDENTITY_POLICY = os.environ.get("VISITOR_IDENTITY_POLICY", "fingerprint_or_ip") # "fingerprint_or_ip" | "fingerprint"

DASHBOARD_REFRESH_SECONDS = float(os.environ.get("DASHBOARD_REFRESH_SECONDS", "30"))
ONLINE_WINDOW_SECONDS = 300
TOP_COUNTRIES = 10

TYPING_TEXTS = ["Nguyen Quoc Hung", "Web Developer", "UI/UX Designer", "Full-stack Developer"]

COUNTRY_FLAGS = { "Vietnam": "🇻🇳", "United States": "🇺🇸", "United Kingdom": "🇬🇧", "Germany": "🇩🇪", "France": "🇫🇷",
                  "Japan": "🇯🇵", "China": "🇨🇳", "India": "🇮🇳", "Australia": "🇦🇺", "Canada": "🇨🇦" }

BROWSER_ICONS = { "Google Chrome": "bi-browser-chrome", "Mozilla Firefox": "bi-browser-firefox", "Safari": "bi-browser-safari",
                  "Microsoft Edge": "bi-browser-edge", "Opera": "bi-browser-opera" }

CHART_COLORS = ["#FF6384", "#36A2EB", "#FFCE56", "#4BC0C0", "#9966FF", "#FF9F40"]
