"""Device fingerprinting and the combined visitor hash.

The page collects the raw attributes in the browser (see ``PROBE_JS``) and posts
them; everything derived from them is computed here so the result does not
depend on which page version sent the probe.
"""
import base64
import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from models import IP_UNAVAILABLE

NO_WEBGL = "no-webgl"
WEBGL_ERROR = "webgl-error"
NO_CONNECTION_API = "no-connection-api"
FINGERPRINT_LENGTH = 32
FEATURE_NAMES = ("localStorage", "sessionStorage", "indexedDB", "webWorker", "webSocket", "geolocation",
                 "notification", "serviceWorker")

_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")


@dataclass
class DeviceProbe:
    screen_width: int = 0
    screen_height: int = 0
    color_depth: int = 0
    avail_width: int = 0
    avail_height: int = 0
    user_agent: str = ""
    language: str = ""
    languages: List[str] = field(default_factory=list)
    platform: str = ""
    cookie_enabled: bool = False
    do_not_track: Optional[str] = None
    timezone: str = ""
    timezone_offset: int = 0
    canvas: str = ""
    webgl: str = NO_WEBGL
    hardware_concurrency: Any = None
    device_memory: Any = None
    connection: Optional[Dict[str, Any]] = None
    plugins: List[str] = field(default_factory=list)
    features: Dict[str, bool] = field(default_factory=dict)

    @property
    def screen(self) -> str:
        return f"{self.screen_width}x{self.screen_height}"

    @classmethod
    def from_payload(cls, data: Dict[str, Any]):
        """Build a probe from the JSON posted by ``PROBE_JS``; missing or misshapen parts fall back to defaults."""
        scr = _as(data.get("screen"), dict, {})
        return cls(screen_width=_as(scr.get("width"), int, 0), screen_height=_as(scr.get("height"), int, 0),
                   color_depth=_as(scr.get("colorDepth"), int, 0), avail_width=_as(scr.get("availWidth"), int, 0),
                   avail_height=_as(scr.get("availHeight"), int, 0),
                   user_agent=_as(data.get("userAgent"), str, ""), language=_as(data.get("language"), str, ""),
                   languages=[str(lang) for lang in _as(data.get("languages"), list, [])], platform=_as(data.get("platform"), str, ""),
                   cookie_enabled=bool(data.get("cookieEnabled", False)), do_not_track=_as(data.get("doNotTrack"), str, None),
                   timezone=_as(data.get("timezone"), str, ""), timezone_offset=_as(data.get("timezoneOffset"), int, 0),
                   canvas=_as(data.get("canvas"), str, ""), webgl=webgl_signature(data.get("webgl")),
                   hardware_concurrency=_as(data.get("hardwareConcurrency"), int, None), device_memory=_as(data.get("deviceMemory"), (int, float), None),
                   connection=_as(data.get("connection"), dict, None),
                   plugins=[str(p) for p in _as(data.get("plugins"), list, [])],
                   features={str(k): bool(v) for k, v in _as(data.get("features"), dict, {}).items()})


def _as(value, kind, default):
    """``value`` when it has the expected type, ``default`` otherwise (bools are not ints)."""
    if isinstance(value, bool) and kind is not bool: return default
    return value if isinstance(value, kind) else default


def webgl_signature(raw) -> str:
    """``vendor_renderer`` for a probed context, sentinels pass through unchanged."""
    if isinstance(raw, str): return raw or NO_WEBGL
    if not isinstance(raw, dict): return NO_WEBGL
    if raw.get("error"): return WEBGL_ERROR
    return f"{raw.get('vendor')}_{raw.get('renderer')}"

def connection_info(conn: Optional[Dict[str, Any]]):
    if conn is None: return NO_CONNECTION_API
    return { "effectiveType": conn.get("effectiveType") or "unknown", "downlink": conn.get("downlink") or "unknown",
             "rtt": conn.get("rtt") or "unknown" }

def supported_features(features: Dict[str, bool]) -> str:
    return ",".join(name for name in FEATURE_NAMES if features.get(name))

def fingerprint_attributes(probe: DeviceProbe) -> Dict[str, Any]:
    # key order is part of the fingerprint
    return { "screen": f"{probe.screen_width}x{probe.screen_height}x{probe.color_depth}",
             "availScreen": f"{probe.avail_width}x{probe.avail_height}",
             "userAgent": probe.user_agent, "language": probe.language, "languages": ",".join(probe.languages),
             "platform": probe.platform, "cookieEnabled": probe.cookie_enabled, "doNotTrack": probe.do_not_track,
             "timezone": probe.timezone, "timezoneOffset": probe.timezone_offset,
             "canvas": probe.canvas, "webgl": probe.webgl,
             "hardwareConcurrency": probe.hardware_concurrency or "unknown", "deviceMemory": probe.device_memory or "unknown",
             "connection": connection_info(probe.connection),
             "plugins": ",".join(probe.plugins)[:100], "features": supported_features(probe.features) }

def generate_fingerprint(probe: DeviceProbe) -> str:
    serialized = json.dumps(fingerprint_attributes(probe), separators=(",", ":"), ensure_ascii=False)
    encoded = base64.b64encode(serialized.encode("utf-8")).decode("ascii")
    return _NON_ALNUM.sub("", encoded)[:FINGERPRINT_LENGTH]


def _utf16_units(text: str):
    raw = text.encode("utf-16-le")
    for i in range(0, len(raw), 2): yield raw[i] | (raw[i + 1] << 8)

def rolling_hash32(text: str) -> int:
    """31-multiplier rolling hash with signed 32-bit wraparound on every step."""
    h = 0
    for unit in _utf16_units(text):
        h = (h * 31 + unit) & 0xFFFFFFFF
    return h - 0x100000000 if h & 0x80000000 else h

def to_base36(n: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    if n == 0: return "0"
    out = []
    while n:
        n, rem = divmod(n, 36)
        out.append(digits[rem])
    return "".join(reversed(out))

def visitor_hash(fingerprint: str, ip: Optional[str]) -> str:
    return to_base36(abs(rolling_hash32(f"{fingerprint}_{ip or IP_UNAVAILABLE}")))


def browser_name(user_agent: str) -> str:
    ua = user_agent or ""
    if "Chrome" in ua and "Edg" not in ua: return "Google Chrome"
    if "Firefox" in ua: return "Mozilla Firefox"
    if "Safari" in ua and "Chrome" not in ua: return "Safari"
    if "Edg" in ua: return "Microsoft Edge"
    if "Opera" in ua or "OPR" in ua: return "Opera"
    return "Unknown"

def get_device_info(ua_string: str) -> str:
    ua = (ua_string or "").lower()
    device = "Mobile" if "mobi" in ua or "iphone" in ua else "Tablet" if "ipad" in ua or "tablet" in ua else "Desktop"
    os = ("Windows" if "windows" in ua else "iOS" if "iphone" in ua or "ipad" in ua else
          "macOS" if "macintosh" in ua or "mac os" in ua else "Android" if "android" in ua else "Linux" if "linux" in ua else "Unknown")
    return f"{device} ({os})"


PROBE_JS = """
    function collectProbe() {
        const canvas = document.createElement('canvas'); const ctx = canvas.getContext('2d');
        ctx.textBaseline = 'top'; ctx.font = '14px Arial'; ctx.fillText('Device fingerprint test', 2, 2);
        let webgl = 'no-webgl';
        try { const c = document.createElement('canvas'); const gl = c.getContext('webgl') || c.getContext('experimental-webgl');
              if (gl) { webgl = { vendor: gl.getParameter(gl.VENDOR), renderer: gl.getParameter(gl.RENDERER) }; }
        } catch (e) { webgl = 'webgl-error'; }
        const conn = navigator.connection ? { effectiveType: navigator.connection.effectiveType,
            downlink: navigator.connection.downlink, rtt: navigator.connection.rtt } : null;
        const plugins = []; for (let i = 0; i < navigator.plugins.length; i++) { plugins.push(navigator.plugins[i].name); }
        return { screen: { width: screen.width, height: screen.height, colorDepth: screen.colorDepth,
                           availWidth: screen.availWidth, availHeight: screen.availHeight },
            userAgent: navigator.userAgent, language: navigator.language, languages: navigator.languages || [],
            platform: navigator.platform, cookieEnabled: navigator.cookieEnabled, doNotTrack: navigator.doNotTrack,
            timezone: Intl.DateTimeFormat().resolvedOptions().timeZone, timezoneOffset: new Date().getTimezoneOffset(),
            canvas: canvas.toDataURL(), webgl: webgl, hardwareConcurrency: navigator.hardwareConcurrency || null,
            deviceMemory: navigator.deviceMemory || null, connection: conn, plugins: plugins,
            features: { localStorage: typeof(Storage) !== 'undefined', sessionStorage: typeof(sessionStorage) !== 'undefined',
                indexedDB: typeof(indexedDB) !== 'undefined', webWorker: typeof(Worker) !== 'undefined',
                webSocket: typeof(WebSocket) !== 'undefined', geolocation: 'geolocation' in navigator,
                notification: 'Notification' in window, serviceWorker: 'serviceWorker' in navigator } };
    }
"""
