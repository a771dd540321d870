import asyncio
from datetime import datetime, timezone

import fakeredis
import httpx
import pytest
from fakeredis import aioredis

from models import Location, Observation
from persistence import JsonStorage
from store import IdentityPolicy, VisitorStore

IPAPI_PAYLOAD = { "country_name": "Vietnam", "region": "Ho Chi Minh", "city": "Ho Chi Minh City",
                  "timezone": "Asia/Ho_Chi_Minh", "org": "Viettel Group", "latitude": 10.82, "longitude": 106.63 }

CHROME_UA = ("Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) "
             "Chrome/124.0.0.0 Safari/537.36")


def run(coro):
    return asyncio.run(coro)

def at(minute: int, hour: int = 12, day: int = 1):
    return datetime(2024, 5, day, hour, minute, tzinfo=timezone.utc)

def make_store(server, policy=IdentityPolicy.FINGERPRINT_OR_IP):
    """Store over a fresh client; build it inside the coroutine that uses it."""
    return VisitorStore(JsonStorage(aioredis.FakeRedis(server=server)), policy)

def observation(fingerprint="AB12", ip="1.2.3.4", when=None, country="Vietnam", city="Hanoi", browser="Google Chrome",
                platform="Win32", user_agent=CHROME_UA, visitor_hash=None):
    return Observation(fingerprint=fingerprint, ip=ip, user_agent=user_agent, browser=browser, platform=platform,
                       screen="1920x1080", language="en-US", timezone="Asia/Ho_Chi_Minh",
                       location=Location(country=country, region="North", city=city, timezone="Asia/Ho_Chi_Minh", isp="VNPT"),
                       visitor_hash=visitor_hash, timestamp=when or at(0))

def geo_transport(ip="203.0.113.7", location=None, fail_ip=False, fail_location=False, calls=None):
    def handler(request: httpx.Request):
        if calls is not None: calls.append(f"{request.url.host}{request.url.path}")
        if request.url.host == "api.ipify.org":
            if fail_ip: return httpx.Response(503)
            return httpx.Response(200, json={"ip": ip})
        if request.url.host == "ipapi.co":
            if fail_location: raise httpx.ConnectTimeout("timed out", request=request)
            return httpx.Response(200, json=IPAPI_PAYLOAD if location is None else location)
        return httpx.Response(404)
    return httpx.MockTransport(handler)


@pytest.fixture
def server():
    return fakeredis.FakeServer()

@pytest.fixture
def probe_payload():
    return { "screen": {"width": 1920, "height": 1080, "colorDepth": 24, "availWidth": 1920, "availHeight": 1040},
             "userAgent": CHROME_UA, "language": "en-US", "languages": ["en-US", "vi"], "platform": "Win32",
             "cookieEnabled": True, "doNotTrack": None, "timezone": "Asia/Ho_Chi_Minh", "timezoneOffset": -420,
             "canvas": "data:image/png;base64,iVBORw0KGgoAAAANSUhEUgAAASwAAAC", "webgl": {"vendor": "Google Inc.", "renderer": "ANGLE"},
             "hardwareConcurrency": 8, "deviceMemory": 8, "connection": {"effectiveType": "4g", "downlink": 10, "rtt": 50},
             "plugins": ["PDF Viewer", "Chrome PDF Viewer"],
             "features": {"localStorage": True, "sessionStorage": True, "indexedDB": True, "webWorker": True,
                          "webSocket": True, "geolocation": True, "notification": False, "serviceWorker": True} }
