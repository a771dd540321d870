"""Visitor records as they are persisted.

Field names on disk stay camelCase so data written by older versions of the
portfolio page (browser localStorage dumps) loads unchanged.
"""
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import uuid4

UNKNOWN = "Unknown"
IP_UNAVAILABLE = "ip-unavailable"
IP_ERROR = "Error fetching IP"
IP_SENTINELS = {UNKNOWN, IP_UNAVAILABLE, IP_ERROR, "", None}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)

def to_iso(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")

def parse_iso(value: Optional[str]) -> Optional[datetime]:
    if not value: return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (TypeError, ValueError): return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


@dataclass
class Location:
    country: str = UNKNOWN
    region: str = UNKNOWN
    city: str = UNKNOWN
    timezone: str = UNKNOWN
    isp: str = UNKNOWN
    latitude: Any = UNKNOWN
    longitude: Any = UNKNOWN

    @classmethod
    def errored(cls):
        return cls(country="Error", region="Error", city="Error", timezone="Error", isp="Error")

    @classmethod
    def from_ipapi(cls, data: Dict[str, Any]):
        """Map an ipapi.co payload, every missing field becomes 'Unknown'."""
        return cls(country=data.get("country_name") or UNKNOWN, region=data.get("region") or UNKNOWN,
                   city=data.get("city") or UNKNOWN, timezone=data.get("timezone") or UNKNOWN,
                   isp=data.get("org") or UNKNOWN, latitude=data.get("latitude") or UNKNOWN,
                   longitude=data.get("longitude") or UNKNOWN)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]):
        data = data or {}
        return cls(**{k: data[k] for k in cls.__dataclass_fields__ if data.get(k) is not None})

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Observation:
    """One observed page visit, as handed to the store and the sync policy."""
    fingerprint: str
    ip: str
    user_agent: str
    browser: str
    platform: str
    screen: str
    language: str
    timezone: str = UNKNOWN
    location: Location = field(default_factory=Location)
    visitor_hash: Optional[str] = None
    timestamp: datetime = field(default_factory=utc_now)

    def to_payload(self) -> Dict[str, Any]:
        """Body of POST {BASE_URL}/visitors."""
        return { "ip": self.ip, "userAgent": self.user_agent, "location": self.location.to_dict(), "browser": self.browser,
                 "platform": self.platform, "screen": self.screen, "language": self.language,
                 "fingerprint": self.fingerprint, "timestamp": to_iso(self.timestamp) }


@dataclass
class VisitorRecord:
    id: str
    timestamp: str
    ip: str
    user_agent: str
    location: Location
    browser: str
    platform: str
    screen: str
    language: str
    fingerprint: str
    visits: int = 1
    first_visit: str = ""
    last_visit: str = ""

    @property
    def visit_count(self) -> int: return self.visits

    @classmethod
    def from_observation(cls, obs: Observation):
        now = to_iso(obs.timestamp)
        return cls(id=uuid4().hex, timestamp=now, ip=obs.ip, user_agent=obs.user_agent, location=obs.location,
                   browser=obs.browser, platform=obs.platform, screen=obs.screen, language=obs.language,
                   fingerprint=obs.fingerprint, visits=1, first_visit=now, last_visit=now)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        return cls(id=str(data.get("id", "")), timestamp=data.get("timestamp", ""), ip=data.get("ip", UNKNOWN),
                   user_agent=data.get("userAgent", ""), location=Location.from_dict(data.get("location")),
                   browser=data.get("browser", UNKNOWN), platform=data.get("platform", UNKNOWN),
                   screen=data.get("screen", ""), language=data.get("language", ""),
                   fingerprint=data.get("fingerprint", ""), visits=int(data.get("visits", 1)),
                   first_visit=data.get("firstVisit", ""), last_visit=data.get("lastVisit", ""))

    def to_dict(self) -> Dict[str, Any]:
        return { "id": self.id, "timestamp": self.timestamp, "ip": self.ip, "userAgent": self.user_agent,
                 "location": self.location.to_dict(), "browser": self.browser, "platform": self.platform,
                 "screen": self.screen, "language": self.language, "fingerprint": self.fingerprint,
                 "visits": self.visits, "firstVisit": self.first_visit, "lastVisit": self.last_visit }


@dataclass
class DeviceInfo:
    fingerprint: str = ""
    user_agent: str = ""
    platform: str = ""
    screen: str = ""
    timezone: str = ""

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]):
        data = data or {}
        return cls(fingerprint=data.get("fingerprint", ""), user_agent=data.get("userAgent", ""),
                   platform=data.get("platform", ""), screen=data.get("screen", ""), timezone=data.get("timezone", ""))

    def to_dict(self) -> Dict[str, Any]:
        return { "fingerprint": self.fingerprint, "userAgent": self.user_agent, "platform": self.platform,
                 "screen": self.screen, "timezone": self.timezone }


@dataclass
class VisitorHashEntry:
    visitor_hash: str
    total_visits: int = 0
    first_visit: Optional[str] = None
    last_visit: Optional[str] = None
    is_returning_visitor: bool = False
    device_info: DeviceInfo = field(default_factory=DeviceInfo)

    @property
    def visit_count(self) -> int: return self.total_visits

    @classmethod
    def from_observation(cls, obs: Observation):
        now = to_iso(obs.timestamp)
        return cls(visitor_hash=obs.visitor_hash, total_visits=1, first_visit=now, last_visit=now, is_returning_visitor=False,
                   device_info=DeviceInfo(fingerprint=obs.fingerprint, user_agent=obs.user_agent[:100],
                                          platform=obs.platform, screen=obs.screen, timezone=obs.timezone))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        return cls(visitor_hash=data.get("visitorHash", ""), total_visits=int(data.get("totalVisits", 0)),
                   first_visit=data.get("firstVisit"), last_visit=data.get("lastVisit"),
                   is_returning_visitor=bool(data.get("isReturningVisitor", False)),
                   device_info=DeviceInfo.from_dict(data.get("deviceInfo")))

    def to_dict(self) -> Dict[str, Any]:
        return { "visitorHash": self.visitor_hash, "totalVisits": self.total_visits, "firstVisit": self.first_visit,
                 "lastVisit": self.last_visit, "isReturningVisitor": self.is_returning_visitor,
                 "deviceInfo": self.device_info.to_dict() }


@dataclass
class Stats:
    total_visitors: int = 0
    total_visits: int = 0
    new_visitors: int = 0
    returning_visitors: int = 0
    avg_visits_per_visitor: float = 0
    most_recent_visit: Optional[str] = None
