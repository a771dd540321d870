"""Visitor Record Store.

Owns both persisted schemas (the ``visitorData`` array read by the admin dashboard and
the ``portfolioAllVisitors`` map read by the page counter) and applies one identity
policy to both. Consumers get the store injected; nothing else touches the keys.
"""
import asyncio, logging
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

import config
from models import (IP_SENTINELS, Observation, VisitorHashEntry, VisitorRecord, to_iso, utc_now)
from persistence import JsonStorage

log = logging.getLogger("visitor_app")


class IdentityPolicy(str, Enum):
    FINGERPRINT_OR_IP = "fingerprint_or_ip"
    FINGERPRINT = "fingerprint"

    @classmethod
    def from_config(cls, value: str):
        try: return cls(value)
        except ValueError:
            log.warning(f"[STORE] Unknown identity policy {value!r}, using {cls.FINGERPRINT_OR_IP.value}")
            return cls.FINGERPRINT_OR_IP

    def matches(self, record: VisitorRecord, obs: Observation) -> bool:
        if record.fingerprint and record.fingerprint == obs.fingerprint: return True
        # sentinel addresses would merge every visitor whose lookup failed
        return self is IdentityPolicy.FINGERPRINT_OR_IP and obs.ip not in IP_SENTINELS and record.ip == obs.ip


class StoreEvent(str, Enum):
    VISITOR = "visitor"
    HASH = "hash"
    CLEAR = "clear"


def upsert(items: List, match: Callable, create: Callable, touch: Callable) -> Tuple[object, bool]:
    """Update the first matching item in place or append a new one. Returns (item, created)."""
    for item in items:
        if match(item):
            touch(item)
            return item, False
    item = create()
    items.append(item)
    return item, True


class VisitorStore:
    def __init__(self, storage: JsonStorage, policy: IdentityPolicy = IdentityPolicy.FINGERPRINT_OR_IP, clock=utc_now):
        self.storage, self.policy, self.clock = storage, policy, clock
        self._lock = asyncio.Lock()
        self._listeners: List[Callable[[StoreEvent], None]] = []

    def subscribe(self, listener: Callable[[StoreEvent], None]) -> Callable[[], None]:
        """Register a change listener; call the returned function to unsubscribe."""
        self._listeners.append(listener)
        def unsubscribe():
            if listener in self._listeners: self._listeners.remove(listener)
        return unsubscribe

    def _notify(self, event: StoreEvent):
        for listener in list(self._listeners):
            try: listener(event)
            except Exception: log.exception(f"[STORE] Listener failed on {event.value}")

    async def load_visitors(self) -> List[VisitorRecord]:
        visitors = []
        for raw in await self.storage.load(config.VISITOR_DATA_KEY, [], expect=list):
            try: visitors.append(VisitorRecord.from_dict(raw))
            except (AttributeError, TypeError, ValueError) as e: log.error(f"[STORE ERROR] Skipping malformed visitor: {e}")
        return visitors

    async def load_hash_entries(self) -> Dict[str, VisitorHashEntry]:
        entries = {}
        for key, raw in (await self.storage.load(config.ALL_VISITORS_KEY, {}, expect=dict)).items():
            try: entries[key] = VisitorHashEntry.from_dict(raw)
            except (AttributeError, TypeError, ValueError) as e: log.error(f"[STORE ERROR] Skipping malformed entry {key}: {e}")
        return entries

    async def find_visitor(self, visitor_id: str) -> Optional[VisitorRecord]:
        return next((v for v in await self.load_visitors() if v.id == str(visitor_id)), None)

    async def find_by_fingerprint(self, fingerprint: str) -> Optional[VisitorRecord]:
        if not fingerprint: return None
        return next((v for v in await self.load_visitors() if v.fingerprint == fingerprint), None)

    async def upsert_visitor(self, obs: Observation) -> Tuple[VisitorRecord, bool]:
        now = to_iso(obs.timestamp)
        def touch(record: VisitorRecord):
            record.visits += 1
            record.last_visit = now
            record.user_agent = obs.user_agent
        async with self._lock:
            visitors = await self.load_visitors()
            record, created = upsert(visitors, lambda r: self.policy.matches(r, obs), lambda: VisitorRecord.from_observation(obs), touch)
            await self.storage.save(config.VISITOR_DATA_KEY, [v.to_dict() for v in visitors])
        log.info(f"[VISITOR] {'New' if created else 'Returning'}: {obs.ip} | {record.location.city}, {record.location.country} | visits={record.visits}")
        self._notify(StoreEvent.VISITOR)
        return record, created

    async def upsert_hash_entry(self, obs: Observation) -> Tuple[VisitorHashEntry, bool]:
        if not obs.visitor_hash: raise ValueError("observation has no visitor hash")
        now = to_iso(obs.timestamp)
        def touch(entry: VisitorHashEntry):
            entry.total_visits += 1
            entry.is_returning_visitor = True
            entry.last_visit = now
        async with self._lock:
            entries = await self.load_hash_entries()
            found = [entries[obs.visitor_hash]] if obs.visitor_hash in entries else []
            entry, created = upsert(found, lambda e: True, lambda: VisitorHashEntry.from_observation(obs), touch)
            entries[obs.visitor_hash] = entry
            await self.storage.save(config.ALL_VISITORS_KEY, {k: e.to_dict() for k, e in entries.items()})
        log.info(f"[VISITOR] Hash {obs.visitor_hash}: visit #{entry.total_visits}")
        self._notify(StoreEvent.HASH)
        return entry, created

    async def record_simple_visit(self, fingerprint: str) -> dict:
        """Fingerprint-only counter used when the hashed tracking path fails."""
        async with self._lock:
            data = await self.storage.load(config.SIMPLE_TRACKING_KEY, None, expect=dict)
            if data and data.get("fingerprint") == fingerprint:
                data["visits"] = int(data.get("visits", 0)) + 1
            else:
                data = {"fingerprint": fingerprint, "visits": 1, "firstVisit": to_iso(self.clock())}
            await self.storage.save(config.SIMPLE_TRACKING_KEY, data)
        return data

    async def record_engagement(self, session_ms: float) -> dict:
        async with self._lock:
            data = await self.storage.load(config.ENGAGEMENT_KEY, None, expect=dict) or \
                   {"totalTimeSpent": 0, "averageSessionTime": 0, "sessionCount": 0}
            data["totalTimeSpent"] = data.get("totalTimeSpent", 0) + max(0, session_ms)
            data["sessionCount"] = data.get("sessionCount", 0) + 1
            data["averageSessionTime"] = data["totalTimeSpent"] / data["sessionCount"]
            await self.storage.save(config.ENGAGEMENT_KEY, data)
        return data

    async def load_engagement(self) -> dict:
        return await self.storage.load(config.ENGAGEMENT_KEY, None, expect=dict) or \
               {"totalTimeSpent": 0, "averageSessionTime": 0, "sessionCount": 0}

    async def clear_visitors(self) -> bool:
        async with self._lock:
            ok = await self.storage.save(config.VISITOR_DATA_KEY, [])
        log.warning("[STORE] Visitor data cleared")
        self._notify(StoreEvent.CLEAR)
        return ok
