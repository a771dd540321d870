"""Where a visitor observation goes after the page counter has been updated.

``LocalSync`` writes straight to the store. ``RemoteSync`` posts the observation to a
visitor API first and, when allowed, falls back to the store if the API fails.
"""
import logging
from typing import Any, Dict, Optional
import httpx
import config
from models import Observation
from store import VisitorStore

log = logging.getLogger("visitor_app")


class APIError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

class SyncError(Exception): pass


class APIClient:
    def __init__(self, client: httpx.AsyncClient, base_url: str = config.API_BASE_URL,
                 headers: Optional[Dict[str, str]] = None, timeout: float = config.API_TIMEOUT):
        self.client, self.base_url, self.timeout = client, base_url.rstrip("/"), timeout
        self.headers = dict(config.API_HEADERS if headers is None else headers)

    async def request(self, method: str, endpoint: str, json: Any = None, headers: Optional[Dict[str, str]] = None):
        url = f"{self.base_url}{endpoint}"
        try:
            r = await self.client.request(method, url, json=json, headers={**self.headers, **(headers or {})}, timeout=self.timeout)
        except httpx.HTTPError as e:
            log.error(f"[API] {method} {url} failed: {e}")
            raise APIError(f"request failed: {e}") from e
        if r.is_error:
            log.error(f"[API] {method} {url} -> HTTP {r.status_code}")
            raise APIError(f"HTTP error! status: {r.status_code}", r.status_code)
        try: return r.json() if r.content else None
        except ValueError as e: raise APIError(f"invalid JSON from {url}", r.status_code) from e

    async def get(self, endpoint: str): return await self.request("GET", endpoint)
    async def post(self, endpoint: str, data: Any): return await self.request("POST", endpoint, json=data)
    async def put(self, endpoint: str, data: Any): return await self.request("PUT", endpoint, json=data)
    async def delete(self, endpoint: str): return await self.request("DELETE", endpoint)


class LocalSync:
    mode = "local"

    def __init__(self, store: VisitorStore):
        self.store = store

    async def submit(self, obs: Observation):
        record, _ = await self.store.upsert_visitor(obs)
        return record


class RemoteSync:
    mode = "remote"

    def __init__(self, store: VisitorStore, api: APIClient, use_fallback: bool = config.USE_FALLBACK):
        self.store, self.api, self.use_fallback = store, api, use_fallback

    async def submit(self, obs: Observation):
        try:
            await self.api.post(config.API_ENDPOINTS["visitors"], obs.to_payload())
            log.info(f"[SYNC] Visitor {obs.fingerprint[:8]} sent to {self.api.base_url}")
            return None
        except APIError as e:
            if not self.use_fallback: raise SyncError(f"visitor API unavailable: {e}") from e
            log.warning(f"[SYNC] Server unavailable, using local store: {e}")
        record, _ = await self.store.upsert_visitor(obs)
        return record


def build_sync_policy(store: VisitorStore, client: httpx.AsyncClient, mode: str = config.SYNC_MODE,
                      base_url: str = config.API_BASE_URL, use_fallback: bool = config.USE_FALLBACK):
    if mode == "remote":
        if base_url: return RemoteSync(store, APIClient(client, base_url), use_fallback)
        log.warning("[SYNC] Remote sync selected but VISITOR_API_BASE_URL is empty, storing locally")
    elif mode != "local":
        log.warning(f"[SYNC] Unknown sync mode {mode!r}, storing locally")
    return LocalSync(store)
