import asyncio, ipaddress, json, logging
from dataclasses import dataclass, field
from typing import Optional
import httpx
import config
from models import Location, IP_ERROR, UNKNOWN

log = logging.getLogger("visitor_app")


@dataclass
class NetworkInfo:
    ip: Optional[str] = None
    location: Location = field(default_factory=Location)

    @classmethod
    def errored(cls):
        return cls(ip=IP_ERROR, location=Location.errored())


def is_public_ip(ip: Optional[str]) -> bool:
    try: return ipaddress.ip_address((ip or "").strip()).is_global
    except ValueError: return False

def get_real_ip(request):
    return (request.headers.get('CF-Connecting-IP') or
             (request.headers.get('X-Forwarded-For') or '').split(',')[0].strip() or
             request.headers.get('X-Real-IP') or (request.client.host if request.client else None))


async def fetch_public_ip(client: httpx.AsyncClient) -> Optional[str]:
    """Ask ipify for the caller's public address, None when it can't be reached."""
    try:
        r = await client.get(config.IP_LOOKUP_URL, timeout=config.GEO_TIMEOUT)
        r.raise_for_status()
        return r.json().get("ip") or None
    except (httpx.HTTPError, ValueError) as e:
        log.warning(f"[GEO] ❌ ipify lookup failed: {e}")
        return None

async def fetch_location(client: httpx.AsyncClient, ip: Optional[str] = None) -> Location:
    url = config.LOCATION_LOOKUP_URL_FOR_IP.format(ip=ip) if ip else config.LOCATION_LOOKUP_URL
    try:
        r = await client.get(url, timeout=config.GEO_TIMEOUT)
        r.raise_for_status()
        data = r.json()
    except (httpx.HTTPError, ValueError) as e:
        log.warning(f"[GEO] ❌ ipapi.co failed for {ip or 'self'}: {e}")
        return Location()
    if not isinstance(data, dict) or data.get("error"):
        log.warning(f"[GEO] ipapi.co returned no data for {ip or 'self'}")
        return Location()
    log.info(f"[GEO] ✅ ipapi.co resolved {ip or 'self'} -> {data.get('city')}, {data.get('country_name')}")
    return Location.from_ipapi(data)

async def get_location(ip: str, client: httpx.AsyncClient, redis=None) -> Location:
    """Location for a known address, served from the redis cache when possible"""
    if redis is not None:
        try:
            if (cached := await redis.get(f"geo:{ip}")):
                log.info(f"[GEO] 💾 Cache hit for {ip}")
                return Location.from_dict(json.loads(cached))
        except Exception as e: log.warning(f"[GEO] ⚠️ Cache read failed for {ip}: {e}")
    location = await fetch_location(client, ip)
    if redis is not None and location.country != UNKNOWN:
        try:
            await redis.set(f"geo:{ip}", json.dumps(location.to_dict()), ex=config.GEO_CACHE_TTL)
            log.info(f"[GEO] 💾 Cached geo data for {ip}")
        except Exception as e: log.warning(f"[GEO] ⚠️ Failed to cache geo data for {ip}: {e}")
    return location

async def resolve_network(client: httpx.AsyncClient, request_ip: Optional[str] = None, redis=None) -> NetworkInfo:
    """Public IP and location of the visitor.

    A routable address from the request headers is trusted as is. Otherwise (local
    development, private networks) the IP and location lookups run concurrently and
    either may fail without affecting the other.
    """
    if is_public_ip(request_ip):
        return NetworkInfo(ip=request_ip, location=await get_location(request_ip, client, redis))
    ip_result, loc_result = await asyncio.gather(fetch_public_ip(client), fetch_location(client), return_exceptions=True)
    info = NetworkInfo()
    if isinstance(ip_result, BaseException): log.warning(f"[GEO] IP lookup raised: {ip_result!r}")
    else: info.ip = ip_result
    if isinstance(loc_result, BaseException): log.warning(f"[GEO] Location lookup raised: {loc_result!r}")
    else: info.location = loc_result
    return info
