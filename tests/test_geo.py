from types import SimpleNamespace

import httpx
from fakeredis import aioredis

from conftest import geo_transport, run
from geo import NetworkInfo, get_location, get_real_ip, is_public_ip, resolve_network
from models import IP_ERROR, UNKNOWN


def resolve(transport, request_ip=None, redis_server=None):
    async def go():
        redis = aioredis.FakeRedis(server=redis_server) if redis_server else None
        async with httpx.AsyncClient(transport=transport) as client:
            return await resolve_network(client, request_ip, redis)
    return run(go())


def test_private_request_ip_queries_both_services():
    calls = []
    info = resolve(geo_transport(calls=calls), "10.0.0.5")
    assert info.ip == "203.0.113.7"
    assert info.location.country == "Vietnam"
    assert info.location.isp == "Viettel Group"
    assert sorted(calls) == ["api.ipify.org/", "ipapi.co/json/"]

def test_ip_failure_keeps_location():
    info = resolve(geo_transport(fail_ip=True))
    assert info.ip is None
    assert info.location.city == "Ho Chi Minh City"

def test_location_timeout_gives_unknown():
    info = resolve(geo_transport(fail_location=True))
    assert info.ip == "203.0.113.7"
    assert info.location.country == UNKNOWN

def test_location_error_payload_gives_unknown():
    info = resolve(geo_transport(location={"error": True, "reason": "RateLimited"}))
    assert info.location.country == UNKNOWN
    assert info.location.latitude == UNKNOWN

def test_public_request_ip_is_used_and_cached(server):
    calls = []
    first = resolve(geo_transport(calls=calls), "8.8.8.8", server)
    second = resolve(geo_transport(calls=calls), "8.8.8.8", server)
    assert first.ip == second.ip == "8.8.8.8"
    assert second.location == first.location
    assert calls == ["ipapi.co/8.8.8.8/json/"]

def test_failed_lookup_is_not_cached(server):
    async def go():
        redis = aioredis.FakeRedis(server=server)
        async with httpx.AsyncClient(transport=geo_transport(fail_location=True)) as client:
            await get_location("8.8.8.8", client, redis)
        return await redis.get("geo:8.8.8.8")
    assert run(go()) is None

def test_errored_network_info():
    info = NetworkInfo.errored()
    assert info.ip == IP_ERROR
    assert info.location.country == "Error"

def test_is_public_ip():
    assert is_public_ip("8.8.8.8")
    assert not is_public_ip("127.0.0.1")
    assert not is_public_ip("192.168.1.10")
    assert not is_public_ip("testclient")
    assert not is_public_ip(None)

def test_get_real_ip_header_precedence():
    client = SimpleNamespace(host="10.0.0.1")
    assert get_real_ip(SimpleNamespace(headers={"CF-Connecting-IP": "1.1.1.1", "X-Forwarded-For": "2.2.2.2"}, client=client)) == "1.1.1.1"
    assert get_real_ip(SimpleNamespace(headers={"X-Forwarded-For": "2.2.2.2, 10.0.0.1"}, client=client)) == "2.2.2.2"
    assert get_real_ip(SimpleNamespace(headers={"X-Real-IP": "3.3.3.3"}, client=client)) == "3.3.3.3"
    assert get_real_ip(SimpleNamespace(headers={}, client=client)) == "10.0.0.1"
    assert get_real_ip(SimpleNamespace(headers={}, client=None)) is None
