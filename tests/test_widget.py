import fasthtml.common as fh
import httpx

from conftest import geo_transport, make_store, run
from fingerprint import DeviceProbe, generate_fingerprint, visitor_hash
from models import IP_UNAVAILABLE, UNKNOWN
from sync import APIClient, LocalSync, RemoteSync
from widget import render_counter, render_simple_counter, track_visit


def unreachable_api():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)
    return httpx.MockTransport(handler)


def test_hash_path_failure_falls_back_to_simple_tracking(server, probe_payload):
    async def go():
        store = make_store(server)
        async def broken(obs): raise RuntimeError("storage offline")
        store.upsert_hash_entry = broken
        async with httpx.AsyncClient(transport=geo_transport()) as client:
            first = await track_visit(DeviceProbe.from_payload(probe_payload), None, store, LocalSync(store), client)
            second = await track_visit(DeviceProbe.from_payload(probe_payload), None, store, LocalSync(store), client)
        return first, second, await store.load_visitors()
    first, second, visitors = run(go())
    assert first.degraded and second.degraded
    assert second.simple["visits"] == 2
    assert second.simple["fingerprint"] == generate_fingerprint(DeviceProbe.from_payload(probe_payload))
    assert visitors == []
    html = fh.to_xml(render_simple_counter(second.simple))
    assert "Your Visits" in html
    assert ">2<" in html

def test_sync_error_is_logged_and_counter_still_renders(server, probe_payload, caplog):
    async def go():
        store = make_store(server)
        async with httpx.AsyncClient(transport=geo_transport()) as client, \
                   httpx.AsyncClient(transport=unreachable_api()) as api_client:
            sync = RemoteSync(store, APIClient(api_client, "https://api.example.com"), use_fallback=False)
            result = await track_visit(DeviceProbe.from_payload(probe_payload), None, store, sync, client)
        return result, await store.load_visitors()
    result, visitors = run(go())
    assert not result.degraded
    assert result.record is None
    assert visitors == []
    assert "Error saving visitor data" in caplog.text
    assert "Welcome, new visitor!" in fh.to_xml(render_counter(result.stats, result.entry))

def test_failed_lookups_store_unknown_and_hash_ip_unavailable(server, probe_payload):
    async def go():
        store = make_store(server)
        async with httpx.AsyncClient(transport=geo_transport(fail_ip=True, fail_location=True)) as client:
            return await track_visit(DeviceProbe.from_payload(probe_payload), "192.168.1.20", store, LocalSync(store), client)
    result = run(go())
    fingerprint = generate_fingerprint(DeviceProbe.from_payload(probe_payload))
    assert not result.degraded
    assert result.entry.visitor_hash == visitor_hash(fingerprint, IP_UNAVAILABLE)
    assert result.record.ip == UNKNOWN
    assert result.record.location.country == UNKNOWN
    assert result.stats.total_visitors == 1
