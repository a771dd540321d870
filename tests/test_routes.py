import httpx
import pytest
from fakeredis import aioredis
from starlette.testclient import TestClient

from conftest import geo_transport
from routes import create_app
from widget import FINGERPRINT_COOKIE


@pytest.fixture
def client(server):
    app = create_app(aioredis.FakeRedis(server=server), http_client=httpx.AsyncClient(transport=geo_transport()),
                     refresh_interval=3600)
    with TestClient(app) as c:
        yield c


def test_home_page_has_counter_and_probe(client):
    r = client.get("/")
    assert r.status_code == 200
    assert 'id="visitor-counter"' in r.text
    assert "collectProbe" in r.text
    assert "TYPING_TEXTS" in r.text

def test_track_counts_new_then_returning_visitor(client, probe_payload):
    first = client.post("/track", json=probe_payload)
    assert first.status_code == 200
    assert "Welcome, new visitor!" in first.text
    assert client.cookies.get(FINGERPRINT_COOKIE)
    second = client.post("/track", json=probe_payload)
    assert "Welcome back! (Visit #2)" in second.text
    assert "Unique Visitors" in second.text

def test_track_rejects_bad_probe(client):
    assert client.post("/track", content=b"{oops", headers={"Content-Type": "application/json"}).status_code == 400
    assert client.post("/track", json=[1, 2]).status_code == 400

def test_visitor_info_after_tracking(client, probe_payload):
    assert "No visitor information recorded yet." in client.get("/visitor-info").text
    client.post("/track", json=probe_payload)
    r = client.get("/visitor-info")
    assert 'id="visitorInfoModal"' in r.text
    assert "203.0.113.7" in r.text
    assert "Ho Chi Minh City" in r.text

def test_admin_lists_tracked_visitors(client, probe_payload):
    client.post("/track", json=probe_payload)
    r = client.get("/admin")
    assert r.status_code == 200
    assert "1 visitors" in r.text
    assert "Vietnam" in r.text
    assert "No visitors found" in client.get("/admin/panel", params={"country": "Germany"}).text

def test_visitor_detail_and_missing_visitor(client, probe_payload):
    client.post("/track", json=probe_payload)
    client.get("/admin")
    visitor_id = client.app.state.dashboard.visitors[0].id
    r = client.get(f"/admin/visitors/{visitor_id}")
    assert 'id="visitorDetailModal"' in r.text
    assert "Desktop (Windows)" in r.text
    missing = client.get("/admin/visitors/nope")
    assert missing.status_code == 404
    assert missing.text == "Visitor not found"

def test_export_csv(client, probe_payload):
    client.post("/track", json=probe_payload)
    r = client.get("/admin/export")
    assert r.headers["content-type"].startswith("text/csv")
    assert "attachment" in r.headers["content-disposition"]
    lines = r.text.splitlines()
    assert lines[0].startswith('"Timestamp","IP"')
    assert '"203.0.113.7"' in lines[1]

def test_clear_requires_confirmation(client, probe_payload):
    client.post("/track", json=probe_payload)
    assert client.post("/admin/clear").status_code == 400
    r = client.post("/admin/clear", data={"confirm": "yes"})
    assert r.status_code == 200
    assert "No visitors found" in r.text
    assert "0 visitors" in client.get("/admin").text

def test_session_end_updates_engagement(client):
    r = client.post("/session-end", json={"duration": 5000})
    assert r.json() == {"status": "ok", "sessionCount": 1}
    assert client.post("/session-end", content=b"not json").json()["sessionCount"] == 2

def test_contact_form(client):
    r = client.post("/contact", data={"name": "Lan", "email": "lan@example.com", "message": "Hello"})
    assert "Thank you for contacting me!" in r.text

def test_track_tolerates_misshapen_probe_fields(client, probe_payload):
    for field, value in (("screen", "1920x1080"), ("plugins", 5), ("features", ["a"]), ("languages", "en-US")):
        r = client.post("/track", json=dict(probe_payload, **{field: value}))
        assert r.status_code == 200, field
        assert "Unique Visitors" in r.text

def test_session_end_with_malformed_json_body(client):
    r = client.post("/session-end", content=b"{oops", headers={"Content-Type": "application/json"})
    assert r.status_code == 200
    assert r.json()["sessionCount"] == 1

def test_admin_panel_polls_at_configured_interval(client):
    assert "every 3600s" in client.get("/admin/panel").text
    assert "every 3600s" in client.get("/admin").text
