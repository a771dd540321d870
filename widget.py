"""Public portfolio page: visitor counter, "your info" modal and the page scripts."""
import json, logging
from dataclasses import dataclass
from typing import Optional

import fasthtml.common as fh
import config
import fasthtml_components as fc
import geo
from fingerprint import PROBE_JS, DeviceProbe, browser_name, generate_fingerprint, visitor_hash
from models import IP_SENTINELS, IP_UNAVAILABLE, UNKNOWN, Observation, Stats, VisitorHashEntry, VisitorRecord, parse_iso
from stats import compute_stats, visitor_analytics
from store import VisitorStore
from sync import SyncError

log = logging.getLogger("visitor_app")

FINGERPRINT_COOKIE = "visitor_fp"


@dataclass
class TrackResult:
    fingerprint: str
    entry: Optional[VisitorHashEntry] = None
    stats: Optional[Stats] = None
    record: Optional[VisitorRecord] = None
    simple: Optional[dict] = None

    @property
    def degraded(self) -> bool: return self.entry is None


async def track_visit(probe: DeviceProbe, request_ip: Optional[str], store: VisitorStore, sync, client, redis=None) -> TrackResult:
    """Fingerprint the probe, count the visit under its visitor hash and hand the observation to the sync policy.

    Falls back to fingerprint-only counting when the hashed path fails.
    """
    fingerprint = generate_fingerprint(probe)
    try:
        try:
            network = await geo.resolve_network(client, request_ip, redis)
        except Exception as e:
            log.error(f"[GEO] Network lookup failed: {e}")
            network = geo.NetworkInfo.errored()
        hash_ip = network.ip if network.ip not in IP_SENTINELS else IP_UNAVAILABLE
        obs = Observation(fingerprint=fingerprint, ip=network.ip or UNKNOWN, user_agent=probe.user_agent,
                          browser=browser_name(probe.user_agent), platform=probe.platform, screen=probe.screen,
                          language=probe.language, timezone=probe.timezone or UNKNOWN, location=network.location,
                          visitor_hash=visitor_hash(fingerprint, hash_ip))
        entry, _ = await store.upsert_hash_entry(obs)
        stats = compute_stats((await store.load_hash_entries()).values())
    except Exception as e:
        log.error(f"[VISITOR] Visitor tracking failed, falling back to simple tracking: {e}")
        return TrackResult(fingerprint=fingerprint, simple=await store.record_simple_visit(fingerprint))
    record = None
    try:
        record = await sync.submit(obs)
    except SyncError as e:
        log.error(f"[SYNC] Error saving visitor data: {e}")
    return TrackResult(fingerprint=fingerprint, entry=entry, stats=stats, record=record)


def _stat_item(value, label):
    return fh.Span(fh.Span(str(value), cls="stat-number"), fh.Span(label, cls="stat-label"), cls="stat-item")

def render_counter(stats: Stats, entry: VisitorHashEntry):
    status = f"Welcome back! (Visit #{entry.total_visits})" if entry.is_returning_visitor else "Welcome, new visitor!"
    analytics = visitor_analytics(entry)
    return fh.Div(
        fh.Div(_stat_item(stats.total_visitors, "Unique Visitors"), _stat_item(stats.total_visits, "Total Views"),
               _stat_item(stats.new_visitors, "New Visitors"), _stat_item(stats.returning_visitors, "Returning"), cls="visitor-stats"),
        fh.Div(fh.Span("♥ ", style="color:#f093fb;"), fh.Span(status), cls="visitor-welcome"),
        fh.Div(fh.Small(f"Avg: {stats.avg_visits_per_visitor} visits/visitor | "
                        f"{analytics['average_visits_per_day']} of your visits/day | Tracked by device fingerprint + IP"),
               cls="visitor-details muted"),
        fh.Div(fh.Small("Click for detailed visitor information", cls="muted")))

def render_simple_counter(simple: dict):
    return fh.Div(fh.Div(_stat_item(simple.get("visits", 0), "Your Visits"),
                         fh.Span(fh.Span("Device Tracked", cls="stat-label"), cls="stat-item"), cls="visitor-stats"))

def render_visitor_info(record: Optional[VisitorRecord]):
    if record is None:
        return fh.P("No visitor information recorded yet.", cls="muted", id="visitor-info-empty")
    last = parse_iso(record.last_visit)
    visit_time = last.astimezone(config.LOCAL_TIMEZONE).strftime("%Y-%m-%d %H:%M:%S") if last else "-"
    return fc.modal(
        fh.H3("Your Visitor Information"),
        fh.Div(fc.info_card("Network Information", ("IP Address", record.ip), ("ISP", record.location.isp),
                            ("Browser", record.browser), ("Platform", record.platform)),
               fc.info_card("Location Information", ("Country", record.location.country), ("Region", record.location.region),
                            ("City", record.location.city), ("Timezone", record.location.timezone)),
               fc.info_card("Device Information", ("Screen Resolution", record.screen), ("Language", record.language),
                            ("Visit Time", visit_time), ("Device Fingerprint", record.fingerprint)),
               cls="info-grid"),
        fh.H4("User Agent"), fh.P(record.user_agent, style="word-break:break-all;font-size:0.85em;"),
        modal_id="visitorInfoModal")


PAGE_JS = """
    document.addEventListener('DOMContentLoaded', () => {
        fetch('/track', { method: 'POST', headers: {'Content-Type': 'application/json'}, body: JSON.stringify(collectProbe()) })
            .then(r => r.text()).then(html => { const el = document.getElementById('visitor-counter'); if (el) { el.innerHTML = html; } })
            .catch(err => console.log('Visitor tracking initialization failed:', err));

        const typingText = document.querySelector('.typing-text');
        let textIndex = 0, charIndex = 0, isDeleting = false;
        function typeWriter() {
            if (!typingText) return;
            const current = TYPING_TEXTS[textIndex];
            charIndex += isDeleting ? -1 : 1;
            typingText.textContent = current.substring(0, charIndex);
            let speed = isDeleting ? 50 : 100;
            if (!isDeleting && charIndex === current.length) { speed = 2000; isDeleting = true; }
            else if (isDeleting && charIndex === 0) { isDeleting = false; textIndex = (textIndex + 1) % TYPING_TEXTS.length; speed = 500; }
            setTimeout(typeWriter, speed);
        }
        setTimeout(typeWriter, 1000);

        window.addEventListener('scroll', () => {
            const navbar = document.querySelector('.navbar');
            if (navbar) { navbar.classList.toggle('scrolled', window.scrollY > 50); } });
        document.querySelectorAll('a[href^="#"]').forEach(anchor => anchor.addEventListener('click', function (e) {
            const target = document.querySelector(this.getAttribute('href'));
            if (target) { e.preventDefault(); target.scrollIntoView({ behavior: 'smooth', block: 'start' }); } }));
        document.querySelectorAll('.card').forEach(card => {
            card.addEventListener('mouseenter', () => { card.style.transform = 'translateY(-10px) scale(1.02)'; });
            card.addEventListener('mouseleave', () => { card.style.transform = 'translateY(0) scale(1)'; }); });

        let startTime = Date.now(), isActive = true;
        const endSession = () => { const data = JSON.stringify({ duration: Date.now() - startTime });
            if (navigator.sendBeacon) { navigator.sendBeacon('/session-end', new Blob([data], {type: 'application/json'})); }
            else { fetch('/session-end', { method: 'POST', headers: {'Content-Type': 'application/json'}, body: data, keepalive: true }); } };
        document.addEventListener('visibilitychange', () => {
            if (document.hidden) { isActive = false; endSession(); } else { isActive = true; startTime = Date.now(); } });
        window.addEventListener('beforeunload', () => { if (isActive) { endSession(); } });
    });
"""

def render_home():
    return (fh.Titled("Nguyen Quoc Hung | Portfolio", fh.Meta(name="viewport", content="width=device-width, initial-scale=1.0")),
            fh.Nav(fh.A("Home", href="#home"), " · ", fh.A("Projects", href="#projects"), " · ", fh.A("Contact", href="#contact"), cls="navbar"),
            fh.Main(
                fh.Section(fh.H1("Hi, I'm ", fh.Span(cls="typing-text")), id="home", cls="hero"),
                fh.Div(fh.P("Loading visitor stats...", cls="muted"), id="visitor-counter", title="Click to view visitor information",
                       hx_get="/visitor-info", hx_target="#visitor-info-content", hx_trigger="click"),
                fh.Div(id="visitor-info-content"),
                fh.Section(fh.H2("Projects"), fh.Div(fh.Div("Portfolio website", cls="card"), fh.Div("Visitor analytics", cls="card"),
                                                     cls="info-grid"), id="projects"),
                fh.Section(fh.H2("Contact"),
                           fh.Form(fh.Input(name="name", placeholder="Your name", required=True),
                                   fh.Input(name="email", type="email", placeholder="Your email", required=True),
                                   fh.Textarea(name="message", placeholder="Message", required=True),
                                   fh.Button("Send", type="submit"),
                                   hx_post="/contact", hx_target="#contact-result", cls="contact-form"),
                           fh.Div(id="contact-result"), id="contact"),
                fh.Script(f"const TYPING_TEXTS = {json.dumps(config.TYPING_TEXTS)};" + PROBE_JS + PAGE_JS),
                cls="container"))
