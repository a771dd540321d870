"""Admin dashboard over the ``visitorData`` collection."""
import asyncio, csv, io, logging
from urllib.parse import urlencode
from datetime import datetime, timezone
from typing import List, Optional

import fasthtml.common as fh
import config
import fasthtml_components as fc
from fingerprint import get_device_info
from models import VisitorRecord, parse_iso, utc_now
from stats import browser_breakdown, compute_stats, country_breakdown
from store import StoreEvent, VisitorStore

log = logging.getLogger("visitor_app")

CSV_HEADERS = ["Timestamp", "IP", "Country", "Region", "City", "Browser", "Platform", "Screen", "Language",
               "Visits", "First Visit", "Last Visit"]
_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def filter_visitors(visitors: List[VisitorRecord], search: str = "", country: str = "") -> List[VisitorRecord]:
    term = (search or "").strip().lower()
    def matches_search(v):
        return not term or any(term in str(f).lower() for f in (v.ip, v.location.country, v.location.city, v.browser, v.platform))
    return [v for v in visitors if matches_search(v) and (not country or v.location.country == country)]

def sort_by_last_visit(visitors: List[VisitorRecord]) -> List[VisitorRecord]:
    return sorted(visitors, key=lambda v: parse_iso(v.last_visit) or _EPOCH, reverse=True)

def countries(visitors: List[VisitorRecord]) -> List[str]:
    return sorted({v.location.country for v in visitors})

def to_csv(visitors: List[VisitorRecord]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for v in visitors:
        writer.writerow([v.timestamp, v.ip, v.location.country, v.location.region, v.location.city, v.browser, v.platform,
                         v.screen, v.language, v.visits, v.first_visit, v.last_visit])
    return buf.getvalue().rstrip("\n")

def export_filename(now: Optional[datetime] = None) -> str:
    return f"visitors_{(now or utc_now()).strftime('%Y-%m-%d')}.csv"

def time_ago(moment: Optional[datetime], now: Optional[datetime] = None) -> str:
    if moment is None: return "-"
    seconds = ((now or utc_now()) - moment).total_seconds()
    minutes, hours, days = int(seconds // 60), int(seconds // 3600), int(seconds // 86400)
    if minutes < 1: return "Just now"
    if minutes < 60: return f"{minutes}m ago"
    if hours < 24: return f"{hours}h ago"
    return f"{days}d ago"

def is_online(moment: Optional[datetime], now: Optional[datetime] = None) -> bool:
    return moment is not None and ((now or utc_now()) - moment).total_seconds() < config.ONLINE_WINDOW_SECONDS

def country_flag(country: str) -> str: return config.COUNTRY_FLAGS.get(country, "🌍")
def browser_icon(browser: str) -> str: return config.BROWSER_ICONS.get(browser, "bi-browser-chrome")
def utc_to_local(moment: datetime): return moment.astimezone(config.LOCAL_TIMEZONE)


class Dashboard:
    """Snapshot of the visitor collection that follows store changes.

    ``start`` subscribes to the store and runs a refresh loop that re-reads storage every
    ``interval`` seconds (other processes may write the same keys); ``stop`` tears both down.
    """

    def __init__(self, store: VisitorStore, interval: float = config.DASHBOARD_REFRESH_SECONDS):
        self.store, self.interval = store, interval
        self.visitors: List[VisitorRecord] = []
        self.stale = True
        self._unsubscribe = None
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool: return self._task is not None and not self._task.done()

    def _on_change(self, event: StoreEvent):
        if event in (StoreEvent.VISITOR, StoreEvent.CLEAR): self.stale = True

    async def refresh(self):
        self.visitors = await self.store.load_visitors()
        self.stale = False
        log.info(f"[DASHBOARD] Refreshed: {len(self.visitors)} visitors")
        return self.visitors

    async def snapshot(self) -> List[VisitorRecord]:
        if self.stale: await self.refresh()
        return self.visitors

    async def _loop(self):
        while True:
            await asyncio.sleep(self.interval)
            try: await self.refresh()
            except Exception: log.exception("[DASHBOARD] Refresh failed")

    async def start(self):
        if self._unsubscribe is None: self._unsubscribe = self.store.subscribe(self._on_change)
        await self.refresh()
        if not self.running: self._task = asyncio.create_task(self._loop())

    async def stop(self):
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._task is not None:
            self._task.cancel()
            try: await self._task
            except asyncio.CancelledError: pass
            self._task = None


def visitor_row(v: VisitorRecord, now: datetime):
    last = parse_iso(v.last_visit)
    return fh.Tr(
        fh.Td(fh.Div(fc.status_dot(is_online(last, now)),
                     fh.Div(fh.Div(time_ago(last, now), style="font-weight:bold;"),
                            fh.Small(utc_to_local(last).strftime("%m/%d/%Y") if last else "-", cls="muted"),
                            style="margin-left:8px;"), style="display:flex;align-items:center;")),
        fh.Td(fh.Code(v.ip)),
        fh.Td(f"{country_flag(v.location.country)} {v.location.city}, {v.location.country}",
              fh.Br(), fh.Small(v.location.region, cls="muted")),
        fh.Td(fh.I(cls=f"bi {browser_icon(v.browser)}"), f" {v.browser}"),
        fh.Td(v.platform, fh.Br(), fh.Small(v.screen, cls="muted")),
        fh.Td(fc.visits_badge(v.visits)),
        fh.Td(fh.Button("View", hx_get=f"/admin/visitors/{v.id}", hx_target="#visitor-detail", hx_swap="innerHTML")),
        cls="visitor-row")

def render_panel(visitors: List[VisitorRecord], engagement: dict, search: str = "", country: str = "", now: Optional[datetime] = None,
                 interval: float = config.DASHBOARD_REFRESH_SECONDS):
    """Stats, charts and the filtered table; re-polled by the page every refresh interval."""
    now = now or utc_now()
    stats = compute_stats(visitors)
    shown = sort_by_last_visit(filter_visitors(visitors, search, country))
    rows = [visitor_row(v, now) for v in shown] or \
           [fh.Tr(fh.Td("No visitors found", colspan=7, style="text-align:center;padding:2rem;color:#999;"))]
    browser_colors = {b: config.CHART_COLORS[i % len(config.CHART_COLORS)] for i, b in enumerate(browser_breakdown(visitors))}
    return fh.Div(
        fh.Div(fc.stat_card("Total Visitors", f"{stats.total_visitors:,}", card_id="total-visitors"),
               fc.stat_card("Total Visits", f"{stats.total_visits:,}", card_id="total-visits"),
               fc.stat_card("New Visitors", f"{stats.new_visitors:,}", card_id="new-visitors"),
               fc.stat_card("Returning", f"{stats.returning_visitors:,}", card_id="returning-visitors"),
               fc.stat_card("Avg Session", fc.fmt_time(engagement.get("averageSessionTime", 0) / 1000),
                            f"{engagement.get('sessionCount', 0)} sessions"), cls="stats-grid"),
        fh.Div(fh.Div(fh.H2("Top Countries", cls="section-title"), fc.h_chart(country_breakdown(visitors), chart_id="countryChart")),
               fh.Div(fh.H2("Browsers", cls="section-title"), fc.h_chart(browser_breakdown(visitors), browser_colors, chart_id="browserChart")),
               cls="info-grid"),
        fh.H2(fh.Span(f"{len(shown)} visitors", id="visitor-count"), cls="section-title"),
        fh.Div(fh.Table(fh.Thead(fh.Tr(*[fh.Th(h) for h in ("Last Visit", "IP", "Location", "Browser", "Device", "Visits", "")])),
                        fh.Tbody(*rows, id="visitorsTableBody"), cls="visitors-table"), style="overflow-x:auto;"),
        id="admin-panel", hx_get=f"/admin/panel?{urlencode({'q': search, 'country': country})}",
        hx_trigger=f"every {max(1, int(interval))}s", hx_swap="outerHTML")

def render_filters(visitors: List[VisitorRecord], search: str = "", country: str = ""):
    options = [fh.Option("All Countries", value="", selected=not country)] + \
              [fh.Option(c, value=c, selected=c == country) for c in countries(visitors)]
    return fh.Form(fh.Input(type="search", name="q", value=search, placeholder="Search IP, country, city, browser, platform", id="searchInput"),
                   fh.Select(*options, name="country", id="countryFilter"),
                   fh.Button("Filter", type="submit"),
                   fh.A("Export CSV", href=f"/admin/export?{urlencode({'q': search, 'country': country})}", cls="back-link", style="margin-left:12px;"),
                   method="get", action="/admin", style="display:flex;gap:10px;align-items:center;flex-wrap:wrap;")

def render_admin_page(visitors: List[VisitorRecord], engagement: dict, search: str = "", country: str = "",
                      interval: float = config.DASHBOARD_REFRESH_SECONDS):
    return (fh.Titled("Visitor Admin", fh.Meta(name="viewport", content="width=device-width, initial-scale=1.0")),
            fh.Main(fh.H1("Visitor Dashboard", cls="dashboard-title"),
                    render_filters(visitors, search, country),
                    render_panel(visitors, engagement, search, country, interval=interval),
                    fh.Div(id="visitor-detail"),
                    fh.Button("Clear all data", hx_post="/admin/clear", hx_vals='{"confirm": "yes"}', hx_target="#admin-panel",
                              hx_swap="outerHTML",
                              hx_confirm="Are you sure you want to clear all visitor data? This action cannot be undone.",
                              style="margin-top:20px;background:#ff3b30;color:white;"),
                    fc.nav_links(("← Back to portfolio", "/")), cls="container"))

def render_visitor_detail(v: VisitorRecord):
    first, last = parse_iso(v.first_visit), parse_iso(v.last_visit)
    fmt = lambda m: utc_to_local(m).strftime("%Y-%m-%d %H:%M:%S") if m else "-"
    return fc.modal(
        fh.H3(f"Visitor {v.ip}"),
        fh.Div(fc.info_card("Network Information", ("IP Address", v.ip), ("ISP", v.location.isp or "Unknown"),
                            ("Browser", v.browser), ("Platform", v.platform)),
               fc.info_card("Location Information", ("Country", v.location.country), ("Region", v.location.region),
                            ("City", v.location.city), ("Timezone", v.location.timezone)),
               fc.info_card("Device Information", ("Device", get_device_info(v.user_agent)), ("Screen", v.screen),
                            ("Language", v.language), ("Fingerprint", v.fingerprint)),
               fc.info_card("Visit History", ("First Visit", fmt(first)), ("Last Visit", fmt(last)), ("Total Visits", v.visits)),
               cls="info-grid"),
        fh.H4("User Agent"), fh.P(v.user_agent, style="word-break:break-all;font-size:0.85em;"),
        modal_id="visitorDetailModal")
