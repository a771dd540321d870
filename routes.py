import logging
import fasthtml.common as fh
import httpx
from starlette.responses import JSONResponse, Response, HTMLResponse
from starlette.routing import Route

import config
import dashboard
import geo
import widget
from fasthtml_components import STYLE
from fingerprint import DeviceProbe
from persistence import JsonStorage
from store import IdentityPolicy, VisitorStore
from sync import build_sync_policy

log = logging.getLogger("visitor_app")


def create_app(redis, http_client: httpx.AsyncClient = None, sync_policy=None, identity_policy: str = config.IDENTITY_POLICY,
               refresh_interval: float = config.DASHBOARD_REFRESH_SECONDS, on_startup=(), on_shutdown=()):
    """Build the web app around one store shared by the public widget and the admin dashboard."""
    owns_client = http_client is None
    client = http_client or httpx.AsyncClient(timeout=config.GEO_TIMEOUT)
    store = VisitorStore(JsonStorage(redis), IdentityPolicy.from_config(identity_policy))
    sync = sync_policy or build_sync_policy(store, client)
    board = dashboard.Dashboard(store, interval=refresh_interval)

    async def startup():
        await board.start()
        log.info(f"[STARTUP] Dashboard refresh every {refresh_interval:.0f}s | sync={sync.mode} | identity={store.policy.value}")

    async def shutdown():
        await board.stop()
        if owns_client: await client.aclose()
        log.info("[SHUTDOWN] Dashboard stopped")

    web_app = fh.FastHTML(on_startup=[startup, *on_startup], on_shutdown=[shutdown, *on_shutdown], hdrs=[fh.Style(STYLE)])
    web_app.state.store, web_app.state.dashboard, web_app.state.sync = store, board, sync

    @web_app.get("/")
    async def index(request):
        return widget.render_home()

    async def track(request):
        try:
            payload = await request.json()
        except ValueError:
            return JSONResponse({"error": "invalid probe"}, status_code=400)
        if not isinstance(payload, dict): return JSONResponse({"error": "invalid probe"}, status_code=400)
        result = await widget.track_visit(DeviceProbe.from_payload(payload), geo.get_real_ip(request), store, sync, client, redis)
        body = widget.render_simple_counter(result.simple) if result.degraded else widget.render_counter(result.stats, result.entry)
        response = HTMLResponse(fh.to_xml(body))
        response.set_cookie(widget.FINGERPRINT_COOKIE, result.fingerprint, max_age=365 * 86400, samesite="lax")
        return response

    @web_app.get("/visitor-info")
    async def visitor_info(request):
        record = await store.find_by_fingerprint(request.cookies.get(widget.FINGERPRINT_COOKIE, ""))
        return widget.render_visitor_info(record)

    async def session_end(request):
        try:
            duration = float((await request.json()).get("duration", 0))
        except (ValueError, TypeError, AttributeError):
            duration = 0
        data = await store.record_engagement(duration)
        return JSONResponse({"status": "ok", "sessionCount": data["sessionCount"]})

    @web_app.post("/contact")
    async def contact(request):
        form = await request.form()
        log.info(f"[CONTACT] Message from {form.get('name', '-')} <{form.get('email', '-')}>")
        return fh.P("Thank you for contacting me! I will respond as soon as possible.", cls="contact-thanks")

    @web_app.get("/admin")
    async def admin(request, q: str = "", country: str = ""):
        return dashboard.render_admin_page(await board.snapshot(), await store.load_engagement(), q, country, board.interval)

    @web_app.get("/admin/panel")
    async def admin_panel(request, q: str = "", country: str = ""):
        return dashboard.render_panel(await board.snapshot(), await store.load_engagement(), q, country, interval=board.interval)

    @web_app.get("/admin/visitors/{visitor_id}")
    async def visitor_detail(request, visitor_id: str):
        visitor = await store.find_visitor(visitor_id)
        if visitor is None: return Response("Visitor not found", status_code=404)
        return dashboard.render_visitor_detail(visitor)

    @web_app.get("/admin/export")
    async def export(request, q: str = "", country: str = ""):
        shown = dashboard.sort_by_last_visit(dashboard.filter_visitors(await board.snapshot(), q, country))
        return Response(dashboard.to_csv(shown), media_type="text/csv",
                        headers={"Content-Disposition": f'attachment; filename="{dashboard.export_filename()}"'})

    @web_app.post("/admin/clear")
    async def clear(request):
        form = await request.form()
        if form.get("confirm") != "yes":
            return Response("Confirmation required", status_code=400)
        await store.clear_visitors()
        return dashboard.render_panel(await board.snapshot(), await store.load_engagement(), interval=board.interval)

    # plain starlette routes, the handlers parse their own JSON bodies
    web_app.router.routes[:0] = [Route("/track", track, methods=["POST"]), Route("/session-end", session_end, methods=["POST"])]
    return web_app
