import fasthtml.common as fh

STYLE = """
    body { font-family: system-ui, -apple-system, sans-serif; background: #0f172a; color: #f1f5f9; margin: 0; }
    .container { max-width: 1200px; margin: 0 auto; padding: 20px; }
    .dashboard-title { font-size: 2.2rem; background: linear-gradient(135deg, #667eea, #764ba2); -webkit-background-clip: text; -webkit-text-fill-color: transparent; }
    .section-title { margin-top: 30px; }
    .stats-grid { display: grid; grid-template-columns: repeat(auto-fit, minmax(200px, 1fr)); gap: 1rem; margin: 1.5rem 0; }
    .stats-card { background: #1e293b; border: 1px solid #334155; border-radius: 12px; padding: 1.2rem; }
    .stats-number { font-size: 2rem; font-weight: 700; color: #6366f1; }
    .stats-label { font-size: 0.8rem; color: #94a3b8; text-transform: uppercase; }
    .chart-bars-container { display: flex; flex-direction: column; gap: 8px; }
    .bar-horizontal { display: flex; align-items: center; gap: 10px; }
    .bar-label-horizontal { width: 160px; font-size: 0.9em; }
    .bar-track-horizontal { flex: 1; background: #1e293b; border-radius: 6px; overflow: hidden; }
    .bar-fill-horizontal { padding: 4px 0; border-radius: 6px; }
    table.visitors-table { width: 100%; border-collapse: collapse; background: #1e293b; }
    .visitors-table th { background: linear-gradient(135deg, #667eea, #764ba2); color: white; padding: 0.8rem; text-align: left; }
    .visitors-table td { padding: 0.7rem; border-bottom: 1px solid #334155; font-size: 0.9em; }
    .status-dot { display: inline-block; width: 10px; height: 10px; border-radius: 50%; }
    .status-dot.online { background: #4cd964; } .status-dot.offline { background: #64748b; }
    .visit-badge { padding: 2px 8px; border-radius: 4px; color: white; font-weight: 600; }
    .back-link { color: #6366f1; text-decoration: none; font-weight: 500; }
    .navbar { position: sticky; top: 0; background: #0f172a; padding: 12px 20px; transition: box-shadow .3s; }
    .navbar.scrolled { box-shadow: 0 2px 12px rgba(0,0,0,.5); }
    .hero { padding: 80px 20px; text-align: center; }
    .card { transition: transform .3s; background: #1e293b; border-radius: 12px; padding: 1rem; }
    #visitor-counter { cursor: pointer; }
    .visitor-stats { display: flex; gap: 20px; justify-content: center; flex-wrap: wrap; }
    .stat-item { display: flex; flex-direction: column; align-items: center; }
    .stat-number { font-size: 1.6rem; font-weight: 700; color: #f093fb; }
    .stat-label, .muted { color: #94a3b8; font-size: 0.85em; }
    .info-card { background: #1e293b; border-radius: 10px; padding: 12px 16px; }
    .info-grid { display: grid; grid-template-columns: repeat(auto-fit, minmax(260px, 1fr)); gap: 12px; }
    dialog { background: #0f172a; color: #f1f5f9; border: 1px solid #334155; border-radius: 12px; max-width: 800px; }
"""

def stat_card(label, value, subtitle="", card_id=None):
    return fh.Div(fh.Div(label, cls="stats-label"), fh.Div(value, cls="stats-number", id=card_id),
                  fh.Div(subtitle, style="font-size:0.9em;opacity:0.8;") if subtitle else "", cls="stats-card")

def h_bar(label, count, total, color="#667eea"):
    """Single horizontal bar"""
    pct = (count / total * 100) if total > 0 else 0
    return fh.Div(fh.Span(label, cls="bar-label-horizontal"),
                  fh.Div(fh.Div(fh.Span(f"{count} ({pct:.1f}%)" if count > 0 else "",
                  style="color:white;font-size:0.9em;padding-left:8px;"),
                  style=f"width:{max(pct,2) if count>0 else 0}%;background:{color};", cls="bar-fill-horizontal"),
                  cls="bar-track-horizontal"), cls="bar-horizontal")

def h_chart(data, colors=None, chart_id=None):
    """Horizontal bar chart, colors is a label->color dict or a palette cycled in order"""
    data = dict(data) if isinstance(data, list) else data
    total = sum(data.values())
    if not total: return fh.P("No data", style="text-align:center;color:#999;", id=chart_id)
    def color(i, k):
        if isinstance(colors, dict): return colors.get(k, "#667eea")
        return colors[i % len(colors)] if colors else "#667eea"
    return fh.Div(*[h_bar(k, v, total, color(i, k)) for i, (k, v) in enumerate(data.items())], cls="chart-bars-container", id=chart_id)

def nav_links(*links):
    return fh.Div(*[fh.A(txt, href=url, cls="back-link",
                    style=f"{'margin-left:20px;' if i else ''}{rest[0] if rest else ''}")
                    for i, (txt,url,*rest) in enumerate(links)], style="text-align:center;margin-top:30px;")

def info_card(title, *rows):
    """Titled list of (label, value) pairs"""
    return fh.Div(fh.H4(title), fh.Ul(*[fh.Li(fh.Strong(f"{label}: "), str(value)) for label, value in rows],
                  style="list-style:none;padding:0;"), cls="info-card")

def visits_badge(visits):
    return fh.Span(str(visits), cls="visit-badge", style=f"background:{'#10b981' if visits == 1 else '#6366f1'};")

def status_dot(online):
    return fh.Span(cls=f"status-dot {'online' if online else 'offline'}", title="Online" if online else "Offline")

def modal(*content, modal_id="modal"):
    return fh.Dialog(*content, fh.Form(fh.Button("Close"), method="dialog"), open=True, id=modal_id)

def fmt_time(s):
    return f"{s:.0f}s" if s<60 else f"{s/60:.1f}m" if s<3600 else f"{s/3600:.1f}h"
