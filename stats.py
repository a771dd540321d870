from collections import Counter
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

import config
from models import Stats, VisitorHashEntry, VisitorRecord, parse_iso, utc_now


def compute_stats(records: Iterable) -> Stats:
    """Aggregate counts over a full collection of VisitorRecord or VisitorHashEntry.

    Recomputed from scratch on every call; a visitor with exactly one visit is new,
    anyone else is returning.
    """
    records = list(records)
    total_visitors = len(records)
    total_visits = sum(r.visit_count for r in records)
    new_visitors = sum(1 for r in records if r.visit_count == 1)
    latest = max(((parse_iso(r.last_visit), r.last_visit) for r in records if parse_iso(r.last_visit)), default=None)
    return Stats(total_visitors=total_visitors, total_visits=total_visits, new_visitors=new_visitors,
                 returning_visitors=total_visitors - new_visitors,
                 avg_visits_per_visitor=round(total_visits / total_visitors, 1) if total_visitors else 0,
                 most_recent_visit=latest[1] if latest else None)

def visitor_analytics(entry: VisitorHashEntry, now: Optional[datetime] = None) -> Dict:
    now = now or utc_now()
    first = parse_iso(entry.first_visit) or now
    days = max(0, (now - first).days)
    return { "days_since_first_visit": days,
             "average_visits_per_day": round(entry.total_visits / days, 1) if days > 0 else entry.total_visits }

def country_breakdown(visitors: List[VisitorRecord], limit: int = config.TOP_COUNTRIES) -> List[Tuple[str, int]]:
    return Counter(v.location.country for v in visitors).most_common(limit)

def browser_breakdown(visitors: List[VisitorRecord]) -> Dict[str, int]:
    return dict(Counter(v.browser for v in visitors))
