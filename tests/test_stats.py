from datetime import datetime, timezone

from conftest import at, observation
from models import Location, VisitorHashEntry, VisitorRecord
from stats import browser_breakdown, compute_stats, country_breakdown, visitor_analytics


def record(visits, last, country="Vietnam", browser="Google Chrome"):
    r = VisitorRecord.from_observation(observation(when=at(0), country=country, browser=browser))
    r.visits, r.last_visit = visits, last
    return r


def test_empty_collection():
    stats = compute_stats([])
    assert (stats.total_visitors, stats.total_visits, stats.new_visitors, stats.returning_visitors) == (0, 0, 0, 0)
    assert stats.avg_visits_per_visitor == 0
    assert stats.most_recent_visit is None

def test_counts_split_new_and_returning():
    stats = compute_stats([record(1, "2024-05-01T10:00:00.000Z"), record(3, "2024-05-02T09:00:00.000Z"),
                           record(2, "2024-05-01T23:00:00.000Z")])
    assert stats.total_visitors == 3
    assert stats.total_visits == 6
    assert stats.new_visitors == 1
    assert stats.returning_visitors == 2
    assert stats.new_visitors + stats.returning_visitors == stats.total_visitors
    assert stats.avg_visits_per_visitor == 2.0
    assert stats.most_recent_visit == "2024-05-02T09:00:00.000Z"

def test_average_is_rounded_to_one_decimal():
    stats = compute_stats([record(1, ""), record(1, ""), record(2, "")])
    assert stats.avg_visits_per_visitor == 1.3
    assert stats.most_recent_visit is None

def test_hash_entries_use_total_visits():
    entries = [VisitorHashEntry("a", total_visits=1, last_visit="2024-05-01T12:00:00.000Z"),
               VisitorHashEntry("b", total_visits=4, last_visit="2024-05-01T13:00:00.000Z")]
    stats = compute_stats(entries)
    assert stats.total_visits == 5
    assert stats.returning_visitors == 1

def test_visitor_analytics():
    entry = VisitorHashEntry("a", total_visits=9, first_visit="2024-05-01T12:00:00.000Z")
    now = datetime(2024, 5, 4, 13, 0, tzinfo=timezone.utc)
    assert visitor_analytics(entry, now) == {"days_since_first_visit": 3, "average_visits_per_day": 3.0}

def test_visitor_analytics_same_day_uses_total():
    entry = VisitorHashEntry("a", total_visits=2, first_visit="2024-05-01T12:00:00.000Z")
    assert visitor_analytics(entry, at(30))["average_visits_per_day"] == 2

def test_breakdowns():
    visitors = [record(1, "", "Vietnam"), record(1, "", "Vietnam", "Safari"), record(1, "", "Germany", "Safari")]
    assert country_breakdown(visitors) == [("Vietnam", 2), ("Germany", 1)]
    assert country_breakdown(visitors, limit=1) == [("Vietnam", 2)]
    assert browser_breakdown(visitors) == {"Google Chrome": 1, "Safari": 2}
