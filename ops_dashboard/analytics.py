"""Booking funnel and source-query aggregation.

The funnel walks past bookings through these stages:

    planned -> participant detected -> login -> verification_start
            -> adb_pair -> adb_connect

Event stages are counted as unique bookings, never as raw event rows.
"""

from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from ops_dashboard.timegrid.window import end_of_day, parse_timestamp

STAGE_EVENT_TYPES = ("login", "verification_start", "adb_pair", "adb_connect")
CONVERSION_EVENT = "adb_connect"

NO_PARTICIPANT = "no_participant_detected"
# "booked" means planned but nobody showed up yet.
NOT_PRESENT_STATUSES = frozenset({NO_PARTICIPANT, "booked"})

DEFAULT_QUERY_LIMIT = 25
MAX_QUERY_LIMIT = 200


def conversion_rate(count: int, base: int) -> float:
    if base <= 0:
        return 0.0
    return round(count / base * 100, 1)


def safe_limit(
    value: Any, default: int = DEFAULT_QUERY_LIMIT, maximum: int = MAX_QUERY_LIMIT
) -> int:
    try:
        n = int(str(value if value is not None else "").strip())
    except ValueError:
        return default
    if n <= 0:
        return default
    return min(n, maximum)


def analytics_range(
    start: Optional[str], end: Optional[str]
) -> Tuple[Optional[datetime], Optional[datetime]]:
    """Parse an optional inclusive range; the end is stretched to end of day."""
    start_dt = parse_timestamp(start)
    end_dt = parse_timestamp(end)
    if start_dt is None or end_dt is None:
        return None, None
    return start_dt, end_of_day(end_dt)


def internal_ids(meetings: Iterable[Dict[str, Any]]) -> List[str]:
    return [m["internal_id"] for m in meetings if m.get("internal_id") is not None]


def present_meetings(
    meetings: Iterable[Dict[str, Any]], excluded: frozenset = NOT_PRESENT_STATUSES
) -> List[Dict[str, Any]]:
    return [m for m in meetings if m.get("status") not in excluded]


def compute_funnel(
    meetings: List[Dict[str, Any]], stage_counts: Dict[str, int]
) -> Dict[str, Dict[str, Any]]:
    """Build funnel counts and conversion percentages.

    Args:
        meetings: past bookings (already filtered by period and identity)
        stage_counts: unique booking count per event type

    Returns:
        ``{"funnel": {...}, "conversions": {...}}``; every conversion is
        relative to the planned count.
    """
    planned = len(meetings)
    participants = len(present_meetings(meetings))
    logins = stage_counts.get("login", 0)
    verification = stage_counts.get("verification_start", 0)
    adb_pair = stage_counts.get("adb_pair", 0)
    adb_connect = stage_counts.get("adb_connect", 0)

    return {
        "funnel": {
            "meetingsPlanned": planned,
            "participantsDetected": participants,
            "loginsPerformed": logins,
            "verificationStart": verification,
            "adbPair": adb_pair,
            "adbConnect": adb_connect,
        },
        "conversions": {
            "toParticipants": conversion_rate(participants, planned),
            "toLogins": conversion_rate(logins, planned),
            "toVerificationStart": conversion_rate(verification, planned),
            "toAdbPair": conversion_rate(adb_pair, planned),
            "toAdbConnect": conversion_rate(adb_connect, planned),
        },
    }


def event_types_by_meeting(events: Iterable[Dict[str, Any]]) -> Dict[str, Set[str]]:
    by_meeting: Dict[str, Set[str]] = defaultdict(set)
    for event in events:
        meeting_id = event.get("meeting_id")
        event_type = event.get("event_type")
        if not meeting_id or not event_type:
            continue
        by_meeting[meeting_id].add(event_type)
    return by_meeting


def aggregate_best_queries(
    meetings: Iterable[Dict[str, Any]],
    events: Iterable[Dict[str, Any]],
    limit: int = DEFAULT_QUERY_LIMIT,
) -> List[Dict[str, Any]]:
    """Rank contact source queries by the conversions they produced.

    Only bookings where a participant showed up count. Ties break on the
    overall stage total, then alphabetically.
    """
    types_by_meeting = event_types_by_meeting(events)
    by_query: Dict[str, Dict[str, int]] = {}

    for meeting in present_meetings(meetings, excluded=frozenset({NO_PARTICIPANT})):
        query = str(meeting.get("source_query") or "").strip()
        meeting_id = meeting.get("internal_id")
        if not query or not meeting_id:
            continue

        types = types_by_meeting.get(meeting_id, set())
        agg = by_query.setdefault(
            query,
            {
                "presentCount": 0,
                "loggedCount": 0,
                "verificationCount": 0,
                "adbPairCount": 0,
                "conversionsCount": 0,
            },
        )
        agg["presentCount"] += 1
        if "login" in types:
            agg["loggedCount"] += 1
        if "verification_start" in types:
            agg["verificationCount"] += 1
        if "adb_pair" in types:
            agg["adbPairCount"] += 1
        if CONVERSION_EVENT in types:
            agg["conversionsCount"] += 1

    items = []
    for query, agg in by_query.items():
        items.append(
            {
                "query": query,
                "presentCount": agg["presentCount"],
                "loggedCount": agg["loggedCount"],
                "overallCount": sum(agg.values()),
                "conversionsCount": agg["conversionsCount"],
            }
        )

    items.sort(key=lambda r: (-r["conversionsCount"], -r["overallCount"], r["query"]))
    return items[:limit]
