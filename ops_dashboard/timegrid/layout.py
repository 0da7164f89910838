"""Day bucketing and overlap (column-packing) layout for calendar bookings."""

from collections import Counter
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Sequence, Tuple

from ops_dashboard.models import Booking
from ops_dashboard.timegrid.window import (
    MINUTES_PER_DAY,
    ViewWindow,
    minutes_since_midnight,
    start_of_day,
)


@dataclass(frozen=True)
class LayoutEvent:
    """A booking placed in one day column of the grid.

    ``key`` is a stable id derived from the booking id, unique within one
    bucketing pass. Minutes are relative to UTC midnight of the day column.
    """

    key: str
    booking: Booking
    day_index: int
    start_minute: int
    end_minute: int
    column_index: int = 0
    column_count: int = 1


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def bucket_bookings(
    bookings: Iterable[Booking],
    window: ViewWindow,
    start_minute: int = 0,
    end_minute: int = MINUTES_PER_DAY,
) -> Dict[int, List[LayoutEvent]]:
    """Assign each booking to the day column its start falls in.

    Bookings starting outside the window are dropped. A booking running past
    midnight ends at minute 1440 of its start day. Minutes are clamped to the
    visible range and events left with no height are dropped.
    """
    buckets: Dict[int, List[LayoutEvent]] = {i: [] for i in range(window.days)}
    seen: Counter = Counter()

    for booking in bookings:
        start, end = booking.start, booking.end
        if not window.overlaps(start, end):
            continue

        day_index = window.day_index(start)
        if day_index < 0 or day_index >= window.days:
            continue

        start_min = minutes_since_midnight(start)
        if start_of_day(end) != start_of_day(start):
            end_min = MINUTES_PER_DAY
        else:
            end_min = minutes_since_midnight(end)

        start_min = _clamp(start_min, start_minute, end_minute)
        end_min = _clamp(end_min, start_minute, end_minute)
        if end_min <= start_min:
            continue

        seen[booking.id] += 1
        key = booking.id if seen[booking.id] == 1 else f"{booking.id}#{seen[booking.id]}"
        buckets[day_index].append(
            LayoutEvent(
                key=key,
                booking=booking,
                day_index=day_index,
                start_minute=start_min,
                end_minute=end_min,
            )
        )

    return buckets


def _split_clusters(ordered: Sequence[LayoutEvent]) -> List[List[LayoutEvent]]:
    # A cluster closes once an event starts at or after the latest end seen.
    clusters: List[List[LayoutEvent]] = []
    current: List[LayoutEvent] = []
    cluster_end = 0
    for event in ordered:
        if current and event.start_minute >= cluster_end:
            clusters.append(current)
            current = []
        if not current:
            cluster_end = event.end_minute
        current.append(event)
        cluster_end = max(cluster_end, event.end_minute)
    if current:
        clusters.append(current)
    return clusters


def _pack_cluster(cluster: Sequence[LayoutEvent]) -> List[LayoutEvent]:
    """First-fit column assignment within one overlap cluster."""
    active: List[Tuple[int, int]] = []  # (end_minute, column_index)
    columns: List[int] = []
    column_count = 1

    for event in cluster:
        active = [(end, col) for end, col in active if end > event.start_minute]
        used = {col for _, col in active}
        column = 0
        while column in used:
            column += 1
        active.append((event.end_minute, column))
        columns.append(column)
        column_count = max(column_count, max(col for _, col in active) + 1)

    return [
        replace(event, column_index=column, column_count=column_count)
        for event, column in zip(cluster, columns)
    ]


def compute_overlap_layout(events: Iterable[LayoutEvent]) -> List[LayoutEvent]:
    """Lay out one day's events so overlapping events never share a column.

    Events are sorted by (start, end, key) first, so any permutation of the
    same input yields the same assignment. Every event of a maximal overlap
    cluster gets the cluster's peak column count; unrelated clusters do not
    affect each other.
    """
    ordered = sorted(events, key=lambda e: (e.start_minute, e.end_minute, e.key))
    placed: List[LayoutEvent] = []
    for cluster in _split_clusters(ordered):
        placed.extend(_pack_cluster(cluster))
    return placed


def layout_window(
    bookings: Iterable[Booking],
    window: ViewWindow,
    start_minute: int = 0,
    end_minute: int = MINUTES_PER_DAY,
) -> Dict[int, List[LayoutEvent]]:
    buckets = bucket_bookings(bookings, window, start_minute, end_minute)
    return {
        day_index: compute_overlap_layout(events)
        for day_index, events in buckets.items()
    }
