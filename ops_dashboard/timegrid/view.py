"""Calendar view state: window, identity selection and fetched bookings.

All mutation goes through this object so the layout functions can stay pure.
Every fetch is tagged with a request id; only the latest request may commit,
so a slow response for a window the user has already left is discarded.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ops_dashboard.models import Booking, Identity
from ops_dashboard.timegrid.filters import (
    available_identities,
    filter_by_identity,
    reconcile_selection,
)
from ops_dashboard.timegrid.layout import LayoutEvent, layout_window
from ops_dashboard.timegrid.projection import (
    TimeGrid,
    now_indicator,
    project_event,
    scroll_offset,
)
from ops_dashboard.timegrid.window import ViewWindow, start_of_day

logger = logging.getLogger(__name__)

FetchBookings = Callable[[datetime, datetime], Awaitable[List[Booking]]]

# Shown to the user; the underlying error is only logged.
LOAD_ERROR_MESSAGE = "Could not load bookings"


@dataclass
class CalendarViewState:
    window: ViewWindow
    selected_identity: Optional[str] = None
    bookings: List[Booking] = field(default_factory=list)
    identities: List[Identity] = field(default_factory=list)
    error: Optional[str] = None
    loading: bool = False
    _latest_request: int = field(default=0, repr=False)

    # Navigation

    def navigate(self, window: ViewWindow) -> None:
        if window == self.window:
            return
        self.window = window
        # Anything still in flight belongs to the old window.
        self._latest_request += 1

    def go_next(self) -> None:
        self.navigate(self.window.next())

    def go_previous(self) -> None:
        self.navigate(self.window.previous())

    def go_today(self, now: Optional[datetime] = None) -> None:
        self.navigate(ViewWindow.today(now, self.window.days))

    def jump_to(self, value: Any) -> None:
        self.navigate(self.window.jump_to(value))

    def select_identity(self, identity_id: Optional[str]) -> None:
        self.selected_identity = identity_id or None

    # Request guard

    def begin_request(self) -> int:
        self._latest_request += 1
        self.loading = True
        self.error = None
        return self._latest_request

    def is_current(self, request_id: int) -> bool:
        return request_id == self._latest_request

    def commit(self, request_id: int, bookings: List[Booking]) -> bool:
        if not self.is_current(request_id):
            logger.debug(
                f"Discarding stale booking response {request_id} (latest {self._latest_request})"
            )
            return False
        self.bookings = list(bookings)
        self.identities = available_identities(self.bookings)
        self.selected_identity = reconcile_selection(
            self.selected_identity, self.identities
        )
        self.loading = False
        self.error = None
        return True

    def fail(self, request_id: int, message: str) -> bool:
        if not self.is_current(request_id):
            return False
        self.bookings = []
        self.identities = []
        self.loading = False
        self.error = message
        return True

    async def refresh(self, fetch: FetchBookings) -> bool:
        """Fetch bookings for the current window and commit if still latest."""
        request_id = self.begin_request()
        start, end = self.window.query_range()
        try:
            bookings = await fetch(start, end)
        except Exception as e:
            logger.error(f"Failed to load bookings for {start:%Y-%m-%d}: {e}")
            self.fail(request_id, LOAD_ERROR_MESSAGE)
            return False
        return self.commit(request_id, bookings)

    # Derived views

    @property
    def visible_bookings(self) -> List[Booking]:
        return filter_by_identity(self.bookings, self.selected_identity)

    def layout(self, grid: TimeGrid) -> Dict[int, List[LayoutEvent]]:
        return layout_window(
            self.visible_bookings, self.window, grid.start_minute, grid.end_minute
        )

    def render(self, grid: TimeGrid, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or datetime.now(timezone.utc)
        layout = self.layout(grid)
        visible = self.visible_bookings
        today = start_of_day(now)

        days = []
        for index, day_start in enumerate(self.window.day_starts):
            events = []
            for event in layout.get(index, []):
                box = project_event(event, grid)
                events.append(
                    {
                        **box.to_dict(),
                        "key": event.key,
                        "startMinute": event.start_minute,
                        "endMinute": event.end_minute,
                        "columnIndex": event.column_index,
                        "columnCount": event.column_count,
                        "title": event.booking.title,
                        "subtitle": event.booking.subtitle,
                        "booking": event.booking.to_dict(),
                    }
                )
            days.append(
                {
                    "index": index,
                    "date": day_start.date().isoformat(),
                    "weekday": day_start.strftime("%A"),
                    "isToday": day_start == today,
                    "bookingCount": sum(
                        1 for b in visible if self.window.day_index(b.start) == index
                    ),
                    "events": events,
                }
            )

        indicator = now_indicator(self.window, grid, now)
        return {
            "window": self.window.to_dict(),
            "label": self.window.label(now),
            "grid": grid.to_dict(),
            "days": days,
            "now": indicator.to_dict() if indicator else None,
            "scrollTop": scroll_offset(grid, now),
            "identities": [i.to_dict() for i in self.identities],
            "selectedIdentity": self.selected_identity,
            "error": self.error,
        }
