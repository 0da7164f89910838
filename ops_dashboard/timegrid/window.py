"""UTC day arithmetic and the visible calendar window."""

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, List, Optional, Tuple

DAY = timedelta(days=1)
MINUTES_PER_DAY = 24 * 60
DEFAULT_VISIBLE_DAYS = 4


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a timestamp into an aware UTC datetime.

    Strings without an offset are interpreted as UTC, matching how the
    booking store writes ``meeting_start_at``. Returns None for empty or
    unparseable values.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def start_of_day(value: datetime) -> datetime:
    return value.astimezone(timezone.utc).replace(
        hour=0, minute=0, second=0, microsecond=0
    )


def end_of_day(value: datetime) -> datetime:
    """Last millisecond of the UTC day containing ``value``."""
    return start_of_day(value) + DAY - timedelta(milliseconds=1)


def minutes_since_midnight(value: datetime) -> int:
    value = value.astimezone(timezone.utc)
    return value.hour * 60 + value.minute


def time_to_minutes(text: str) -> int:
    """Convert ``HH:MM`` or ``HH:MM:SS`` to minutes; ``24:00`` gives 1440."""
    parts = [int(p) for p in str(text).split(":")]
    hours = parts[0] if parts else 0
    minutes = parts[1] if len(parts) > 1 else 0
    return hours * 60 + minutes


def current_week_range(now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """Monday 00:00 UTC through Sunday 23:59:59.999 UTC of the current week."""
    now = now or datetime.now(timezone.utc)
    monday = start_of_day(now) - timedelta(days=now.astimezone(timezone.utc).weekday())
    sunday = monday + timedelta(days=6)
    return monday, end_of_day(sunday)


def parse_anchor(value: Any) -> Optional[datetime]:
    """Parse a ``YYYY-MM-DD`` (or full ISO timestamp) into a UTC midnight."""
    dt = parse_timestamp(value)
    if dt is None:
        return None
    return start_of_day(dt)


@dataclass(frozen=True)
class ViewWindow:
    """A run of consecutive UTC days starting at ``anchor``.

    Windows are immutable; navigation returns a new window.
    """

    anchor: datetime
    days: int = DEFAULT_VISIBLE_DAYS

    def __post_init__(self):
        if self.days < 1:
            raise ValueError("A view window needs at least one day")
        object.__setattr__(self, "anchor", start_of_day(self.anchor))

    @classmethod
    def today(
        cls, now: Optional[datetime] = None, days: int = DEFAULT_VISIBLE_DAYS
    ) -> "ViewWindow":
        return cls(anchor=now or datetime.now(timezone.utc), days=days)

    @classmethod
    def from_param(
        cls,
        value: Any,
        now: Optional[datetime] = None,
        days: int = DEFAULT_VISIBLE_DAYS,
    ) -> "ViewWindow":
        """Build a window from a query parameter, defaulting to today."""
        anchor = parse_anchor(value)
        if anchor is None:
            return cls.today(now, days)
        return cls(anchor=anchor, days=days)

    @property
    def start(self) -> datetime:
        return self.anchor

    @property
    def end(self) -> datetime:
        """Exclusive end: midnight after the last visible day."""
        return self.anchor + self.days * DAY

    @property
    def day_starts(self) -> List[datetime]:
        return [self.anchor + i * DAY for i in range(self.days)]

    def query_range(self) -> Tuple[datetime, datetime]:
        """Inclusive range handed to the booking query service."""
        return self.anchor, end_of_day(self.anchor + (self.days - 1) * DAY)

    def shift(self, days: int) -> "ViewWindow":
        return ViewWindow(anchor=self.anchor + days * DAY, days=self.days)

    def next(self) -> "ViewWindow":
        return self.shift(1)

    def previous(self) -> "ViewWindow":
        return self.shift(-1)

    def jump_to(self, value: Any) -> "ViewWindow":
        anchor = parse_anchor(value)
        if anchor is None:
            raise ValueError(f"Invalid date: {value!r}")
        return ViewWindow(anchor=anchor, days=self.days)

    def day_index(self, value: datetime) -> int:
        """Day column of ``value``; may fall outside ``[0, days)``."""
        return (start_of_day(value) - self.anchor) // DAY

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return end > self.start and start < self.end

    def label(self, now: Optional[datetime] = None) -> str:
        """Human-readable range, e.g. ``Today - 22 October``."""
        now = now or datetime.now(timezone.utc)
        last = self.anchor + (self.days - 1) * DAY
        end_str = f"{last.day} {last.strftime('%B')}"
        if self.anchor == start_of_day(now):
            return f"Today - {end_str}"
        return f"{self.anchor.day} {self.anchor.strftime('%B')} - {end_str}"

    def to_dict(self) -> dict:
        start, end = self.query_range()
        return {
            "anchor": self.anchor.date().isoformat(),
            "days": self.days,
            "start": start.isoformat(),
            "end": end.isoformat(),
            "previous": self.previous().anchor.date().isoformat(),
            "next": self.next().anchor.date().isoformat(),
        }
