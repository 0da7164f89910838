"""Projection of laid-out events and the current time onto the pixel grid."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from ops_dashboard.timegrid.layout import LayoutEvent
from ops_dashboard.timegrid.window import (
    MINUTES_PER_DAY,
    ViewWindow,
    minutes_since_midnight,
)

SCROLL_LEAD_PX = 200


@dataclass(frozen=True)
class TimeGrid:
    """Vertical geometry of the calendar body."""

    start_minute: int = 0
    end_minute: int = MINUTES_PER_DAY
    slot_minutes: int = 30
    slot_height_px: float = 50
    min_event_height_px: float = 8
    column_gap_px: float = 4

    def __post_init__(self):
        if not 0 <= self.start_minute < self.end_minute <= MINUTES_PER_DAY:
            raise ValueError(
                f"Invalid visible range: {self.start_minute}-{self.end_minute}"
            )
        if self.slot_minutes <= 0 or self.slot_height_px <= 0:
            raise ValueError("Slot size must be positive")

    @classmethod
    def from_config(cls, calendar_config) -> "TimeGrid":
        return cls(
            start_minute=calendar_config.start_minute,
            end_minute=calendar_config.end_minute,
            slot_minutes=calendar_config.slot_minutes,
            slot_height_px=calendar_config.slot_height_px,
            min_event_height_px=calendar_config.min_event_height_px,
            column_gap_px=calendar_config.column_gap_px,
        )

    @property
    def pixels_per_minute(self) -> float:
        return self.slot_height_px / self.slot_minutes

    @property
    def slot_count(self) -> int:
        return max(1, round((self.end_minute - self.start_minute) / self.slot_minutes))

    @property
    def height_px(self) -> float:
        return self.slot_count * self.slot_height_px

    def clamp_minute(self, minute: float) -> float:
        return max(self.start_minute, min(self.end_minute, minute))

    def minute_to_px(self, minute: float) -> float:
        return (self.clamp_minute(minute) - self.start_minute) * self.pixels_per_minute

    def slot_labels(self) -> List[str]:
        labels = []
        for i in range(self.slot_count):
            minute = self.start_minute + i * self.slot_minutes
            labels.append(f"{minute // 60:02d}:{minute % 60:02d}")
        return labels

    def to_dict(self) -> dict:
        return {
            "startMinute": self.start_minute,
            "endMinute": self.end_minute,
            "slotMinutes": self.slot_minutes,
            "slotHeightPx": self.slot_height_px,
            "slotCount": self.slot_count,
            "heightPx": self.height_px,
            "pixelsPerMinute": self.pixels_per_minute,
        }


@dataclass(frozen=True)
class EventBox:
    """Absolute placement of one event inside its day column.

    Fractions are of the day column width; ``gap_px`` is split as half a gap
    of left offset and a full gap off the width.
    """

    top_px: float
    height_px: float
    left_fraction: float
    width_fraction: float
    gap_px: float

    @property
    def left_css(self) -> str:
        return f"calc({self.left_fraction * 100:.4f}% + {self.gap_px / 2:g}px)"

    @property
    def width_css(self) -> str:
        return f"calc({self.width_fraction * 100:.4f}% - {self.gap_px:g}px)"

    def to_dict(self) -> dict:
        return {
            "topPx": self.top_px,
            "heightPx": self.height_px,
            "leftFraction": self.left_fraction,
            "widthFraction": self.width_fraction,
            "left": self.left_css,
            "width": self.width_css,
        }


def project_event(event: LayoutEvent, grid: TimeGrid) -> EventBox:
    ppm = grid.pixels_per_minute
    top = (event.start_minute - grid.start_minute) * ppm
    height = max(grid.min_event_height_px, (event.end_minute - event.start_minute) * ppm)

    column_count = max(1, event.column_count)
    width = 1 / column_count
    left = min(event.column_index * width, 1 - width)

    return EventBox(
        top_px=top,
        height_px=height,
        left_fraction=left,
        width_fraction=width,
        gap_px=grid.column_gap_px,
    )


@dataclass(frozen=True)
class NowIndicator:
    day_index: int
    top_px: float
    label: str

    def to_dict(self) -> dict:
        return {"dayIndex": self.day_index, "topPx": self.top_px, "label": self.label}


def _utc_now(now: Optional[datetime]) -> datetime:
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def now_indicator(
    window: ViewWindow,
    grid: TimeGrid,
    now: Optional[datetime] = None,
) -> Optional[NowIndicator]:
    """Position of the "now" line, or None when today is not visible.

    Uses the same UTC day columns and minutes as the bookings, so the line
    crosses whatever is happening right now. Depends only on the wall clock
    and the window, so it can be recomputed on a timer without refetching.
    """
    now = _utc_now(now)
    day_index = window.day_index(now)
    if day_index < 0 or day_index >= window.days:
        return None

    minutes = minutes_since_midnight(now)
    return NowIndicator(
        day_index=day_index,
        top_px=grid.minute_to_px(minutes),
        label=f"{now.hour:02d}:{now.minute:02d}",
    )


def scroll_offset(
    grid: TimeGrid,
    now: Optional[datetime] = None,
    lead_px: float = SCROLL_LEAD_PX,
) -> float:
    """Initial scroll position that brings the current hour into view."""
    minutes = minutes_since_midnight(_utc_now(now))
    return max(0.0, (minutes - grid.start_minute) * grid.pixels_per_minute - lead_px)
