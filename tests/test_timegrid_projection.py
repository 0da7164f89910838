"""Tests for pixel projection, the now indicator and the initial scroll."""

from datetime import datetime, timedelta, timezone

import pytest

from ops_dashboard.config import CalendarConfig
from ops_dashboard.models import Booking
from ops_dashboard.timegrid.layout import LayoutEvent, layout_window
from ops_dashboard.timegrid.projection import (
    TimeGrid,
    now_indicator,
    project_event,
    scroll_offset,
)
from ops_dashboard.timegrid.window import ViewWindow

UTC = timezone.utc
ANCHOR = datetime(2024, 10, 21, tzinfo=UTC)


def _event(start, end, column_index=0, column_count=1):
    booking = Booking(id="b", start=ANCHOR + timedelta(minutes=start))
    return LayoutEvent(
        key="b",
        booking=booking,
        day_index=0,
        start_minute=start,
        end_minute=end,
        column_index=column_index,
        column_count=column_count,
    )


class TestTimeGrid:
    def test_defaults(self):
        grid = TimeGrid()
        assert grid.pixels_per_minute == pytest.approx(50 / 30)
        assert grid.slot_count == 48
        assert grid.height_px == 2400
        assert grid.slot_labels()[:3] == ["00:00", "00:30", "01:00"]

    def test_from_config(self):
        grid = TimeGrid.from_config(CalendarConfig(day_start="08:00", day_end="18:00"))
        assert grid.start_minute == 480
        assert grid.slot_count == 20
        assert grid.minute_to_px(420) == 0

    def test_invalid_range(self):
        with pytest.raises(ValueError):
            TimeGrid(start_minute=600, end_minute=600)


class TestProjectEvent:
    def test_single_column_spans_full_width(self):
        box = project_event(_event(540, 570), TimeGrid())
        assert box.left_fraction == 0
        assert box.width_fraction == 1
        assert box.width_css == "calc(100.0000% - 4px)"
        assert box.left_css == "calc(0.0000% + 2px)"

    def test_position_and_height(self):
        box = project_event(_event(540, 600), TimeGrid())
        assert box.top_px == pytest.approx(900)
        assert box.height_px == pytest.approx(100)

    def test_short_event_gets_minimum_height(self):
        box = project_event(_event(540, 542), TimeGrid())
        assert box.height_px == 8

    def test_columns_split_width(self):
        grid = TimeGrid()
        boxes = [project_event(_event(540, 600, i, 3), grid) for i in range(3)]
        assert [b.left_fraction for b in boxes] == pytest.approx([0, 1 / 3, 2 / 3])
        assert all(b.width_fraction == pytest.approx(1 / 3) for b in boxes)
        assert boxes[-1].left_fraction + boxes[-1].width_fraction <= 1 + 1e-9

    def test_offset_by_visible_start(self):
        grid = TimeGrid(start_minute=480, end_minute=1080)
        assert project_event(_event(480, 510), grid).top_px == 0


class TestNowIndicator:
    def test_absent_when_today_not_visible(self):
        window = ViewWindow(anchor=ANCHOR)
        now = ANCHOR + timedelta(days=5, hours=10)
        assert now_indicator(window, TimeGrid(), now) is None

    def test_position_on_today(self):
        window = ViewWindow(anchor=ANCHOR)
        now = ANCHOR + timedelta(days=2, hours=10, minutes=15)
        indicator = now_indicator(window, TimeGrid(), now)
        assert indicator.day_index == 2
        assert indicator.top_px == pytest.approx(615 * 50 / 30)
        assert indicator.label == "10:15"

    def test_shares_column_and_offset_with_booking_starting_now(self, make_booking):
        window = ViewWindow(anchor=ANCHOR)
        grid = TimeGrid()
        booking = make_booking("late", day=0, hour=23, minute=30, duration=20)
        (event,) = layout_window([booking], window)[0]

        indicator = now_indicator(window, grid, booking.start)
        assert indicator.day_index == event.day_index == 0
        assert indicator.top_px == project_event(event, grid).top_px
        assert indicator.label == "23:30"

        local_now = booking.start.astimezone(timezone(timedelta(hours=2)))
        assert now_indicator(window, grid, local_now) == indicator

    def test_to_dict(self):
        indicator = now_indicator(ViewWindow(anchor=ANCHOR), TimeGrid(), ANCHOR)
        assert indicator.to_dict() == {"dayIndex": 0, "topPx": 0, "label": "00:00"}


def test_scroll_offset_leads_current_time():
    now = ANCHOR + timedelta(hours=9)
    assert scroll_offset(TimeGrid(), now) == pytest.approx(900 - 200)
    assert scroll_offset(TimeGrid(), ANCHOR + timedelta(minutes=30)) == 0
