"""Tests for calendar view state, navigation and the stale-response guard."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from ops_dashboard.timegrid.projection import TimeGrid
from ops_dashboard.timegrid.view import LOAD_ERROR_MESSAGE, CalendarViewState
from ops_dashboard.timegrid.window import ViewWindow

ANCHOR = datetime(2024, 10, 21, tzinfo=timezone.utc)


@pytest.fixture
def state():
    return CalendarViewState(window=ViewWindow(anchor=ANCHOR))


class TestRequestGuard:
    def test_only_latest_request_commits(self, state, make_booking):
        first = state.begin_request()
        second = state.begin_request()

        assert state.commit(first, [make_booking("old")]) is False
        assert state.bookings == []
        assert state.commit(second, [make_booking("new")]) is True
        assert [b.id for b in state.bookings] == ["new"]
        assert state.loading is False

    def test_navigation_invalidates_in_flight_request(self, state, make_booking):
        request_id = state.begin_request()
        state.go_next()

        assert not state.is_current(request_id)
        assert state.commit(request_id, [make_booking("stale")]) is False

    def test_stale_failure_is_ignored(self, state):
        stale = state.begin_request()
        state.begin_request()
        assert state.fail(stale, "boom") is False
        assert state.error is None

    def test_failure_clears_bookings(self, state, make_booking):
        state.commit(state.begin_request(), [make_booking("a")])
        assert state.fail(state.begin_request(), "HTTP 500") is True
        assert state.bookings == []
        assert state.error == "HTTP 500"


class TestRefresh:
    @pytest.mark.asyncio
    async def test_refresh_fetches_query_range(self, state, make_booking):
        calls = []

        async def fetch(start, end):
            calls.append((start, end))
            return [make_booking("a")]

        assert await state.refresh(fetch) is True
        assert calls == [state.window.query_range()]
        assert [b.id for b in state.bookings] == ["a"]

    @pytest.mark.asyncio
    async def test_slow_response_for_old_window_is_discarded(self, state, make_booking):
        release_slow = asyncio.Event()

        async def slow_fetch(start, end):
            await release_slow.wait()
            return [make_booking("slow")]

        async def fast_fetch(start, end):
            return [make_booking("fast", day=1)]

        slow = asyncio.create_task(state.refresh(slow_fetch))
        await asyncio.sleep(0)

        state.go_next()
        assert await state.refresh(fast_fetch) is True

        release_slow.set()
        assert await slow is False
        assert [b.id for b in state.bookings] == ["fast"]

    @pytest.mark.asyncio
    async def test_fetch_error_becomes_view_error(self, state):
        async def broken(start, end):
            raise RuntimeError("connection refused")

        assert await state.refresh(broken) is False
        assert state.error == LOAD_ERROR_MESSAGE
        assert "connection refused" not in state.error
        assert state.loading is False


class TestSelection:
    def test_selection_dropped_when_identity_leaves_window(
        self, state, make_booking, identities
    ):
        state.select_identity("id-bob")
        state.commit(
            state.begin_request(), [make_booking("a", identity=identities["alice"])]
        )
        assert state.selected_identity is None

    def test_selection_filters_visible_bookings(self, state, make_booking, identities):
        state.select_identity("id-alice")
        state.commit(
            state.begin_request(),
            [
                make_booking("a", identity=identities["alice"]),
                make_booking("b", identity=identities["bob"]),
            ],
        )
        assert [b.id for b in state.visible_bookings] == ["a"]
        assert [i.id for i in state.identities] == ["id-alice", "id-bob"]


class TestNavigation:
    def test_prev_next_today_jump(self, state):
        state.go_next()
        assert state.window.anchor == ANCHOR + timedelta(days=1)
        state.go_previous()
        state.go_previous()
        assert state.window.anchor == ANCHOR - timedelta(days=1)
        state.go_today(ANCHOR + timedelta(days=10, hours=3))
        assert state.window.anchor == ANCHOR + timedelta(days=10)
        state.jump_to("2025-02-01")
        assert state.window.anchor.date().isoformat() == "2025-02-01"

    def test_same_window_keeps_request_current(self, state):
        request_id = state.begin_request()
        state.navigate(ViewWindow(anchor=ANCHOR))
        assert state.is_current(request_id)


def test_render_shapes_days_and_events(state, make_booking, identities):
    state.commit(
        state.begin_request(),
        [
            make_booking("a", hour=9, identity=identities["alice"]),
            make_booking("b", hour=9, minute=15),
            make_booking("c", day=2, hour=14, participant_email="p@example.com"),
        ],
    )
    now = ANCHOR + timedelta(hours=8)

    rendered = state.render(TimeGrid(), now)

    assert rendered["label"] == "Today - 24 October"
    assert [d["bookingCount"] for d in rendered["days"]] == [2, 0, 1, 0]
    assert rendered["days"][0]["isToday"] is True
    day0 = {e["key"]: e for e in rendered["days"][0]["events"]}
    assert day0["a"]["columnCount"] == 2
    assert day0["b"]["columnIndex"] == 1
    assert day0["a"]["subtitle"] == "Alice Martin • Acme"
    assert rendered["days"][2]["events"][0]["subtitle"] == "p@example.com"
    assert rendered["now"] == {"dayIndex": 0, "topPx": pytest.approx(800), "label": "08:00"}
    assert rendered["scrollTop"] == pytest.approx(600)
    assert rendered["error"] is None
