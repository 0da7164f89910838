from datetime import datetime, timezone
from typing import Optional
import logging

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import HTMLResponse, JSONResponse

from ops_dashboard.timegrid.projection import TimeGrid, now_indicator
from ops_dashboard.timegrid.view import CalendarViewState
from ops_dashboard.timegrid.window import ViewWindow, parse_anchor
from ops_dashboard.web import database as db
from ops_dashboard.web import get_config, get_template_context, templates

router = APIRouter(tags=["calendar"])
logger = logging.getLogger(__name__)


def _window_from_params(anchor: Optional[str], now: datetime) -> ViewWindow:
    days = get_config().calendar.visible_days
    if anchor and parse_anchor(anchor) is None:
        raise HTTPException(status_code=400, detail=f"Invalid anchor date: {anchor}")
    return ViewWindow.from_param(anchor, now=now, days=days)


async def _fetch_bookings(start: datetime, end: datetime):
    # The identity filter is applied client-side so the identity list
    # always reflects the whole window.
    return db.get_bookings(start, end)


async def _load_state(
    anchor: Optional[str], identity_id: Optional[str], now: datetime
) -> CalendarViewState:
    # Missing database settings surface as the configuration error response,
    # not as a per-window load failure.
    get_config().database.require()
    state = CalendarViewState(window=_window_from_params(anchor, now))
    state.select_identity(identity_id)
    await state.refresh(_fetch_bookings)
    return state


@router.get("/api/calendar/layout")
async def calendar_layout(
    anchor: Optional[str] = Query(None),
    identity_id: Optional[str] = Query(None, alias="identityId"),
):
    calendar_config = get_config().calendar
    now = datetime.now(timezone.utc)
    state = await _load_state(anchor, identity_id, now)
    rendered = state.render(TimeGrid.from_config(calendar_config), now)
    status_code = 500 if state.error else 200
    return JSONResponse(status_code=status_code, content=rendered)


@router.get("/api/calendar/now")
async def calendar_now(anchor: Optional[str] = Query(None)):
    """Current-time indicator only; polled on a timer, never hits the database."""
    calendar_config = get_config().calendar
    now = datetime.now(timezone.utc)
    window = _window_from_params(anchor, now)
    indicator = now_indicator(window, TimeGrid.from_config(calendar_config), now)
    return {"now": indicator.to_dict() if indicator else None}


@router.get("/calendar", response_class=HTMLResponse)
async def calendar_view(
    request: Request,
    anchor: Optional[str] = Query(None),
    identity_id: Optional[str] = Query(None, alias="identityId"),
):
    calendar_config = get_config().calendar
    grid = TimeGrid.from_config(calendar_config)
    now = datetime.now(timezone.utc)
    state = await _load_state(anchor, identity_id, now)
    rendered = state.render(grid, now)

    context = get_template_context(
        request,
        page="calendar",
        calendar=rendered,
        slot_labels=grid.slot_labels(),
        now_tick_seconds=calendar_config.now_tick_seconds,
        error=state.error,
    )
    return templates.TemplateResponse(request, "calendar.html", context)
