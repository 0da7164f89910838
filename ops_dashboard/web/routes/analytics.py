from datetime import datetime, timezone
from typing import Optional
import logging

from fastapi import APIRouter, Query, Request
from fastapi.responses import HTMLResponse

from ops_dashboard import analytics
from ops_dashboard.web import database as db
from ops_dashboard.web import get_template_context, templates

router = APIRouter(tags=["analytics"])
logger = logging.getLogger(__name__)


def _period(start: Optional[datetime], end: Optional[datetime]) -> Optional[dict]:
    if start is None or end is None:
        return None
    return {"start": start.isoformat(), "end": end.isoformat()}


def _funnel_payload(
    start: Optional[str], end: Optional[str], identity_id: Optional[str]
) -> dict:
    now = datetime.now(timezone.utc)
    range_start, range_end = analytics.analytics_range(start, end)
    identity_id = identity_id or None

    # Identity choices come from the unfiltered period so the selector
    # never empties itself.
    period_meetings = db.get_past_meetings(now, range_start, range_end)
    available = db.get_identities(
        sorted({m["identity_id"] for m in period_meetings if m.get("identity_id")})
    )

    if identity_id:
        meetings = [m for m in period_meetings if m.get("identity_id") == identity_id]
    else:
        meetings = period_meetings

    # Event stages only count bookings where the participant showed up.
    ids = analytics.internal_ids(analytics.present_meetings(meetings))
    stage_counts = {
        event_type: db.count_meetings_with_event(event_type, ids)
        for event_type in analytics.STAGE_EVENT_TYPES
    }
    result = analytics.compute_funnel(meetings, stage_counts)

    logger.debug(
        f"Funnel over {len(meetings)} meetings "
        f"(identity={identity_id}, period={range_start} - {range_end})"
    )

    return {
        **result,
        "availableIdentities": [i.to_dict() for i in available],
        "period": _period(range_start, range_end),
        "filters": {"identityId": identity_id},
    }


@router.get("/api/analytics")
async def get_analytics(
    start: Optional[str] = Query(None),
    end: Optional[str] = Query(None),
    identity_id: Optional[str] = Query(None, alias="identityId"),
):
    return _funnel_payload(start, end, identity_id)


@router.get("/api/best-queries")
async def get_best_queries(
    start: Optional[str] = Query(None),
    end: Optional[str] = Query(None),
    identity_id: Optional[str] = Query(None, alias="identityId"),
    limit: Optional[str] = Query(None),
):
    now = datetime.now(timezone.utc)
    range_start, range_end = analytics.analytics_range(start, end)
    safe = analytics.safe_limit(limit)

    meetings = db.get_past_meetings_with_queries(
        now, range_start, range_end, identity_id or None
    )
    events = db.get_events_for_meetings(analytics.internal_ids(meetings))
    items = analytics.aggregate_best_queries(meetings, events, limit=safe)

    return {
        "items": items,
        "limit": safe,
        "period": _period(range_start, range_end),
        "filters": {"identityId": identity_id or None},
    }


@router.get("/api/conversions")
async def get_conversions(
    start: Optional[str] = Query(None),
    end: Optional[str] = Query(None),
    identity_id: Optional[str] = Query(None, alias="identityId"),
    page: int = Query(1, ge=1),
    limit: Optional[str] = Query(None),
):
    now = datetime.now(timezone.utc)
    range_start, range_end = analytics.analytics_range(start, end)
    safe = analytics.safe_limit(limit)
    offset = (page - 1) * safe

    rows, total = db.get_conversions(
        now,
        range_start,
        range_end,
        identity_id or None,
        limit=safe,
        offset=offset,
        conversion_event=analytics.CONVERSION_EVENT,
    )

    items = []
    for row in rows:
        start_at = row.get("meeting_start_at")
        items.append(
            {
                "id": row.get("id"),
                "internalId": row.get("internal_id"),
                "start": start_at.isoformat()
                if isinstance(start_at, datetime)
                else start_at,
                "title": row.get("meeting_title"),
                "participantEmail": row.get("participant_email"),
                "status": row.get("status"),
                "identityId": row.get("identity_id"),
                "sourceQuery": row.get("source_query"),
                "eventTypes": list(row.get("event_types") or []),
            }
        )

    return {
        "items": items,
        "page": page,
        "limit": safe,
        "total": total,
        "pages": (total + safe - 1) // safe if total else 0,
    }


@router.get("/analytics", response_class=HTMLResponse)
async def analytics_view(
    request: Request,
    start: Optional[str] = Query(None),
    end: Optional[str] = Query(None),
    identity_id: Optional[str] = Query(None, alias="identityId"),
):
    payload = _funnel_payload(start, end, identity_id)
    return templates.TemplateResponse(
        request,
        "analytics.html",
        get_template_context(
            request,
            page="analytics",
            analytics=payload,
            start=start or "",
            end=end or "",
            identity_id=identity_id or "",
        ),
    )
