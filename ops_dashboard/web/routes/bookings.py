import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from ops_dashboard.timegrid.window import current_week_range, parse_timestamp
from ops_dashboard.web import database as db

router = APIRouter(tags=["bookings"])
logger = logging.getLogger(__name__)


@router.get("/api/bookings")
async def list_bookings(
    start: Optional[str] = Query(None),
    end: Optional[str] = Query(None),
    identity_id: Optional[str] = Query(None, alias="identityId"),
):
    """Bookings starting in [start, end]; defaults to the current UTC week."""
    if start and end:
        range_start = parse_timestamp(start)
        range_end = parse_timestamp(end)
        if range_start is None or range_end is None:
            raise HTTPException(
                status_code=400,
                detail="start and end must be ISO 8601 timestamps",
            )
    else:
        range_start, range_end = current_week_range()

    bookings = db.get_bookings(range_start, range_end, identity_id or None)
    logger.debug(f"Loaded {len(bookings)} bookings for {range_start} - {range_end}")

    return {
        "bookings": [b.to_dict() for b in bookings],
        "rangeStart": range_start.isoformat(),
        "rangeEnd": range_end.isoformat(),
    }
