"""
Direct PostgreSQL connection for the web UI - read-only access.

Expected tables: ``meetings``, ``identities``, ``events`` and ``contacts``.
"""

from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple
import logging

import psycopg_pool
from psycopg.rows import dict_row

from ops_dashboard.models import Booking, Identity
from ops_dashboard.timegrid.filters import sort_identities

logger = logging.getLogger(__name__)

_pool = None


def get_pool():
    global _pool
    if _pool is None:
        from ops_dashboard.web import get_config

        db = get_config().database.require()
        _pool = psycopg_pool.ConnectionPool(db.conninfo, min_size=1, max_size=5)
        logger.info("Web UI database pool initialized")
    return _pool


def close_pool():
    global _pool
    if _pool is not None:
        _pool.close()
        _pool = None
        logger.info("Web UI database pool closed")


@contextmanager
def get_conn():
    pool = get_pool()
    with pool.connection() as conn:
        yield conn


def _fetch_all(sql: str, params: Sequence[Any]) -> List[Dict[str, Any]]:
    with get_conn() as conn:
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(sql, params)
            return cur.fetchall()


def _past_meeting_filters(
    now: datetime,
    start: Optional[datetime],
    end: Optional[datetime],
    identity_id: Optional[str],
) -> Tuple[str, List[Any]]:
    clauses = ["m.meeting_start_at < %s"]
    params: List[Any] = [now]
    if start and end:
        clauses.append("m.meeting_start_at >= %s AND m.meeting_start_at <= %s")
        params.extend([start, end])
    if identity_id:
        clauses.append("m.identity_id = %s")
        params.append(identity_id)
    return " AND ".join(clauses), params


def get_bookings(
    start: datetime, end: datetime, identity_id: Optional[str] = None
) -> List[Booking]:
    """Bookings whose start falls in the inclusive range, oldest first."""
    sql = """
        SELECT m.id, m.internal_id, m.participant_email, m.status,
               m.meeting_start_at, m.meeting_duration_minutes, m.meeting_title,
               m.meeting_url, m.comment, m.created_at, m.identity_id,
               i.fullname AS identity_fullname, i.company AS identity_company,
               i.email AS identity_email
        FROM meetings m
        LEFT JOIN identities i ON i.id = m.identity_id
        WHERE m.meeting_start_at >= %s AND m.meeting_start_at <= %s {identity_filter}
        ORDER BY m.meeting_start_at ASC
    """
    params: List[Any] = [start, end]
    identity_filter = ""
    if identity_id:
        identity_filter = "AND m.identity_id = %s"
        params.append(identity_id)
    sql = sql.format(identity_filter=identity_filter)

    rows = _fetch_all(sql, params)
    bookings = []
    for row in rows:
        booking = Booking.from_row(row)
        if booking is not None:
            bookings.append(booking)
    return bookings


def get_identities(identity_ids: Sequence[str]) -> List[Identity]:
    """Identities for the given ids, sorted by display name."""
    if not identity_ids:
        return []
    rows = _fetch_all(
        """
        SELECT id, fullname, company, email
        FROM identities
        WHERE id = ANY(%s)
        """,
        (list(identity_ids),),
    )
    return sort_identities(
        identity for identity in (Identity.from_dict(row) for row in rows) if identity
    )


def get_past_meetings(
    now: datetime,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    identity_id: Optional[str] = None,
) -> List[Dict[str, Any]]:
    where, params = _past_meeting_filters(now, start, end, identity_id)
    return _fetch_all(
        f"""
        SELECT m.id, m.internal_id, m.meeting_start_at, m.status, m.identity_id
        FROM meetings m
        WHERE {where}
        ORDER BY m.meeting_start_at ASC
        """,
        params,
    )


def count_meetings_with_event(event_type: str, meeting_ids: Sequence[str]) -> int:
    """Number of distinct meetings having at least one event of this type."""
    if not meeting_ids:
        return 0
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT COUNT(DISTINCT meeting_id)
                FROM events
                WHERE event_type = %s AND meeting_id = ANY(%s)
                """,
                (event_type, list(meeting_ids)),
            )
            row = cur.fetchone()
            return int(row[0]) if row else 0


def get_events_for_meetings(meeting_ids: Sequence[str]) -> List[Dict[str, Any]]:
    if not meeting_ids:
        return []
    return _fetch_all(
        """
        SELECT meeting_id, event_type
        FROM events
        WHERE meeting_id = ANY(%s)
        """,
        (list(meeting_ids),),
    )


def get_past_meetings_with_queries(
    now: datetime,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    identity_id: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """Past meetings with the contact search query that produced them."""
    where, params = _past_meeting_filters(now, start, end, identity_id)
    return _fetch_all(
        f"""
        SELECT m.internal_id, m.meeting_start_at, m.status, m.identity_id,
               m.contact_id, c.source_query
        FROM meetings m
        LEFT JOIN contacts c ON c.id = m.contact_id
        WHERE {where}
        ORDER BY m.meeting_start_at ASC
        """,
        params,
    )


def get_conversions(
    now: datetime,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    identity_id: Optional[str] = None,
    limit: int = 25,
    offset: int = 0,
    conversion_event: str = "adb_connect",
) -> Tuple[List[Dict[str, Any]], int]:
    """Page of past meetings that reached the conversion event, newest first.

    Returns (rows, total) where each row carries its distinct event types.
    """
    where, params = _past_meeting_filters(now, start, end, identity_id)
    where += """
        AND EXISTS (
            SELECT 1 FROM events e
            WHERE e.meeting_id = m.internal_id AND e.event_type = %s
        )
    """
    params.append(conversion_event)

    with get_conn() as conn:
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(f"SELECT COUNT(*) AS total FROM meetings m WHERE {where}", params)
            total_row = cur.fetchone()
            total = int(total_row["total"]) if total_row else 0

            cur.execute(
                f"""
                SELECT m.id, m.internal_id, m.meeting_start_at, m.meeting_title,
                       m.participant_email, m.status, m.identity_id,
                       c.source_query,
                       ARRAY(
                           SELECT DISTINCT e.event_type FROM events e
                           WHERE e.meeting_id = m.internal_id
                           ORDER BY e.event_type
                       ) AS event_types
                FROM meetings m
                LEFT JOIN contacts c ON c.id = m.contact_id
                WHERE {where}
                ORDER BY m.meeting_start_at DESC
                LIMIT %s OFFSET %s
                """,
                [*params, limit, offset],
            )
            return cur.fetchall(), total


def ping() -> bool:
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT 1")
            return cur.fetchone() is not None
