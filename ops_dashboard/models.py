"""Data models shared by the web layer and the layout engine."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from ops_dashboard.timegrid.window import parse_timestamp

logger = logging.getLogger(__name__)

DEFAULT_DURATION_MINUTES = 30
DEFAULT_TITLE = "Meeting"
UNKNOWN_NAME = "Unknown"


@dataclass(frozen=True)
class Identity:
    """Organizer identity a booking was made for."""

    id: str
    fullname: str = UNKNOWN_NAME
    company: str = ""
    email: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> Optional["Identity"]:
        if not isinstance(data, dict) or not data.get("id"):
            return None
        return cls(
            id=str(data["id"]),
            fullname=data.get("fullname") or UNKNOWN_NAME,
            company=data.get("company") or "",
            email=data.get("email") or "",
        )

    def to_dict(self) -> Dict[str, str]:
        return {
            "id": self.id,
            "fullname": self.fullname,
            "company": self.company,
            "email": self.email,
        }


@dataclass(frozen=True)
class Booking:
    """A scheduled meeting read from the ``meetings`` table."""

    id: str
    start: datetime
    duration_minutes: int = DEFAULT_DURATION_MINUTES
    title: str = DEFAULT_TITLE
    identity: Optional[Identity] = None
    participant_email: str = ""
    status: Optional[str] = None
    internal_id: Optional[str] = None
    meeting_url: Optional[str] = None
    comment: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def end(self) -> datetime:
        return self.start + timedelta(minutes=self.duration_minutes)

    @property
    def identity_id(self) -> Optional[str]:
        return self.identity.id if self.identity else None

    @property
    def display_name(self) -> str:
        if self.identity and self.identity.fullname != UNKNOWN_NAME:
            return self.identity.fullname
        return self.participant_email or UNKNOWN_NAME

    @property
    def subtitle(self) -> str:
        """Second line of a calendar block: the participant, else the organizer."""
        if self.participant_email:
            return self.participant_email
        company = self.identity.company if self.identity else ""
        return f"{self.display_name} • {company}" if company else self.display_name

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> Optional["Booking"]:
        """Build a booking from a database row.

        The organizer can arrive nested (``identities``) or flattened as
        ``identity_*`` columns from a join. Rows without a usable start time
        are skipped.
        """
        start = parse_timestamp(row.get("meeting_start_at"))
        if start is None or row.get("id") is None:
            logger.warning(
                f"Skipping booking row without id or start: {row.get('id')!r}"
            )
            return None

        identity = Identity.from_dict(row.get("identities"))
        if identity is None and row.get("identity_id"):
            identity = Identity.from_dict(
                {
                    "id": row.get("identity_id"),
                    "fullname": row.get("identity_fullname"),
                    "company": row.get("identity_company"),
                    "email": row.get("identity_email"),
                }
            )

        try:
            duration = int(row.get("meeting_duration_minutes") or DEFAULT_DURATION_MINUTES)
        except (TypeError, ValueError):
            duration = DEFAULT_DURATION_MINUTES
        if duration <= 0:
            duration = DEFAULT_DURATION_MINUTES

        internal_id = row.get("internal_id")
        return cls(
            id=str(row["id"]),
            start=start,
            duration_minutes=duration,
            title=row.get("meeting_title") or DEFAULT_TITLE,
            identity=identity,
            participant_email=row.get("participant_email") or "",
            status=row.get("status"),
            internal_id=str(internal_id) if internal_id is not None else None,
            meeting_url=row.get("meeting_url") or None,
            comment=row.get("comment") or None,
            created_at=parse_timestamp(row.get("created_at")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "internalId": self.internal_id,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "durationMinutes": self.duration_minutes,
            "title": self.title,
            "identity": self.identity.to_dict() if self.identity else None,
            "participantEmail": self.participant_email,
            "status": self.status,
            "meetingUrl": self.meeting_url,
            "comment": self.comment,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class Instance:
    """A remote container reachable through the VNC gateway."""

    name: str
    ip: Optional[str] = None
    ip_suffix: Optional[str] = None
    status: Optional[str] = None
    type: Optional[str] = None
    vnc_url: str = ""

    @property
    def is_running(self) -> bool:
        return self.status == "Running"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "ip": self.ip,
            "ipSuffix": self.ip_suffix,
            "status": self.status,
            "type": self.type,
            "vncUrl": self.vnc_url,
        }
