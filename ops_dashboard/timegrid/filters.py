"""Organizer-identity filter for the calendar."""

from typing import Iterable, List, Optional

from ops_dashboard.models import Booking, Identity


def sort_identities(identities: Iterable[Identity]) -> List[Identity]:
    """Deduplicate by id and sort case-insensitively by display name."""
    by_id = {}
    for identity in identities:
        if identity and identity.id and identity.id not in by_id:
            by_id[identity.id] = identity
    return sorted(by_id.values(), key=lambda i: (i.fullname.casefold(), i.id))


def available_identities(bookings: Iterable[Booking]) -> List[Identity]:
    return sort_identities(b.identity for b in bookings if b.identity)


def filter_by_identity(
    bookings: Iterable[Booking], identity_id: Optional[str]
) -> List[Booking]:
    if not identity_id:
        return list(bookings)
    return [b for b in bookings if b.identity_id == identity_id]


def reconcile_selection(
    selected: Optional[str], identities: Iterable[Identity]
) -> Optional[str]:
    """Drop a selection that no longer exists in the current window."""
    if not selected:
        return None
    if any(identity.id == selected for identity in identities):
        return selected
    return None
