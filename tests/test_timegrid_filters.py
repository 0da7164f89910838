"""Tests for the organizer-identity filter."""

from ops_dashboard.models import Identity
from ops_dashboard.timegrid.filters import (
    available_identities,
    filter_by_identity,
    reconcile_selection,
    sort_identities,
)


def test_sort_identities_dedupes_and_ignores_case():
    identities = [
        Identity(id="2", fullname="bob"),
        Identity(id="1", fullname="Alice"),
        Identity(id="2", fullname="bob"),
        Identity(id="3", fullname="Carol"),
    ]
    assert [i.id for i in sort_identities(identities)] == ["1", "2", "3"]


def test_available_identities_skips_bookings_without_organizer(make_booking, identities):
    bookings = [
        make_booking("a", identity=identities["bob"]),
        make_booking("b"),
        make_booking("c", identity=identities["alice"]),
        make_booking("d", identity=identities["alice"]),
    ]
    assert [i.id for i in available_identities(bookings)] == ["id-alice", "id-bob"]


def test_filter_by_identity(make_booking, identities):
    bookings = [
        make_booking("a", identity=identities["bob"]),
        make_booking("b"),
        make_booking("c", identity=identities["alice"]),
    ]
    assert [b.id for b in filter_by_identity(bookings, None)] == ["a", "b", "c"]
    assert [b.id for b in filter_by_identity(bookings, "id-alice")] == ["c"]
    assert filter_by_identity(bookings, "id-unknown") == []


def test_reconcile_selection(identities):
    available = [identities["alice"]]
    assert reconcile_selection("id-alice", available) == "id-alice"
    assert reconcile_selection("id-bob", available) is None
    assert reconcile_selection(None, available) is None
