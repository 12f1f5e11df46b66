# tests/test_conflicts.py
from __future__ import annotations

from datetime import date

from occupancy_engine.services import availability as av
from tests.helpers import mk_blocked, mk_booking, mk_property, mk_request, mk_tenant, mk_user


def test_conflicts_from_every_source_sorted_by_start(db):
    owner = mk_user(db)
    guest = mk_user(db, "Gia", "Guest")
    lessee = mk_user(db, "Lee", "Tenant")
    applicant = mk_user(db, "Ann", "Applicant")
    p = mk_property(db, owner, renting_type="Both")

    bk = mk_booking(db, guest, p, start=date(2025, 5, 10), end=None)
    t = mk_tenant(db, lessee, p, start=date(2025, 1, 1), end=date(2025, 12, 31))
    bp = mk_blocked(db, p, start=date(2025, 5, 20), end=None, reason="Roof repair")
    rr = mk_request(db, applicant, p, start=date(2025, 5, 1), end=date(2025, 11, 1), months=6)

    conflicts = av.get_conflicts(db, p.id, date(2025, 5, 1), date(2025, 6, 1))
    assert [c.type for c in conflicts] == [
        av.CONFLICT_LEASE,
        av.CONFLICT_APPROVED_REQUEST,
        av.CONFLICT_BOOKING,
        av.CONFLICT_BLOCKED,
    ]

    by_type = {c.type: c for c in conflicts}
    booking = by_type[av.CONFLICT_BOOKING]
    assert booking.source_id == bk.id
    # open-ended booking is reported as a single night
    assert booking.conflict_end == date(2025, 5, 11)
    assert booking.description == "Daily booking by Gia Guest"

    lease = by_type[av.CONFLICT_LEASE]
    assert (lease.source_id, lease.conflict_start, lease.conflict_end) == (t.id, date(2025, 1, 1), date(2025, 12, 31))

    blocked = by_type[av.CONFLICT_BLOCKED]
    assert blocked.source_id == bp.id
    assert blocked.conflict_end is None
    assert blocked.description == "Roof repair"

    assert by_type[av.CONFLICT_APPROVED_REQUEST].source_id == rr.id


def test_no_conflicts_outside_window(db):
    owner, guest = mk_user(db), mk_user(db)
    p = mk_property(db, owner, renting_type="Daily")
    mk_booking(db, guest, p, start=date(2025, 5, 1), end=date(2025, 5, 3))
    assert av.get_conflicts(db, p.id, date(2025, 5, 3), date(2025, 5, 5)) == []


def test_check_availability_reasons(db):
    owner, guest = mk_user(db), mk_user(db)
    p = mk_property(db, owner, renting_type="Both")
    mk_booking(db, guest, p, start=date(2025, 5, 1), end=date(2025, 5, 3))

    busy = av.check_availability(db, p.id, date(2025, 5, 2), date(2025, 5, 4), av.RentalType.DAILY)
    assert busy.is_available is False
    assert busy.reason == "Conflicts found for daily rental"
    assert len(busy.conflicts) == 1

    free = av.check_availability(db, p.id, date(2025, 6, 1), date(2025, 7, 1), "monthly")
    assert free.is_available is True
    assert free.reason == "Available for monthly rental"
    assert free.conflicts == []

    bad = av.check_availability(db, p.id, date(2025, 6, 1), date(2025, 7, 1), "hourly")
    assert bad.is_available is False
    assert bad.reason == "Invalid rental type"
