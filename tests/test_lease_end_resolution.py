# tests/test_lease_end_resolution.py
from __future__ import annotations

from datetime import date, datetime

from occupancy_engine.services import lease_calculator as lc
from tests.helpers import TODAY, BrokenSession, mk_property, mk_request, mk_tenant, mk_user


def test_explicit_end_date_wins_over_request(db):
    owner, u = mk_user(db), mk_user(db)
    p = mk_property(db, owner)
    t = mk_tenant(db, u, p, start=date(2024, 1, 15), end=date(2030, 1, 1))
    mk_request(db, u, p, start=date(2024, 1, 15), end=date(2024, 7, 15), months=6)

    r = lc.resolve_lease_end(db, t)
    assert r.end_date == date(2030, 1, 1)
    assert r.source == lc.SOURCE_EXPLICIT


def test_end_from_latest_approved_request(db):
    owner, u = mk_user(db), mk_user(db)
    p = mk_property(db, owner)
    t = mk_tenant(db, u, p, start=date(2024, 1, 15))
    mk_request(db, u, p, start=date(2024, 1, 15), end=date(2024, 7, 15), months=6, created_at=datetime(2023, 12, 1))
    mk_request(db, u, p, start=date(2024, 1, 15), end=date(2025, 1, 15), months=12, created_at=datetime(2023, 12, 20))
    # newer but not approved
    mk_request(db, u, p, start=date(2024, 1, 15), end=date(2026, 1, 15), months=24, status="Pending", created_at=datetime(2024, 1, 1))

    r = lc.resolve_lease_end(db, t)
    assert r.end_date == date(2025, 1, 15)
    assert r.source == lc.SOURCE_RENTAL_REQUEST
    assert r.duration_months == 12

    # the batched lookup picks the same request
    batch = lc.latest_approved_requests(db, [(u.id, p.id)])
    r2 = lc.resolve_lease_end(db, t, requests=batch)
    assert r2 == r


def test_default_term_when_no_request(db):
    owner, u = mk_user(db), mk_user(db)
    p = mk_property(db, owner)
    t = mk_tenant(db, u, p, start=date(2024, 1, 15))

    r = lc.resolve_lease_end(db, t)
    assert r.end_date == date(2025, 1, 15)
    assert r.source == lc.SOURCE_DEFAULT_TERM

    # preloaded map without the key means "no request", no fallback query
    assert lc.resolve_lease_end(db, t, requests={}).source == lc.SOURCE_DEFAULT_TERM


def test_unresolved_without_start_or_property(db):
    owner, u = mk_user(db), mk_user(db)
    p = mk_property(db, owner)
    no_start = mk_tenant(db, u, p, start=None)
    no_prop = mk_tenant(db, u, None, start=date(2024, 1, 1))

    assert lc.resolve_lease_end(db, no_start).source == lc.SOURCE_UNRESOLVED
    assert lc.calculate_lease_end_date(db, no_start.id) is None
    assert lc.calculate_lease_end_date(db, no_prop.id) is None
    assert lc.calculate_lease_end_date(db, 999_999) is None

    # unresolved never counts as expired
    assert lc.is_lease_expired(db, no_start.id, today=TODAY) is False
    assert lc.get_remaining_days_until_expiration(db, no_start.id, today=TODAY) is None


def test_expired_and_remaining_days(db):
    owner, u = mk_user(db), mk_user(db)
    p = mk_property(db, owner)
    past = mk_tenant(db, u, p, start=date(2024, 1, 1), end=date(2025, 6, 10))
    on_today = mk_tenant(db, u, p, start=date(2024, 1, 1), end=TODAY)

    assert lc.is_lease_expired(db, past.id, today=TODAY) is True
    assert lc.get_remaining_days_until_expiration(db, past.id, today=TODAY) == -5
    # ending today is not yet expired
    assert lc.is_lease_expired(db, on_today.id, today=TODAY) is False
    assert lc.get_remaining_days_until_expiration(db, on_today.id, today=TODAY) == 0


def test_duration_and_minimum_length(db):
    owner, u = mk_user(db), mk_user(db)
    p = mk_property(db, owner)
    t = mk_tenant(db, u, p, start=date(2024, 1, 1))
    assert lc.get_lease_duration_months(db, t.id, p.id) is None

    mk_request(db, u, p, start=date(2024, 1, 1), end=date(2024, 10, 1), months=9)
    assert lc.get_lease_duration_months(db, t.id, p.id) == 9
    assert lc.get_lease_duration_months(db, 999_999, p.id) is None

    assert lc.is_valid_lease_duration(date(2025, 1, 1), date(2025, 6, 30)) is True  # 180 days
    assert lc.is_valid_lease_duration(date(2025, 1, 1), date(2025, 6, 29)) is False


def test_by_id_lookups_report_unresolved_on_store_error():
    db = BrokenSession()
    assert lc.calculate_lease_end_date(db, 1) is None
    # unresolved, so never expired
    assert lc.is_lease_expired(db, 1, today=TODAY) is False
    assert lc.get_remaining_days_until_expiration(db, 1, today=TODAY) is None
    assert lc.get_lease_duration_months(db, 1, 1) is None
