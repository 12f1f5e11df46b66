# tests/test_contract_sweeps.py
from __future__ import annotations

from datetime import date

import pytest
from sqlalchemy import select

from occupancy_engine.domain.dates import plus_days
from occupancy_engine.models import Notification
from occupancy_engine.services import contract_lifecycle as cl
from occupancy_engine.services import lease_calculator
from occupancy_engine.services.notifications import TYPE_CONTRACT_EXPIRED, TYPE_CONTRACT_EXPIRING, DbNotifier
from tests.helpers import TODAY, RecordingNotifier, mk_property, mk_tenant, mk_user

START = date(2024, 1, 1)


def test_expiring_pass_notifies_tenant_and_owner(db):
    owner, u = mk_user(db), mk_user(db)
    p = mk_property(db, owner, name="Elm Street 4")
    mk_tenant(db, u, p, start=START, end=plus_days(TODAY, 20))
    mk_tenant(db, mk_user(db), p, start=START, end=plus_days(TODAY, 90))

    r = cl.check_contracts_expiring(db, DbNotifier(db), 30, today=TODAY)
    assert (r.kind, r.days_ahead, r.candidates, r.processed, r.failed_tenant_ids) == ("expiring", 30, 1, 1, [])

    rows = db.scalars(select(Notification).order_by(Notification.id)).all()
    assert [(n.user_id, n.title, n.type) for n in rows] == [
        (u.id, "Contract Expiring Soon", TYPE_CONTRACT_EXPIRING),
        (owner.id, "Tenant Contract Expiring", TYPE_CONTRACT_EXPIRING),
    ]
    assert "Elm Street 4 expires in 20 days" in rows[0].message
    assert all(n.reference_id == p.id and n.is_read is False for n in rows)


def test_one_failing_tenant_does_not_stop_the_pass(db):
    owner, bad, good = mk_user(db), mk_user(db), mk_user(db)
    p = mk_property(db, owner)
    t_bad = mk_tenant(db, bad, p, start=START, end=plus_days(TODAY, 5))
    mk_tenant(db, good, p, start=START, end=plus_days(TODAY, 6))

    notifier = RecordingNotifier(fail_for_user_ids={bad.id})
    r = cl.check_contracts_expiring(db, notifier, 30, today=TODAY)

    assert r.candidates == 2
    assert r.processed == 1
    assert r.failed_tenant_ids == [t_bad.id]
    assert len(notifier.to(good.id)) == 1
    assert len(notifier.to(bad.id)) == 0


def test_candidate_query_failure_propagates(db, monkeypatch):
    def _fail(*_a, **_kw):
        raise RuntimeError("tenant scan failed")

    monkeypatch.setattr(lease_calculator, "get_expiring_tenants", _fail)
    with pytest.raises(RuntimeError):
        cl.check_contracts_expiring(db, RecordingNotifier(), 30, today=TODAY)


def test_expired_pass_releases_property_and_is_repeatable(db):
    owner, u = mk_user(db), mk_user(db)
    p = mk_property(db, owner, name="Oak Loft", status="Rented")
    t = mk_tenant(db, u, p, start=START, end=plus_days(TODAY, -4))

    notifier = RecordingNotifier()
    r = cl.process_expired_contracts(db, notifier, today=TODAY)
    assert (r.kind, r.candidates, r.processed) == ("expired", 1, 1)

    db.refresh(p); db.refresh(t)
    assert p.status == "Available"
    # the tenancy itself stays active
    assert t.tenant_status == "Active"
    first_update = p.updated_at
    assert first_update is not None

    [tenant_msg] = notifier.to(u.id)
    assert tenant_msg.title == "Contract Expired"
    assert tenant_msg.type == TYPE_CONTRACT_EXPIRED
    assert "expired 4 days ago" in tenant_msg.message
    assert notifier.to(owner.id)[0].title == "Contract Expired"

    # second run: same store state, notifications repeated
    cl.process_expired_contracts(db, notifier, today=TODAY)
    db.refresh(p)
    assert p.status == "Available"
    assert p.updated_at == first_update
    assert len(notifier.to(u.id)) == 2
    assert len(notifier.to(owner.id)) == 2


def test_full_sweep_runs_every_horizon_then_expiry(db):
    owner, u = mk_user(db), mk_user(db)
    p = mk_property(db, owner)
    mk_tenant(db, u, p, start=START, end=plus_days(TODAY, 5))
    mk_tenant(db, mk_user(db), p, start=START, end=plus_days(TODAY, -1))

    notifier = RecordingNotifier()
    passes = cl.run_contract_expiration_check(db, notifier, today=TODAY)

    assert [(x.kind, x.days_ahead) for x in passes] == [
        ("expiring", 60),
        ("expiring", 30),
        ("expiring", 7),
        ("expired", None),
    ]
    # no dedupe across horizons
    assert len(notifier.to(u.id)) == 3

    custom = cl.run_contract_expiration_check(db, RecordingNotifier(), today=TODAY, horizons=[10])
    assert [x.days_ahead for x in custom] == [10, None]


def test_notification_for_missing_user_is_skipped(db):
    DbNotifier(db).notify(999_999, "t", "m", TYPE_CONTRACT_EXPIRING)
    assert db.scalars(select(Notification)).all() == []


def test_expired_pass_isolates_a_failing_tenant(db):
    owner, bad, good = mk_user(db), mk_user(db), mk_user(db)
    p_bad = mk_property(db, owner, status="Rented")
    p_good = mk_property(db, owner, status="Rented")
    t_bad = mk_tenant(db, bad, p_bad, start=START, end=plus_days(TODAY, -3))
    mk_tenant(db, good, p_good, start=START, end=plus_days(TODAY, -1))

    notifier = RecordingNotifier(fail_for_user_ids={bad.id})
    r = cl.process_expired_contracts(db, notifier, today=TODAY)

    assert r.candidates == 2
    assert r.processed == 1
    assert r.failed_tenant_ids == [t_bad.id]

    db.refresh(p_bad); db.refresh(p_good)
    # release is committed before notifying
    assert p_bad.status == "Available"
    assert p_good.status == "Available"
    assert [s.title for s in notifier.to(good.id)] == ["Contract Expired"]
    assert notifier.to(bad.id) == []


def test_expired_candidate_failure_propagates(db, monkeypatch):
    def _fail(*_a, **_kw):
        raise RuntimeError("tenant scan failed")

    monkeypatch.setattr(lease_calculator, "get_expired_tenants", _fail)
    with pytest.raises(RuntimeError):
        cl.process_expired_contracts(db, RecordingNotifier(), today=TODAY)
    with pytest.raises(RuntimeError):
        cl.run_contract_expiration_check(db, RecordingNotifier(), today=TODAY)
