# tests/helpers.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from itertools import count
from typing import Optional

from sqlalchemy.exc import OperationalError

from occupancy_engine.models import AppUser, BlockedPeriod, Booking, Property, RentalRequest, Tenant

TODAY = date(2025, 6, 15)

_seq = count(1)


def mk_user(db, first: str = "Test", last: str = "User") -> AppUser:
    u = AppUser(email=f"user{next(_seq)}@t.local", first_name=first, last_name=last)
    db.add(u); db.commit(); db.refresh(u)
    return u


def mk_property(db, owner: AppUser, *, renting_type: Optional[str] = "Both", name: str = "Flat", price: float = 1000.0, status: str = "Rented") -> Property:
    p = Property(owner_id=owner.id, name=name, price=price, status=status, renting_type=renting_type)
    db.add(p); db.commit(); db.refresh(p)
    return p


def mk_tenant(db, user: AppUser, prop: Optional[Property], *, start: Optional[date], end: Optional[date] = None, status: str = "Active") -> Tenant:
    t = Tenant(
        user_id=user.id,
        property_id=prop.id if prop is not None else None,
        lease_start_date=start,
        lease_end_date=end,
        tenant_status=status,
    )
    db.add(t); db.commit(); db.refresh(t)
    return t


def mk_request(
    db,
    user: AppUser,
    prop: Property,
    *,
    start: date,
    end: date,
    months: int = 12,
    status: str = "Approved",
    created_at: Optional[datetime] = None,
) -> RentalRequest:
    r = RentalRequest(
        user_id=user.id,
        property_id=prop.id,
        proposed_start_date=start,
        proposed_end_date=end,
        lease_duration_months=months,
        status=status,
        created_at=created_at or datetime(2024, 1, 1),
    )
    db.add(r); db.commit(); db.refresh(r)
    return r


def mk_booking(db, user: AppUser, prop: Property, *, start: date, end: Optional[date], status: str = "Upcoming") -> Booking:
    b = Booking(property_id=prop.id, user_id=user.id, start_date=start, end_date=end, status=status)
    db.add(b); db.commit(); db.refresh(b)
    return b


def mk_blocked(db, prop: Property, *, start: date, end: Optional[date], is_available: bool = False, reason: Optional[str] = None) -> BlockedPeriod:
    bp = BlockedPeriod(property_id=prop.id, start_date=start, end_date=end, is_available=is_available, reason=reason)
    db.add(bp); db.commit(); db.refresh(bp)
    return bp


@dataclass
class Sent:
    user_id: int
    title: str
    message: str
    type: str
    reference_id: Optional[int]


@dataclass
class RecordingNotifier:
    sent: list[Sent] = field(default_factory=list)
    fail_for_user_ids: set[int] = field(default_factory=set)

    def notify(self, user_id, title, message, type, reference_id=None):
        if user_id in self.fail_for_user_ids:
            raise RuntimeError(f"transport down for user {user_id}")
        self.sent.append(Sent(user_id, title, message, type, reference_id))

    def to(self, user_id: int) -> list[Sent]:
        return [s for s in self.sent if s.user_id == user_id]


class BrokenSession:
    """Session stand-in whose every query fails like a lost connection."""

    def _boom(self, *args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("database is down"))

    get = scalars = scalar = execute = _boom

    def rollback(self):
        return None
