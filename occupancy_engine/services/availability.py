# occupancy_engine/services/availability.py
"""
Availability resolution across bookings, tenancies, blocked periods and
approved rental requests.

Every check fails closed: an unexpected error is logged and reported as
"not available".
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.orm import Session, selectinload

from ..domain.dates import overlaps, plus_days
from ..models import (
    BOOKING_CANCELLED,
    REQUEST_APPROVED,
    TENANT_ACTIVE,
    BlockedPeriod,
    Booking,
    Property,
    RentalRequest,
    Tenant,
)
from .lease_calculator import latest_approved_requests, resolve_lease_end

log = logging.getLogger("occupancy.availability")

CONFLICT_BOOKING = "Booking"
CONFLICT_LEASE = "Lease"
CONFLICT_BLOCKED = "Blocked"
CONFLICT_APPROVED_REQUEST = "Approved Request"


class RentalType(str, Enum):
    DAILY = "daily"
    MONTHLY = "monthly"


# renting_type column value -> rental modes it allows
_CAPABILITIES: dict[str, frozenset[RentalType]] = {
    "daily": frozenset({RentalType.DAILY}),
    "monthly": frozenset({RentalType.MONTHLY}),
    "both": frozenset({RentalType.DAILY, RentalType.MONTHLY}),
}


@dataclass(frozen=True)
class ConflictInfo:
    type: str
    conflict_start: date
    conflict_end: Optional[date]
    description: str
    source_id: Optional[int]


@dataclass
class AvailabilityResult:
    property_id: int
    requested_start: date
    requested_end: date
    rental_type: str
    is_available: bool = False
    reason: Optional[str] = None
    conflicts: list[ConflictInfo] = field(default_factory=list)


def _rollback_quietly(db: Session) -> None:
    # an aborted transaction would poison every later check on this session
    try:
        db.rollback()
    except Exception:
        log.exception("rollback after failed availability query also failed")


# -----------------------------
# Overlap queries (half-open: existing.start < end and (existing.end is null or existing.end > start))
# -----------------------------
def _conflicting_bookings_query(property_id: int, start: date, end: date):
    return select(Booking).where(
        Booking.property_id == int(property_id),
        Booking.status != BOOKING_CANCELLED,
        Booking.start_date < end,
        or_(Booking.end_date.is_(None), Booking.end_date > start),
    )


def _blocked_periods_query(property_id: int, start: date, end: date):
    return select(BlockedPeriod).where(
        BlockedPeriod.property_id == int(property_id),
        BlockedPeriod.is_available.is_(False),
        BlockedPeriod.start_date < end,
        or_(BlockedPeriod.end_date.is_(None), BlockedPeriod.end_date > start),
    )


def _approved_requests_query(property_id: int, start: date, end: date):
    return select(RentalRequest).where(
        RentalRequest.property_id == int(property_id),
        RentalRequest.status == REQUEST_APPROVED,
        RentalRequest.proposed_start_date < end,
        RentalRequest.proposed_end_date > start,
    )


def _active_tenants_query(property_id: int):
    return select(Tenant).where(
        Tenant.property_id == int(property_id),
        Tenant.tenant_status == TENANT_ACTIVE,
        Tenant.lease_start_date.is_not(None),
    )


def _any(db: Session, q) -> bool:
    return db.scalars(q.limit(1)).first() is not None


def _has_conflicting_bookings(db: Session, property_id: int, start: date, end: date) -> bool:
    return _any(db, _conflicting_bookings_query(property_id, start, end))


def _has_approved_request_conflict(db: Session, property_id: int, start: date, end: date) -> bool:
    return _any(db, _approved_requests_query(property_id, start, end))


def _has_active_tenant(db: Session, property_id: int) -> bool:
    return _any(db, _active_tenants_query(property_id))


def _overlapping_leases(
    db: Session, property_id: int, start: date, end: date
) -> list[tuple[Tenant, date, date]]:
    """(tenant, lease_start, resolved_end) for each active lease overlapping [start, end)."""
    tenants = list(
        db.scalars(_active_tenants_query(property_id).options(selectinload(Tenant.user)).order_by(Tenant.id)).all()
    )
    requests = latest_approved_requests(db, [(t.user_id, t.property_id) for t in tenants])

    out: list[tuple[Tenant, date, date]] = []
    for t in tenants:
        lease_end = resolve_lease_end(db, t, requests=requests).end_date
        if lease_end is None:
            continue
        if overlaps(t.lease_start_date, lease_end, start, end):
            out.append((t, t.lease_start_date, lease_end))
    return out


# -----------------------------
# Public checks
# -----------------------------
def supports_rental_type(db: Session, property_id: int, rental_type: RentalType | str) -> bool:
    try:
        wanted = RentalType(str(getattr(rental_type, "value", rental_type)).strip().lower())
    except ValueError:
        return False

    try:
        prop = db.get(Property, int(property_id))
        if prop is None or not prop.renting_type:
            log.warning("property not found or has no rental type", extra={"property_id": property_id})
            return False
        return wanted in _CAPABILITIES.get(prop.renting_type.strip().lower(), frozenset())
    except Exception:
        log.exception("error checking rental type support", extra={"property_id": property_id})
        _rollback_quietly(db)
        return False


def has_blocked_periods(db: Session, property_id: int, start: date, end: date) -> bool:
    try:
        return _any(db, _blocked_periods_query(property_id, start, end))
    except Exception:
        log.exception("error checking blocked periods", extra={"property_id": property_id})
        _rollback_quietly(db)
        return True  # unverifiable -> treat as blocked


def is_property_available(db: Session, property_id: int, start: date, end: date) -> bool:
    """Base check: no overlapping non-cancelled booking and no overlapping blocked period."""
    try:
        if _has_conflicting_bookings(db, property_id, start, end):
            return False
        return not has_blocked_periods(db, property_id, start, end)
    except Exception:
        log.exception("error in basic availability check", extra={"property_id": property_id})
        _rollback_quietly(db)
        return False


def is_available_for_daily_rental(db: Session, property_id: int, start: date, end: date) -> bool:
    try:
        if not supports_rental_type(db, property_id, RentalType.DAILY):
            return False

        if _overlapping_leases(db, property_id, start, end):
            log.info("daily rental blocked by active lease", extra={"property_id": property_id})
            return False

        if _has_approved_request_conflict(db, property_id, start, end):
            log.info("daily rental blocked by approved rental request", extra={"property_id": property_id})
            return False

        return is_property_available(db, property_id, start, end)
    except Exception:
        log.exception("error checking daily rental availability", extra={"property_id": property_id})
        _rollback_quietly(db)
        return False


def is_available_for_annual_rental(db: Session, property_id: int, start: date, end: date) -> bool:
    """
    Any active tenant blocks annual rental regardless of the requested window.
    """
    try:
        if not supports_rental_type(db, property_id, RentalType.MONTHLY):
            return False

        if _has_active_tenant(db, property_id):
            return False

        if _has_conflicting_bookings(db, property_id, start, end):
            return False

        return not has_blocked_periods(db, property_id, start, end)
    except Exception:
        log.exception("error checking annual rental availability", extra={"property_id": property_id})
        _rollback_quietly(db)
        return False


def get_conflicts(db: Session, property_id: int, start: date, end: date) -> list[ConflictInfo]:
    """
    Union of booking, lease, blocked-period and approved-request conflicts.

    Each source is gathered on its own; a failing source is logged and the
    conflicts already collected from the others are still returned.
    """
    conflicts: list[ConflictInfo] = []

    try:
        q = _conflicting_bookings_query(property_id, start, end).options(selectinload(Booking.user))
        for b in db.scalars(q.order_by(Booking.start_date, Booking.id)).all():
            who = b.user.full_name if b.user is not None else ""
            conflicts.append(
                ConflictInfo(
                    type=CONFLICT_BOOKING,
                    conflict_start=b.start_date,
                    conflict_end=b.end_date if b.end_date is not None else plus_days(b.start_date, 1),
                    description=f"Daily booking by {who}" if who else f"Existing booking #{b.id}",
                    source_id=b.id,
                )
            )
    except Exception:
        log.exception("error gathering booking conflicts", extra={"property_id": property_id})
        _rollback_quietly(db)

    try:
        for t, lease_start, lease_end in _overlapping_leases(db, property_id, start, end):
            who = t.user.full_name if t.user is not None else ""
            conflicts.append(
                ConflictInfo(
                    type=CONFLICT_LEASE,
                    conflict_start=lease_start,
                    conflict_end=lease_end,
                    description=f"Annual lease by {who}" if who else f"Active tenant lease (tenant {t.id})",
                    source_id=t.id,
                )
            )
    except Exception:
        log.exception("error gathering lease conflicts", extra={"property_id": property_id})
        _rollback_quietly(db)

    try:
        q = _blocked_periods_query(property_id, start, end)
        for bp in db.scalars(q.order_by(BlockedPeriod.start_date, BlockedPeriod.id)).all():
            conflicts.append(
                ConflictInfo(
                    type=CONFLICT_BLOCKED,
                    conflict_start=bp.start_date,
                    conflict_end=bp.end_date,
                    description=bp.reason or "Property blocked by owner",
                    source_id=bp.id,
                )
            )
    except Exception:
        log.exception("error gathering blocked period conflicts", extra={"property_id": property_id})
        _rollback_quietly(db)

    try:
        q = _approved_requests_query(property_id, start, end).options(selectinload(RentalRequest.user))
        for r in db.scalars(q.order_by(RentalRequest.proposed_start_date, RentalRequest.id)).all():
            who = r.user.full_name if r.user is not None else ""
            conflicts.append(
                ConflictInfo(
                    type=CONFLICT_APPROVED_REQUEST,
                    conflict_start=r.proposed_start_date,
                    conflict_end=r.proposed_end_date,
                    description=f"Approved rental request by {who}" if who else f"Approved rental request #{r.id}",
                    source_id=r.id,
                )
            )
    except Exception:
        log.exception("error gathering approved request conflicts", extra={"property_id": property_id})
        _rollback_quietly(db)

    return sorted(conflicts, key=lambda c: c.conflict_start)


def check_availability(
    db: Session,
    property_id: int,
    start: date,
    end: date,
    rental_type: RentalType | str,
) -> AvailabilityResult:
    raw_type = str(getattr(rental_type, "value", rental_type)).strip().lower()
    result = AvailabilityResult(
        property_id=int(property_id),
        requested_start=start,
        requested_end=end,
        rental_type=raw_type,
    )

    try:
        result.conflicts = get_conflicts(db, property_id, start, end)

        if raw_type == RentalType.DAILY.value:
            result.is_available = is_available_for_daily_rental(db, property_id, start, end)
            result.reason = "Available for daily rental" if result.is_available else "Conflicts found for daily rental"
        elif raw_type == RentalType.MONTHLY.value:
            result.is_available = is_available_for_annual_rental(db, property_id, start, end)
            result.reason = (
                "Available for monthly rental" if result.is_available else "Conflicts found for monthly rental"
            )
        else:
            result.is_available = False
            result.reason = "Invalid rental type"
        return result
    except Exception:
        log.exception("error in comprehensive availability check", extra={"property_id": property_id})
        _rollback_quietly(db)
        result.is_available = False
        result.reason = "Error occurred during availability check"
        return result
