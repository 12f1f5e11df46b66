# occupancy_engine/services/lease_calculator.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Mapping, Optional

from sqlalchemy import Select, select
from sqlalchemy.orm import Session, selectinload

from ..config import settings
from ..domain.dates import add_months, days_between, month_end, plus_days, today_utc
from ..models import REQUEST_APPROVED, TENANT_ACTIVE, Property, RentalRequest, Tenant

log = logging.getLogger("occupancy.lease")

RequestKey = tuple[int, int]  # (user_id, property_id)

# where a resolved lease end date came from
SOURCE_EXPLICIT = "explicit"
SOURCE_RENTAL_REQUEST = "rental_request"
SOURCE_DEFAULT_TERM = "default_term"
SOURCE_UNRESOLVED = "unresolved"


@dataclass(frozen=True)
class LeaseEnd:
    end_date: Optional[date]
    source: str
    duration_months: Optional[int] = None

    @property
    def resolved(self) -> bool:
        return self.end_date is not None


@dataclass(frozen=True)
class TenantLeaseInfo:
    tenant: Tenant
    lease_start_date: date
    lease_end_date: Optional[date]
    duration_months: int
    remaining_days: Optional[int]
    is_expired: bool
    is_expiring_soon: bool
    property_name: str
    monthly_rent: float


@dataclass(frozen=True)
class LeaseStatistics:
    total_active: int = 0
    expiring_this_calendar_month: int = 0
    expiring_next_30_days: int = 0
    expired_count: int = 0
    total_monthly_revenue: float = 0.0
    average_lease_duration_months: float = 0.0


# -----------------------------
# Rental request lookups
# -----------------------------
def _latest_approved_query() -> Select:
    return (
        select(RentalRequest)
        .where(RentalRequest.status == REQUEST_APPROVED)
        .order_by(RentalRequest.created_at.desc(), RentalRequest.id.desc())
    )


def latest_approved_request(db: Session, *, user_id: int, property_id: int) -> Optional[RentalRequest]:
    q = _latest_approved_query().where(
        RentalRequest.user_id == int(user_id),
        RentalRequest.property_id == int(property_id),
    )
    return db.scalars(q.limit(1)).first()


def latest_approved_requests(db: Session, keys: Iterable[RequestKey]) -> dict[RequestKey, RentalRequest]:
    """
    One query for every (user_id, property_id) pair instead of one per tenant.
    Returns the most recently created approved request per pair.
    """
    wanted = {(int(u), int(p)) for u, p in keys if u is not None and p is not None}
    if not wanted:
        return {}

    user_ids = {u for u, _ in wanted}
    property_ids = {p for _, p in wanted}

    q = _latest_approved_query().where(
        RentalRequest.user_id.in_(user_ids),
        RentalRequest.property_id.in_(property_ids),
    )

    out: dict[RequestKey, RentalRequest] = {}
    for r in db.scalars(q).all():
        k = (int(r.user_id), int(r.property_id))
        if k in wanted and k not in out:
            out[k] = r
    return out


def _request_key(tenant: Tenant) -> Optional[RequestKey]:
    if tenant.property_id is None:
        return None
    return int(tenant.user_id), int(tenant.property_id)


# -----------------------------
# Lease end resolution
# -----------------------------
def resolve_lease_end(
    db: Session,
    tenant: Tenant,
    *,
    requests: Optional[Mapping[RequestKey, RentalRequest]] = None,
) -> LeaseEnd:
    """
    Resolves the effective end of a tenancy and reports which rule produced it.

    1. an explicit tenant.lease_end_date always wins
    2. no start date or no property -> unresolved
    3. latest approved rental request for (user, property): start + its duration in months
    4. otherwise start + the default annual term

    `requests` is a preloaded (user_id, property_id) -> request map; when given,
    a missing key means "no approved request" and no query is issued.
    """
    try:
        if tenant.lease_end_date is not None:
            return LeaseEnd(end_date=tenant.lease_end_date, source=SOURCE_EXPLICIT)

        key = _request_key(tenant)
        if tenant.lease_start_date is None or key is None:
            log.warning(
                "tenant has missing lease start date or property id",
                extra={"tenant_id": tenant.id},
            )
            return LeaseEnd(end_date=None, source=SOURCE_UNRESOLVED)

        if requests is not None:
            rr = requests.get(key)
        else:
            rr = latest_approved_request(db, user_id=key[0], property_id=key[1])

        if rr is not None:
            months = int(rr.lease_duration_months)
            end = add_months(tenant.lease_start_date, months)
            log.debug(
                "lease end %s from approved request %s (%s months)",
                end.isoformat(),
                rr.id,
                months,
                extra={"tenant_id": tenant.id},
            )
            return LeaseEnd(end_date=end, source=SOURCE_RENTAL_REQUEST, duration_months=months)

        months = int(settings.default_lease_months)
        log.warning(
            "no approved rental request; assuming %s month term",
            months,
            extra={"tenant_id": tenant.id, "property_id": tenant.property_id},
        )
        return LeaseEnd(end_date=add_months(tenant.lease_start_date, months), source=SOURCE_DEFAULT_TERM)
    except Exception:
        log.exception("error calculating lease end date", extra={"tenant_id": getattr(tenant, "id", None)})
        return LeaseEnd(end_date=None, source=SOURCE_UNRESOLVED)


def calculate_lease_end_date_for_tenant(
    db: Session,
    tenant: Tenant,
    *,
    requests: Optional[Mapping[RequestKey, RentalRequest]] = None,
) -> Optional[date]:
    return resolve_lease_end(db, tenant, requests=requests).end_date


def _rollback_quietly(db: Session) -> None:
    try:
        db.rollback()
    except Exception:
        log.exception("rollback after failed lease lookup also failed")


def calculate_lease_end_date(db: Session, tenant_id: int) -> Optional[date]:
    """By-id lookup; a store error is logged and reported as unresolved."""
    try:
        tenant = db.get(Tenant, int(tenant_id))
    except Exception:
        log.exception("error loading tenant for lease end date", extra={"tenant_id": tenant_id})
        _rollback_quietly(db)
        return None
    if tenant is None:
        log.warning("tenant not found", extra={"tenant_id": tenant_id})
        return None
    return calculate_lease_end_date_for_tenant(db, tenant)


def is_lease_expired(db: Session, tenant_id: int, *, today: Optional[date] = None) -> bool:
    """Unresolved end dates never count as expired."""
    end = calculate_lease_end_date(db, tenant_id)
    if end is None:
        return False
    return end < (today or today_utc())


def get_remaining_days_until_expiration(
    db: Session, tenant_id: int, *, today: Optional[date] = None
) -> Optional[int]:
    end = calculate_lease_end_date(db, tenant_id)
    if end is None:
        return None
    return days_between(today or today_utc(), end)


def get_lease_duration_months(db: Session, tenant_id: int, property_id: int) -> Optional[int]:
    try:
        tenant = db.get(Tenant, int(tenant_id))
        if tenant is None:
            return None
        rr = latest_approved_request(db, user_id=tenant.user_id, property_id=property_id)
    except Exception:
        log.exception("error getting lease duration", extra={"tenant_id": tenant_id, "property_id": property_id})
        _rollback_quietly(db)
        return None
    return int(rr.lease_duration_months) if rr is not None else None


def is_valid_lease_duration(start: date, end: date) -> bool:
    return days_between(start, end) >= int(settings.min_lease_days)


# -----------------------------
# Tenant scans
# -----------------------------
def _active_tenants_query(*, owner_id: Optional[int] = None, require_start: bool = True) -> Select:
    q = (
        select(Tenant)
        .where(Tenant.tenant_status == TENANT_ACTIVE)
        .options(
            selectinload(Tenant.user),
            selectinload(Tenant.property).selectinload(Property.owner),
        )
        .order_by(Tenant.id.asc())
    )
    if require_start:
        q = q.where(Tenant.lease_start_date.is_not(None))
    if owner_id is not None:
        q = q.join(Property, Tenant.property_id == Property.id).where(Property.owner_id == int(owner_id))
    return q


def load_active_tenants(
    db: Session, *, owner_id: Optional[int] = None, require_start: bool = True
) -> tuple[list[Tenant], dict[RequestKey, RentalRequest]]:
    """
    Active tenancies plus their approved requests, fetched in two queries.
    """
    tenants = list(db.scalars(_active_tenants_query(owner_id=owner_id, require_start=require_start)).all())
    keys = [k for k in (_request_key(t) for t in tenants) if k is not None]
    return tenants, latest_approved_requests(db, keys)


def _filter_by_lease_status(
    db: Session, *, days_ahead: int, expired_mode: bool, today: Optional[date]
) -> list[Tenant]:
    day = today or today_utc()
    horizon = plus_days(day, days_ahead)

    # a failing candidate query propagates; sweeps rely on that to abort
    tenants, requests = load_active_tenants(db)

    out: list[Tenant] = []
    for t in tenants:
        end = calculate_lease_end_date_for_tenant(db, t, requests=requests)
        if end is None:
            continue
        if expired_mode:
            if end < day:
                out.append(t)
        elif day <= end <= horizon:
            out.append(t)

    if expired_mode:
        log.info("found %s tenants with expired leases", len(out))
    else:
        log.info("found %s tenants with leases expiring within %s days", len(out), days_ahead, extra={"days_ahead": days_ahead})
    return out


def get_expiring_tenants(db: Session, days_ahead: int, *, today: Optional[date] = None) -> list[Tenant]:
    """Active tenants whose resolved end lies in [today, today + days_ahead]."""
    return _filter_by_lease_status(db, days_ahead=int(days_ahead), expired_mode=False, today=today)


def get_expired_tenants(db: Session, *, today: Optional[date] = None) -> list[Tenant]:
    """Active tenants whose resolved end is before today."""
    return _filter_by_lease_status(db, days_ahead=0, expired_mode=True, today=today)


def get_active_tenants_with_lease_info(
    db: Session,
    *,
    today: Optional[date] = None,
    owner_id: Optional[int] = None,
    property_id: Optional[int] = None,
) -> list[TenantLeaseInfo]:
    day = today or today_utc()
    soon = int(settings.expiring_soon_days)

    tenants, requests = load_active_tenants(db, owner_id=owner_id)
    if property_id is not None:
        tenants = [t for t in tenants if t.property_id == int(property_id)]

    out: list[TenantLeaseInfo] = []
    for t in tenants:
        lease_end = resolve_lease_end(db, t, requests=requests)
        remaining = days_between(day, lease_end.end_date) if lease_end.end_date is not None else None

        key = _request_key(t)
        rr = requests.get(key) if key is not None else None
        duration = int(rr.lease_duration_months) if rr is not None else int(settings.default_lease_months)

        prop = t.property
        out.append(
            TenantLeaseInfo(
                tenant=t,
                lease_start_date=t.lease_start_date,
                lease_end_date=lease_end.end_date,
                duration_months=duration,
                remaining_days=remaining,
                is_expired=remaining is not None and remaining < 0,
                is_expiring_soon=remaining is not None and 0 <= remaining <= soon,
                property_name=prop.name if prop is not None else "Unknown Property",
                monthly_rent=float(prop.price or 0.0) if prop is not None else 0.0,
            )
        )
    return out


# -----------------------------
# Owner analytics
# -----------------------------
def get_lease_statistics(db: Session, owner_id: int, *, today: Optional[date] = None) -> LeaseStatistics:
    """
    Expiration buckets are exclusive and checked in order:
    expired -> ends by the end of this calendar month -> ends within 30 days.
    """
    day = today or today_utc()
    end_of_month = month_end(day)
    next_30 = plus_days(day, 30)

    tenants, requests = load_active_tenants(db, owner_id=owner_id, require_start=False)

    expired = this_month = next_30_count = 0
    durations: list[int] = []
    revenue = 0.0

    for t in tenants:
        if t.property is not None:
            revenue += float(t.property.price or 0.0)

        end = calculate_lease_end_date_for_tenant(db, t, requests=requests)
        if end is not None:
            if end < day:
                expired += 1
            elif end <= end_of_month:
                this_month += 1
            elif end <= next_30:
                next_30_count += 1

        key = _request_key(t)
        rr = requests.get(key) if key is not None else None
        if rr is not None:
            durations.append(int(rr.lease_duration_months))

    return LeaseStatistics(
        total_active=len(tenants),
        expiring_this_calendar_month=this_month,
        expiring_next_30_days=next_30_count,
        expired_count=expired,
        total_monthly_revenue=float(revenue),
        average_lease_duration_months=float(sum(durations) / len(durations)) if durations else 0.0,
    )


def get_tenants_requiring_attention(
    db: Session,
    owner_id: int,
    warning_days: int = 30,
    *,
    today: Optional[date] = None,
) -> list[TenantLeaseInfo]:
    infos = get_active_tenants_with_lease_info(db, today=today, owner_id=owner_id)
    flagged = [
        i
        for i in infos
        if i.is_expired or (i.remaining_days is not None and i.remaining_days <= int(warning_days))
    ]
    # unresolved sorts with the most urgent
    return sorted(flagged, key=lambda i: i.remaining_days if i.remaining_days is not None else -999)
