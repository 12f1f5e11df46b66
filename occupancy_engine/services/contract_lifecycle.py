# occupancy_engine/services/contract_lifecycle.py
"""
Contract lifecycle sweeps.

Per tenancy: Active -> expiring soon (notify only) -> expired (property
released back to "Available"). The tenancy's own status is left as is;
a released tenant can still ask for an extension.

No "already notified" marker is stored, so overlapping horizons and
repeated sweeps can notify the same tenant more than once.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional

from sqlalchemy.orm import Session, selectinload

from ..config import settings
from ..domain.dates import days_between, plus_days, today_utc
from ..models import PROPERTY_AVAILABLE, Property, Tenant
from . import lease_calculator
from .notifications import (
    TYPE_CONTRACT_EXPIRED,
    TYPE_CONTRACT_EXPIRING,
    TYPE_CONTRACT_REMINDER,
    Notifier,
)

log = logging.getLogger("occupancy.contracts")


@dataclass
class SweepPassResult:
    kind: str
    days_ahead: Optional[int] = None
    candidates: int = 0
    processed: int = 0
    failed_tenant_ids: list[int] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "kind": self.kind,
            "days_ahead": self.days_ahead,
            "candidates": self.candidates,
            "processed": self.processed,
            "failed_tenant_ids": list(self.failed_tenant_ids),
        }


@dataclass(frozen=True)
class ContractExpirationSummary:
    total_active: int
    expiring_in_30_days: int
    expiring_in_60_days: int
    expired_today: int
    total_expired: int
    last_processed_at: datetime


@dataclass(frozen=True)
class ExpiringContractInfo:
    tenant_id: int
    property_id: int
    property_name: str
    tenant_name: str
    lease_end_date: date
    days_until_expiration: int
    monthly_rent: float
    notification_sent: bool = False


@dataclass(frozen=True)
class ExpiredContractInfo:
    tenant_id: int
    property_id: int
    property_name: str
    tenant_name: str
    lease_end_date: date
    days_overdue: int
    monthly_rent: float
    property_marked_available: bool
    notification_sent: bool = False


def _property_name(tenant: Tenant, default: str = "your property") -> str:
    return tenant.property.name if tenant.property is not None else default


def _owner_id(tenant: Tenant) -> Optional[int]:
    prop = tenant.property
    return int(prop.owner_id) if prop is not None and prop.owner_id is not None else None


def _tenant_name(tenant: Tenant) -> str:
    return tenant.user.full_name if tenant.user is not None else ""


def _release_property(db: Session, prop: Property) -> bool:
    """Marks the property available. Returns False when it already was (no write)."""
    if prop.status == PROPERTY_AVAILABLE:
        return False
    prop.status = PROPERTY_AVAILABLE
    prop.updated_at = datetime.utcnow()
    db.add(prop)
    db.commit()
    return True


# -----------------------------
# Sweeps
# -----------------------------
def check_contracts_expiring(
    db: Session,
    notifier: Notifier,
    days_ahead: int = 60,
    *,
    today: Optional[date] = None,
) -> SweepPassResult:
    """
    Notifies tenant and owner for every lease ending within days_ahead.

    A failure on one tenant is logged and the pass moves on; a failure while
    loading the candidates propagates.
    """
    day = today or today_utc()
    log.info("checking for contracts expiring in %s days", days_ahead, extra={"days_ahead": days_ahead})

    tenants, requests = _with_requests(db, lease_calculator.get_expiring_tenants(db, days_ahead, today=day))
    result = SweepPassResult(kind="expiring", days_ahead=int(days_ahead), candidates=len(tenants))

    for t in tenants:
        try:
            end = lease_calculator.calculate_lease_end_date_for_tenant(db, t, requests=requests)
            if end is None:
                continue
            days_left = days_between(day, end)

            notifier.notify(
                t.user_id,
                "Contract Expiring Soon",
                f"Your lease for {_property_name(t)} expires in {days_left} days. "
                "Please contact your landlord to discuss renewal.",
                TYPE_CONTRACT_EXPIRING,
                t.property_id,
            )

            owner_id = _owner_id(t)
            if owner_id is not None:
                notifier.notify(
                    owner_id,
                    "Tenant Contract Expiring",
                    f"Tenant contract for {_property_name(t)} expires in {days_left} days. "
                    "Please discuss renewal with the tenant.",
                    TYPE_CONTRACT_EXPIRING,
                    t.property_id,
                )

            result.processed += 1
            log.info(
                "sent expiring contract notifications",
                extra={"tenant_id": t.id, "property_id": t.property_id},
            )
        except Exception:
            db.rollback()
            result.failed_tenant_ids.append(int(t.id))
            log.exception("failed to process expiring contract", extra={"tenant_id": t.id})

    log.info("processed %s expiring contracts", result.processed, extra={"days_ahead": days_ahead})
    return result


def process_expired_contracts(
    db: Session,
    notifier: Notifier,
    *,
    today: Optional[date] = None,
) -> SweepPassResult:
    """
    Releases the property of every expired lease and notifies both parties.

    Re-running is safe for the store (an available property stays available);
    notifications are sent again on every run.
    """
    day = today or today_utc()
    log.info("processing expired contracts as of %s", day.isoformat())

    tenants, requests = _with_requests(db, lease_calculator.get_expired_tenants(db, today=day))
    result = SweepPassResult(kind="expired", candidates=len(tenants))

    for t in tenants:
        try:
            if t.property is not None:
                _release_property(db, t.property)

            end = lease_calculator.calculate_lease_end_date_for_tenant(db, t, requests=requests)
            days_overdue = days_between(end, day) if end is not None else 0

            notifier.notify(
                t.user_id,
                "Contract Expired",
                f"Your lease for {_property_name(t)} expired {days_overdue} days ago. "
                "The property is now available for new rentals, but you can still request an extension.",
                TYPE_CONTRACT_EXPIRED,
                t.property_id,
            )

            owner_id = _owner_id(t)
            if owner_id is not None:
                notifier.notify(
                    owner_id,
                    "Contract Expired",
                    f"The tenant contract for {_property_name(t)} expired {days_overdue} days ago. "
                    "The property is now available for new bookings.",
                    TYPE_CONTRACT_EXPIRED,
                    t.property_id,
                )

            result.processed += 1
            log.info("processed expired contract", extra={"tenant_id": t.id, "property_id": t.property_id})
        except Exception:
            db.rollback()
            result.failed_tenant_ids.append(int(t.id))
            log.exception("failed to process expired contract", extra={"tenant_id": t.id})

    log.info("processed %s expired contracts", result.processed)
    return result


def run_contract_expiration_check(
    db: Session,
    notifier: Notifier,
    *,
    today: Optional[date] = None,
    horizons: Optional[list[int]] = None,
) -> list[SweepPassResult]:
    """One full sweep: warning passes at each horizon (60/30/7 by default), then the expiry pass."""
    day = today or today_utc()
    log.info("starting contract expiration check")

    results: list[SweepPassResult] = []
    for days_ahead in horizons if horizons is not None else settings.contract_warning_horizons:
        results.append(check_contracts_expiring(db, notifier, int(days_ahead), today=day))
    results.append(process_expired_contracts(db, notifier, today=day))

    log.info("completed contract expiration check")
    return results


def _with_requests(db: Session, tenants: list[Tenant]):
    keys = [(t.user_id, t.property_id) for t in tenants if t.property_id is not None]
    return tenants, lease_calculator.latest_approved_requests(db, keys)


# -----------------------------
# Reporting
# -----------------------------
def get_expiration_summary(
    db: Session,
    *,
    owner_id: Optional[int] = None,
    today: Optional[date] = None,
) -> ContractExpirationSummary:
    """Counts over active tenancies, restricted to owner_id's properties when given."""
    day = today or today_utc()
    in_30 = plus_days(day, 30)
    in_60 = plus_days(day, 60)

    infos = lease_calculator.get_active_tenants_with_lease_info(db, today=day, owner_id=owner_id)

    expiring_30 = expiring_60 = 0
    for info in infos:
        if info.is_expired or info.lease_end_date is None:
            continue
        if info.lease_end_date <= in_30:
            expiring_30 += 1
        elif info.lease_end_date <= in_60:
            expiring_60 += 1

    # same selection as get_expired_tenants: active, with a start date, resolved end before today
    expired = sum(1 for i in infos if i.is_expired)

    return ContractExpirationSummary(
        total_active=len(infos),
        expiring_in_30_days=expiring_30,
        expiring_in_60_days=expiring_60,
        expired_today=expired,
        total_expired=expired,
        last_processed_at=datetime.utcnow(),
    )


def _owned(tenants: list[Tenant], owner_id: int) -> list[Tenant]:
    return [t for t in tenants if _owner_id(t) == int(owner_id)]


def get_expiring_contracts_for_owner(
    db: Session,
    owner_id: int,
    days_ahead: int = 60,
    *,
    today: Optional[date] = None,
) -> list[ExpiringContractInfo]:
    day = today or today_utc()
    tenants, requests = _with_requests(
        db, _owned(lease_calculator.get_expiring_tenants(db, days_ahead, today=day), owner_id)
    )

    out: list[ExpiringContractInfo] = []
    for t in tenants:
        end = lease_calculator.calculate_lease_end_date_for_tenant(db, t, requests=requests)
        if end is None:
            continue
        out.append(
            ExpiringContractInfo(
                tenant_id=int(t.id),
                property_id=int(t.property_id or 0),
                property_name=_property_name(t, "Unknown Property"),
                tenant_name=_tenant_name(t),
                lease_end_date=end,
                days_until_expiration=days_between(day, end),
                monthly_rent=float(t.property.price or 0.0) if t.property is not None else 0.0,
            )
        )
    return sorted(out, key=lambda c: c.days_until_expiration)


def get_expired_contracts_for_owner(
    db: Session,
    owner_id: int,
    *,
    today: Optional[date] = None,
) -> list[ExpiredContractInfo]:
    day = today or today_utc()
    tenants, requests = _with_requests(db, _owned(lease_calculator.get_expired_tenants(db, today=day), owner_id))

    out: list[ExpiredContractInfo] = []
    for t in tenants:
        end = lease_calculator.calculate_lease_end_date_for_tenant(db, t, requests=requests)
        if end is None:
            continue
        out.append(
            ExpiredContractInfo(
                tenant_id=int(t.id),
                property_id=int(t.property_id or 0),
                property_name=_property_name(t, "Unknown Property"),
                tenant_name=_tenant_name(t),
                lease_end_date=end,
                days_overdue=days_between(end, day),
                monthly_rent=float(t.property.price or 0.0) if t.property is not None else 0.0,
                property_marked_available=t.property is not None and t.property.status == PROPERTY_AVAILABLE,
            )
        )
    return sorted(out, key=lambda c: c.days_overdue, reverse=True)


# -----------------------------
# Manual overrides
# -----------------------------
def _load_tenant(db: Session, tenant_id: int) -> Optional[Tenant]:
    return db.get(
        Tenant,
        int(tenant_id),
        options=[selectinload(Tenant.user), selectinload(Tenant.property).selectinload(Property.owner)],
    )


def process_specific_contract_expiration(
    db: Session,
    notifier: Notifier,
    tenant_id: int,
    *,
    today: Optional[date] = None,
) -> bool:
    """
    Releases one tenancy's property outside the sweep, only if its lease has
    actually expired. Returns True when processed.
    """
    tenant = _load_tenant(db, tenant_id)
    if tenant is None:
        log.warning("tenant not found for manual contract processing", extra={"tenant_id": tenant_id})
        return False

    if tenant.property is None:
        log.warning("tenant has no property to release", extra={"tenant_id": tenant_id})
        return False

    if not lease_calculator.is_lease_expired(db, tenant.id, today=today):
        log.warning("tenant contract is not expired, cannot process", extra={"tenant_id": tenant_id})
        return False

    try:
        _release_property(db, tenant.property)

        notifier.notify(
            tenant.user_id,
            "Contract Manually Processed",
            f"Your lease for {tenant.property.name} has been processed. "
            "The property is now available for new rentals.",
            TYPE_CONTRACT_EXPIRED,
            tenant.property_id,
        )
        owner_id = _owner_id(tenant)
        if owner_id is not None:
            notifier.notify(
                owner_id,
                "Contract Manually Processed",
                f"The tenant contract for {tenant.property.name} has been processed. "
                "The property is now available for new bookings.",
                TYPE_CONTRACT_EXPIRED,
                tenant.property_id,
            )
    except Exception:
        log.exception("error manually processing contract", extra={"tenant_id": tenant_id})
        raise

    log.info("manually processed contract expiration", extra={"tenant_id": tenant_id})
    return True


def send_expiration_reminder(
    db: Session,
    notifier: Notifier,
    tenant_id: int,
    days_until_expiration: int,
) -> bool:
    """Ad hoc reminder to tenant and owner; does not check the lease dates."""
    tenant = _load_tenant(db, tenant_id)
    if tenant is None:
        log.warning("tenant not found for expiration reminder", extra={"tenant_id": tenant_id})
        return False

    try:
        notifier.notify(
            tenant.user_id,
            "Contract Expiration Reminder",
            f"Reminder: your lease for {_property_name(tenant)} expires in {days_until_expiration} days. "
            "Please contact your landlord about renewal.",
            TYPE_CONTRACT_REMINDER,
            tenant.property_id,
        )
        owner_id = _owner_id(tenant)
        if owner_id is not None:
            notifier.notify(
                owner_id,
                "Tenant Contract Reminder",
                f"Reminder: tenant contract for {_property_name(tenant)} expires in {days_until_expiration} days.",
                TYPE_CONTRACT_REMINDER,
                tenant.property_id,
            )
    except Exception:
        log.exception("error sending expiration reminder", extra={"tenant_id": tenant_id})
        raise

    log.info(
        "sent expiration reminder (%s days)",
        days_until_expiration,
        extra={"tenant_id": tenant_id},
    )
    return True
