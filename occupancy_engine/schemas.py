# occupancy_engine/schemas.py
from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# -------------------- Availability --------------------

class ConflictOut(BaseModel):
    type: str
    conflict_start: date
    conflict_end: Optional[date] = None
    description: str
    source_id: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class AvailabilityOut(BaseModel):
    property_id: int
    requested_start: date
    requested_end: date
    rental_type: str
    is_available: bool
    reason: Optional[str] = None
    conflicts: list[ConflictOut] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


# -------------------- Leases --------------------

class TenantLeaseInfoOut(BaseModel):
    tenant_id: int
    property_id: Optional[int] = None
    lease_start_date: date
    lease_end_date: Optional[date] = None
    duration_months: int
    remaining_days: Optional[int] = None
    is_expired: bool
    is_expiring_soon: bool
    property_name: str
    monthly_rent: float


class LeaseStatisticsOut(BaseModel):
    total_active: int
    expiring_this_calendar_month: int
    expiring_next_30_days: int
    expired_count: int
    total_monthly_revenue: float
    average_lease_duration_months: float

    model_config = ConfigDict(from_attributes=True)


# -------------------- Contracts --------------------

class ContractExpirationSummaryOut(BaseModel):
    total_active: int
    expiring_in_30_days: int
    expiring_in_60_days: int
    expired_today: int
    total_expired: int
    last_processed_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ExpiringContractOut(BaseModel):
    tenant_id: int
    property_id: int
    property_name: str
    tenant_name: str
    lease_end_date: date
    days_until_expiration: int
    monthly_rent: float
    notification_sent: bool = False

    model_config = ConfigDict(from_attributes=True)


class ExpiredContractOut(BaseModel):
    tenant_id: int
    property_id: int
    property_name: str
    tenant_name: str
    lease_end_date: date
    days_overdue: int
    monthly_rent: float
    property_marked_available: bool
    notification_sent: bool = False

    model_config = ConfigDict(from_attributes=True)


class ContractActionOut(BaseModel):
    ok: bool
    tenant_id: int
    processed: bool
