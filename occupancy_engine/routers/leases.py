# occupancy_engine/routers/leases.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import Caller, get_caller
from ..config import settings
from ..db import get_db
from ..schemas import LeaseStatisticsOut, TenantLeaseInfoOut
from ..services.lease_calculator import TenantLeaseInfo, get_lease_statistics, get_tenants_requiring_attention

router = APIRouter(prefix="/leases", tags=["leases"])


def _info_out(i: TenantLeaseInfo) -> TenantLeaseInfoOut:
    return TenantLeaseInfoOut(
        tenant_id=i.tenant.id,
        property_id=i.tenant.property_id,
        lease_start_date=i.lease_start_date,
        lease_end_date=i.lease_end_date,
        duration_months=i.duration_months,
        remaining_days=i.remaining_days,
        is_expired=i.is_expired,
        is_expiring_soon=i.is_expiring_soon,
        property_name=i.property_name,
        monthly_rent=i.monthly_rent,
    )


@router.get("/statistics", response_model=LeaseStatisticsOut)
def lease_statistics(db: Session = Depends(get_db), caller: Caller = Depends(get_caller)):
    return get_lease_statistics(db, caller.user_id)


@router.get("/attention", response_model=list[TenantLeaseInfoOut])
def tenants_requiring_attention(
    warning_days: Optional[int] = Query(default=None, ge=0, le=3650),
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_caller),
):
    days = warning_days if warning_days is not None else settings.attention_warning_days
    return [_info_out(i) for i in get_tenants_requiring_attention(db, caller.user_id, days)]
