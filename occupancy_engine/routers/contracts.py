# occupancy_engine/routers/contracts.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import Caller, get_caller
from ..db import get_db
from ..schemas import (
    ContractActionOut,
    ContractExpirationSummaryOut,
    ExpiredContractOut,
    ExpiringContractOut,
)
from ..services import contract_lifecycle
from ..services.notifications import DbNotifier
from ..services.ownership import must_get_owned_tenant

router = APIRouter(prefix="/contracts", tags=["contracts"])


@router.get("/summary", response_model=ContractExpirationSummaryOut)
def expiration_summary(db: Session = Depends(get_db), caller: Caller = Depends(get_caller)):
    return contract_lifecycle.get_expiration_summary(db, owner_id=caller.user_id)


@router.get("/expiring", response_model=list[ExpiringContractOut])
def expiring_contracts(
    days_ahead: int = Query(default=60, ge=0, le=3650),
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_caller),
):
    return contract_lifecycle.get_expiring_contracts_for_owner(db, caller.user_id, days_ahead)


@router.get("/expired", response_model=list[ExpiredContractOut])
def expired_contracts(db: Session = Depends(get_db), caller: Caller = Depends(get_caller)):
    return contract_lifecycle.get_expired_contracts_for_owner(db, caller.user_id)


@router.post("/{tenant_id}/process", response_model=ContractActionOut)
def process_contract(tenant_id: int, db: Session = Depends(get_db), caller: Caller = Depends(get_caller)):
    must_get_owned_tenant(db, owner_id=caller.user_id, tenant_id=tenant_id)
    processed = contract_lifecycle.process_specific_contract_expiration(db, DbNotifier(db), tenant_id)
    return ContractActionOut(ok=True, tenant_id=tenant_id, processed=processed)


@router.post("/{tenant_id}/remind", response_model=ContractActionOut)
def remind_contract(
    tenant_id: int,
    days: int = Query(..., ge=0, le=3650),
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_caller),
):
    must_get_owned_tenant(db, owner_id=caller.user_id, tenant_id=tenant_id)
    sent = contract_lifecycle.send_expiration_reminder(db, DbNotifier(db), tenant_id, days)
    return ContractActionOut(ok=True, tenant_id=tenant_id, processed=sent)
