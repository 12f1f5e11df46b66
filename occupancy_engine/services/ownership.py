# occupancy_engine/services/ownership.py
from __future__ import annotations

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models import Property, Tenant


def must_get_property(db: Session, *, property_id: int) -> Property:
    row = db.get(Property, int(property_id))
    if not row:
        raise HTTPException(status_code=404, detail="property not found")
    return row


def must_get_owned_tenant(db: Session, *, owner_id: int, tenant_id: int) -> Tenant:
    """Tenant whose property belongs to owner_id; 404 otherwise so existence is not leaked."""
    row = db.scalar(
        select(Tenant)
        .join(Property, Tenant.property_id == Property.id)
        .where(Tenant.id == int(tenant_id), Property.owner_id == int(owner_id))
    )
    if not row:
        raise HTTPException(status_code=404, detail="tenant not found")
    return row

