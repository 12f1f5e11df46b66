# occupancy_engine/routers/availability.py
from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..schemas import AvailabilityOut, ConflictOut
from ..services.availability import RentalType, check_availability, get_conflicts
from ..services.ownership import must_get_property

router = APIRouter(prefix="/availability", tags=["availability"])


def _require_range(start: date, end: date) -> None:
    if end <= start:
        raise HTTPException(status_code=422, detail="end must be after start")


@router.get("/{property_id}", response_model=AvailabilityOut)
def availability(
    property_id: int,
    start: date = Query(...),
    end: date = Query(...),
    rental_type: RentalType = Query(default=RentalType.DAILY),
    db: Session = Depends(get_db),
):
    _require_range(start, end)
    must_get_property(db, property_id=property_id)
    return check_availability(db, property_id, start, end, rental_type)


@router.get("/{property_id}/conflicts", response_model=list[ConflictOut])
def conflicts(
    property_id: int,
    start: date = Query(...),
    end: date = Query(...),
    db: Session = Depends(get_db),
):
    _require_range(start, end)
    must_get_property(db, property_id=property_id)
    return get_conflicts(db, property_id, start, end)
