# occupancy_engine/auth.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException


@dataclass(frozen=True)
class Caller:
    user_id: int


def get_caller(x_user_id: Optional[str] = Header(default=None, alias="X-User-Id")) -> Caller:
    """
    Authentication happens upstream (gateway); by the time a request gets here
    the caller identity is a resolved user id in X-User-Id.
    """
    raw = str(x_user_id or "").strip()
    if not raw:
        raise HTTPException(status_code=401, detail="Missing X-User-Id (resolved caller identity).")
    try:
        return Caller(user_id=int(raw))
    except ValueError:
        raise HTTPException(status_code=401, detail="X-User-Id must be an integer user id.")
