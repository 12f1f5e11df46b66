# occupancy_engine/services/notifications.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional, Protocol

from sqlalchemy.orm import Session

from ..models import AppUser, Notification

log = logging.getLogger("occupancy.notifications")

TYPE_CONTRACT_EXPIRING = "contract_expiring"
TYPE_CONTRACT_EXPIRED = "contract_expired"
TYPE_CONTRACT_REMINDER = "contract_reminder"


class Notifier(Protocol):
    def notify(
        self,
        user_id: int,
        title: str,
        message: str,
        type: str,
        reference_id: Optional[int] = None,
    ) -> None: ...


class DbNotifier:
    """
    Persists in-app notifications.

    Delivery (push, email) is somebody else's job; this only writes the row
    the delivery side reads from.
    """

    def __init__(self, db: Session):
        self.db = db

    def notify(
        self,
        user_id: int,
        title: str,
        message: str,
        type: str,
        reference_id: Optional[int] = None,
    ) -> None:
        if self.db.get(AppUser, int(user_id)) is None:
            log.warning("cannot create notification, user not found", extra={"user_id": user_id})
            return

        row = Notification(
            user_id=int(user_id),
            title=str(title),
            message=str(message),
            type=str(type),
            reference_id=reference_id,
            is_read=False,
            created_at=datetime.utcnow(),
        )
        self.db.add(row)
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            log.exception("error creating notification", extra={"user_id": user_id})
            raise

        log.info("created %s notification: %s", type, title, extra={"user_id": user_id})
