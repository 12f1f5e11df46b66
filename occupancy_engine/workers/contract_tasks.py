# occupancy_engine/workers/contract_tasks.py
from __future__ import annotations

import logging
import random

from ..config import settings
from ..db import SessionLocal
from ..middleware.request_id import bind_sweep_id
from ..services.contract_lifecycle import run_contract_expiration_check
from ..services.notifications import DbNotifier
from .celery_app import celery_app

log = logging.getLogger("occupancy.worker")


def _backoff_seconds(retries: int) -> int:
    """
    Exponential backoff with jitter.
    retries is the current retry count (0 for the first retry attempt).
    """
    base = int(settings.contract_sweep_retry_base_seconds or 60)
    cap = int(settings.contract_sweep_retry_max_seconds or 3600)

    delay = min(cap, base * (2 ** max(0, int(retries))))

    # jitter: +/- 20%
    jitter = int(delay * 0.2)
    if jitter > 0:
        delay = max(1, delay + random.randint(-jitter, jitter))
    return delay


@celery_app.task(
    bind=True,
    max_retries=settings.contract_sweep_max_retries,
    name="occupancy_engine.workers.contract_tasks.run_contract_expiration_sweep",
)
def run_contract_expiration_sweep(self) -> dict:
    """
    One scheduled sweep: warning passes at every horizon, then the expiry pass.

    Per-tenant failures are absorbed inside the passes and reported in the
    result. A failure loading candidates aborts the sweep and is retried with
    backoff; after the last retry it is raised to the broker.
    """
    db = SessionLocal()
    try:
        with bind_sweep_id(getattr(self.request, "id", None)) as sweep_id:
            try:
                passes = run_contract_expiration_check(db, DbNotifier(db))
            except Exception as e:
                db.rollback()
                retries = int(getattr(self.request, "retries", 0) or 0)
                log.exception("contract expiration sweep aborted (retry %s)", retries)
                raise self.retry(exc=e, countdown=_backoff_seconds(retries))

            out = {
                "ok": True,
                "sweep_id": sweep_id,
                "passes": [p.as_dict() for p in passes],
                "failed_tenant_ids": sorted({tid for p in passes for tid in p.failed_tenant_ids}),
            }
            log.info("contract expiration sweep finished")
            return out
    finally:
        db.close()
