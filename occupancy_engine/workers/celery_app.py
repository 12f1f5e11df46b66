# occupancy_engine/workers/celery_app.py
from __future__ import annotations

import os

from celery import Celery
from celery.schedules import crontab

from ..config import settings

BROKER = settings.celery_broker_url or os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
BACKEND = settings.celery_result_backend or os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/1")

celery_app = Celery(
    "occupancy",
    broker=BROKER,
    backend=BACKEND,
    include=["occupancy_engine.workers.contract_tasks"],
)

celery_app.conf.update(
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_reject_on_worker_lost=True,
    task_track_started=True,
    timezone="UTC",
)

celery_app.conf.task_routes = {
    "occupancy_engine.workers.contract_tasks.*": {"queue": "contracts"},
}

# Daily sweep; overlapping runs are tolerated (property release is idempotent)
celery_app.conf.beat_schedule = {
    "contract-expiration-sweep": {
        "task": "occupancy_engine.workers.contract_tasks.run_contract_expiration_sweep",
        "schedule": crontab(minute=0, hour=int(settings.contract_sweep_hour_utc)),
    },
}
