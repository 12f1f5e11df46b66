# occupancy_engine/config.py
from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ---- App ----
    app_env: str = "local"  # local|dev|prod
    database_url: str = "sqlite:///./occupancy.db"
    app_version: str = "2026-10-17.v1"

    # ---- CORS (used by main.py) ----
    cors_allow_origins: list[str] | str = ["*"]

    # ---- Lease policy ----
    default_lease_months: int = 12
    min_lease_days: int = 180
    expiring_soon_days: int = 30
    attention_warning_days: int = 30

    # ---- Contract sweep ----
    contract_warning_horizons: list[int] = [60, 30, 7]
    contract_sweep_hour_utc: int = 0
    contract_sweep_max_retries: int = 3
    contract_sweep_retry_base_seconds: int = 60
    contract_sweep_retry_max_seconds: int = 3600

    # ---- Celery ----
    celery_broker_url: str | None = None
    celery_result_backend: str | None = None

    def model_post_init(self, __context) -> None:
        env = (self.app_env or "local").strip().lower()
        is_prod = env in ("prod", "production")

        if is_prod:
            origins = self.cors_allow_origins
            if origins == "*" or origins == ["*"] or (isinstance(origins, str) and "*" in origins):
                raise ValueError("SECURITY: cors_allow_origins wildcard is not allowed in prod")

        if not (0 <= int(self.contract_sweep_hour_utc) <= 23):
            raise ValueError("contract_sweep_hour_utc must be between 0 and 23")

        if any(int(h) < 0 for h in self.contract_warning_horizons):
            raise ValueError("contract_warning_horizons must be non-negative day counts")


settings = Settings()
