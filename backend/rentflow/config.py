# backend/rentflow/config.py
from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ---- App ----
    app_env: str = "local"  # local|dev|prod
    app_version: str = "2026-10-19.v1"
    database_url: str = "sqlite:///./rentflow.db"

    # ---- CORS (used by main.py) ----
    cors_allow_origins: list[str] | str = ["*"]

    # ---- Auth ----
    auth_mode: str = "dev"  # dev|jwt
    jwt_secret: str = "dev-change-me"
    jwt_algorithm: str = "HS256"

    # Dev header names
    dev_header_user_id: str = "X-User-Id"
    dev_header_user_role: str = "X-User-Role"

    # ---- Payments (Stripe) ----
    stripe_secret_key: str | None = None
    stripe_base_url: str = "https://api.stripe.com/v1"
    stripe_timeout_seconds: float = 20.0
    stripe_webhook_secret: str | None = None
    stripe_webhook_tolerance_seconds: int = 300
    platform_commission_pct: float = 5.0

    # ---- Documents ----
    document_renderer_url: str | None = None
    document_renderer_timeout_seconds: float = 30.0

    # ---- Lifecycle rules ----
    checklist_deadline_days: int = 7
    checklist_due_soon_days: int = 2
    min_reason_length: int = 10
    max_key_slots: int = 10

    # ---- Celery ----
    celery_broker_url: str = "redis://localhost:6379/0"
    celery_result_backend: str = "redis://localhost:6379/1"
    sweep_interval_seconds: int = 15 * 60
    notification_webhook_url: str | None = None
    notification_timeout_seconds: float = 10.0
    notification_max_retries: int = 3

    def model_post_init(self, __context) -> None:
        env = (self.app_env or "local").strip().lower()
        is_prod = env in ("prod", "production")

        if is_prod:
            if (self.auth_mode or "").strip().lower() == "dev":
                raise ValueError("SECURITY: auth_mode=dev is not allowed in prod")
            if self.jwt_secret == "dev-change-me":
                raise ValueError("SECURITY: jwt_secret must be set in prod")

            origins = self.cors_allow_origins
            if origins == "*" or origins == ["*"] or (isinstance(origins, str) and "*" in origins):
                raise ValueError("SECURITY: cors_allow_origins wildcard is not allowed in prod")


settings = Settings()
