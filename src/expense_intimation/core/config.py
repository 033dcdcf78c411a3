from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    environment: str = "dev"
    base_url: str = "http://localhost:8000"
    secret_key: str = "change-me"

    database_url: str = "sqlite:///./expense_intimation.db"
    redis_url: str = "redis://localhost:6379/0"

    init_admin_email: str | None = None
    init_admin_password: str | None = None

    access_token_exp_minutes: int = 60 * 24

    default_currency: str = "USD"
    expense_number_prefix: str = "EXP"
    intimation_number_prefix: str = "INT"

    # Keyed by side-effect target, e.g. {"accounting_system": "https://..."}.
    webhook_urls: dict[str, str] = {}
    webhook_timeout_seconds: float = 10.0
    webhook_max_attempts: int = 3
    webhook_retry_backoff_seconds: float = 0.5

    side_effect_delay_ms: int = 0

    @property
    def run_tasks_eagerly(self) -> bool:
        return self.environment in {"dev", "test"}


settings = Settings()
