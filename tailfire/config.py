from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict

from tailfire.services.schedule_types import TicoRules


def normalize_db_url(url: str) -> str:
    url = (url or "").strip()
    if not url:
        raise RuntimeError("DATABASE_URL is not configured.")

    # Heroku/Railway style: postgres://...
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql+psycopg2://", 1)

    # postgresql://... without a driver
    if url.startswith("postgresql://") and "+psycopg2" not in url:
        url = url.replace("postgresql://", "postgresql+psycopg2://", 1)

    return url


class Settings(BaseSettings):
    DATABASE_URL: str

    JWT_SECRET_KEY: str = "change-me"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRES_MINUTES: int = 60

    # comma separated
    FRONTEND_URLS: str = "http://localhost:3000,http://127.0.0.1:3000"

    LOG_LEVEL: str = "INFO"
    WORKER_INTERVAL_SECONDS: int = 3600

    TICO_MIN_FINAL_PAYMENT_DAYS: int = 45
    TICO_MAX_INSTALLMENTS: int = 12
    TICO_MIN_PAYMENT_CENTS: int = 100
    TICO_DEPOSIT_WARNING_PCT: int = 50

    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )

    def __init__(self, **values):
        super().__init__(**values)
        self.DATABASE_URL = normalize_db_url(self.DATABASE_URL)

    @property
    def allowed_origins(self) -> list[str]:
        return [o.strip() for o in self.FRONTEND_URLS.split(",") if o.strip()]

    def tico_rules(self) -> TicoRules:
        return TicoRules(
            min_final_payment_days=self.TICO_MIN_FINAL_PAYMENT_DAYS,
            max_installments=self.TICO_MAX_INSTALLMENTS,
            min_payment_cents=self.TICO_MIN_PAYMENT_CENTS,
            deposit_warning_pct=self.TICO_DEPOSIT_WARNING_PCT,
        )


settings = Settings()
