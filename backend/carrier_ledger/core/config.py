from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    APP_NAME: str = "Carrier Ledger"
    version: str = "0.1.0"
    DEBUG: bool = False
    APP_DATABASE_DSN: str = "sqlite:////tmp/carrier_ledger.db"
    REDIS_URL: str = "redis://localhost:6379"

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    # Reconciliation
    LOCK_TIMEOUT_SECONDS: float = 10.0
    DEFAULT_FAILED_ATTEMPT_FEE_PERCENT: int = 50
    DEFAULT_DISPATCH_CODE_PREFIX: str = "DISP"
    DEFAULT_SETTLEMENT_CODE_PREFIX: str = "LIQ"

    # Movement repair
    BACKFILL_BATCH_SIZE: int = 500
    BACKFILL_CRON_ENABLED: bool = True
    BACKFILL_CRON_DRY_RUN: bool = True
    HEALTH_REPORT_WINDOW_DAYS: int = 90

    @property
    def is_postgres(self) -> bool:
        return self.APP_DATABASE_DSN.startswith("postgresql")


settings = Settings()
