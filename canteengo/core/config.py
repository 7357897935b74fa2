"""
CanteenGo — Configuration
All settings are read from environment variables (or .env file).
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ── Service ──────────────────────────────────────────────
    SERVICE_NAME: str = "canteengo"
    SERVICE_VERSION: str = "1.0.0"
    DEBUG: bool = False
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    # ── JWT ──────────────────────────────────────────────────
    JWT_SECRET_KEY: str = "CHANGE_ME_IN_PRODUCTION"
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    JWT_REFRESH_TOKEN_EXPIRE_DAYS: int = 7

    # ── PostgreSQL ────────────────────────────────────────────
    POSTGRES_HOST: str = "canteen-db"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "canteen_db"
    POSTGRES_USER: str = "canteen_user"
    POSTGRES_PASSWORD: str = "canteen_pass"

    @property
    def database_url(self) -> str:
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    # ── Redis (change feed, idempotency, in-flight locks) ─────
    REDIS_HOST: str = "redis"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str = ""

    @property
    def redis_url(self) -> str:
        if self.REDIS_PASSWORD:
            return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    # ── Pickup Codes ──────────────────────────────────────────
    PICKUP_CODE_DIGITS: int = 6
    PICKUP_CODE_MAX_RETRIES: int = 5       # insert attempts when an active code collides
    PICKUP_CODE_BASE_DELAY_MS: int = 10
    PICKUP_CODE_MAX_DELAY_MS: int = 200
    PICKUP_CODE_JITTER_MS: int = 10

    # ── Orders ────────────────────────────────────────────────
    IDEMPOTENCY_KEY_TTL_SECONDS: int = 86400
    STATUS_UPDATE_LOCK_TTL_SECONDS: int = 10
    REQUEST_TIMEOUT_SECONDS: float = 10.0

    # ── SSE ───────────────────────────────────────────────────
    SSE_KEEPALIVE_INTERVAL_SECONDS: int = 15
    SSE_RETRY_MILLISECONDS: int = 3000
    SSE_POLL_TIMEOUT_SECONDS: float = 1.0

    # ── Observability ─────────────────────────────────────────
    METRICS_ENABLED: bool = True
    HEALTH_CHECK_TIMEOUT: float = 5.0


@lru_cache()
def get_settings() -> Settings:
    return Settings()
