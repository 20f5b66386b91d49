from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        enable_decoding=False,
    )

    ENV: str = "dev"
    DATABASE_URL: str = "sqlite:///./polysight.db"
    REDIS_URL: str = "redis://localhost:6379/0"
    CORS_ALLOW_ORIGINS: list[str] = ["*"]

    POLYMARKET_BASE_URL: str = "https://gamma-api.polymarket.com"
    POLY_EVENTS_LIMIT: int = 5000
    POLY_MARKETS_LIMIT: int = 5000
    KALSHI_BASE_URL: str = "https://api.elections.kalshi.com/trade-api/v2"
    KALSHI_MAX_LIMIT: int = 1000
    HTTP_TIMEOUT_SECONDS: float = 15.0

    EXTERNAL_MAX_CONCURRENT_POLY_CALLS: int = 8
    EXTERNAL_MAX_CONCURRENT_KALSHI_CALLS: int = 4
    POLY_CIRCUIT_MAX_FAILURES: int = 5
    POLY_CIRCUIT_RESET_SECONDS: int = 30
    KALSHI_CIRCUIT_MAX_FAILURES: int = 5
    KALSHI_CIRCUIT_RESET_SECONDS: int = 30

    MARKETS_DEFAULT_LIMIT: int = 10
    MARKETS_MAX_LIMIT: int = 10000
    MARKETS_CACHE_MAX_LIMIT: int = 1000
    MARKETS_CACHE_TTL_SECONDS: float = 2.0
    MARKETS_CACHE_CAPACITY: int = 10
    MARKETS_CACHE_BACKEND: str = "memory"
    CATEGORIES_TOP_N: int = 25

    STORE_READ_ENABLED: bool = True
    STORE_FRESHNESS_SECONDS: int = 300
    SYNC_LOCK_TTL_SECONDS: int = 600

    ADMIN_API_KEY: str | None = None

    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000

    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True
    UPSTREAM_SLOW_SECONDS: float = 2.0

    @field_validator("ADMIN_API_KEY", mode="before")
    @classmethod
    def _empty_str_to_none(cls, value):
        if value == "":
            return None
        return value

    @field_validator("CORS_ALLOW_ORIGINS", mode="before")
    @classmethod
    def _split_origins(cls, value):
        if value is None:
            return value
        if isinstance(value, str):
            parts = [part.strip() for part in value.split(",") if part.strip()]
            return parts
        return value

    @field_validator("MARKETS_CACHE_BACKEND", mode="before")
    @classmethod
    def _normalize_backend(cls, value):
        if value is None:
            return "memory"
        return str(value).strip().lower() or "memory"

settings = Settings()
