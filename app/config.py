"""
Ledger configuration, read with pydantic-settings.

Values come from the process environment first, then from a .env file in
the working directory, then from the defaults below. Only SECRET_KEY has
no default: the service refuses to start without it.

Usage:
    from app.config import settings
    settings.STORE_RETRY_ATTEMPTS
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """All tunables of the ledger service, one field per environment variable."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    APP_NAME: str = "Account Ledger"
    APP_VERSION: str = "0.1.0"
    # Echo SQL statements
    DEBUG: bool = False

    # Async SQLAlchemy URL; postgresql+asyncpg://... works as well
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/ledger.db"

    # Shared with the external token issuer
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Attempts per operation before StoreUnavailable is reported
    STORE_RETRY_ATTEMPTS: int = 3
    # First retry delay; doubles after every failed attempt
    STORE_RETRY_BACKOFF_SECONDS: float = 0.05
    # Max wait for exclusive access to one account
    LOCK_TIMEOUT_SECONDS: float = 10.0
    # Largest amount of a single operation ($100 billion)
    MAX_AMOUNT_CENTS: int = 10**13

    LOG_LEVEL: str = "INFO"
    # "standard" or "json"
    LOG_FORMAT: str = "standard"

    # Browser origins allowed by CORS
    ALLOWED_ORIGINS: list[str] = ["http://localhost:3000"]


settings = Settings()
