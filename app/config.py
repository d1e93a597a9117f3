"""
Application configuration using Pydantic Settings.

All configuration is loaded from environment variables, with an optional .env file
as a fallback. The .env file is gitignored; .env.example is the template.

Pydantic Settings automatically:
  1. Reads from environment variables (highest priority)
  2. Falls back to .env file values
  3. Uses defaults defined here (lowest priority)

Durations follow the millisecond convention of the deployment keys
(jwt.access.expiration, jwt.refresh.expiration, jwt.cleanup.interval) and are
exposed as timedelta helpers for the code that consumes them.

Usage:
    from app.config import settings
    print(settings.JWT_ACCESS_SECRET)
"""

from datetime import timedelta

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Central configuration for the card management API.

    Required fields (no defaults) MUST be set in .env or environment:
      - JWT_ACCESS_SECRET: Used to sign access tokens
      - CARD_ENCRYPTION_KEY: base64 AES key (16 or 32 bytes) for card numbers
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # --- Application ---
    APP_NAME: str = "Bank Cards API"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # --- Database ---
    # SQLite for development; swap to a postgresql+asyncpg URL for production
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/bank.db"
    TRANSACTION_TIMEOUT_SECONDS: float = 30.0

    # --- Authentication ---
    JWT_ACCESS_SECRET: str
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_EXPIRATION_MS: int = 15 * 60 * 1000
    JWT_REFRESH_EXPIRATION_MS: int = 7 * 24 * 60 * 60 * 1000
    JWT_CLEANUP_INTERVAL_MS: int = 60 * 60 * 1000
    MAX_SESSIONS_PER_USER: int = 5

    # Optional administrator created on startup if missing
    ADMIN_USERNAME: str | None = None
    ADMIN_PASSWORD: str | None = None

    # --- Card Encryption ---
    # Generate a key with: openssl rand -base64 16
    CARD_ENCRYPTION_KEY: str
    # Fixed IV (base64 of 16 bytes). Default is 0x00..0x0F.
    CARD_ENCRYPTION_IV: str = "AAECAwQFBgcICQoLDA0ODw=="

    # --- Background jobs ---
    SCHEDULER_ENABLED: bool = True

    # --- CORS ---
    ALLOWED_ORIGINS: list[str] = ["http://localhost:3000"]

    @property
    def access_token_ttl(self) -> timedelta:
        return timedelta(milliseconds=self.JWT_ACCESS_EXPIRATION_MS)

    @property
    def refresh_token_ttl(self) -> timedelta:
        return timedelta(milliseconds=self.JWT_REFRESH_EXPIRATION_MS)


# Singleton: import this instance everywhere instead of creating new Settings()
settings = Settings()
