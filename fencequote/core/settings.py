# fencequote/core/settings.py
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_env: str = "local"  # local | development | production

    # --- Database ---
    DATABASE_URL: str = "sqlite+aiosqlite:///./fencequote.db"
    DATABASE_ECHO: bool = False

    # --- Hosted backend (PostgREST / RPC) ---
    SUPABASE_URL: Optional[str] = None
    SUPABASE_ANON_KEY: Optional[str] = None
    RPC_PRICING_ENABLED: bool = False
    RPC_TIMEOUT_SECONDS: float = 5.0
    RPC_RETRY_ATTEMPTS: int = 3

    # --- Pricing ---
    RATE_SHEET_CACHE_TTL_SECONDS: int = Field(300, ge=0)

    # --- Approval ---
    APPROVAL_RULESET_PATH: Optional[str] = None  # None -> packaged approval_v1.yaml

    # --- Logging ---
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    ALLOWED_ORIGINS: list[str] = ["http://localhost:5173"]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()  # reads .env
