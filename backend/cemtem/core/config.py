"""Application configuration.

Environment variables override all defaults. Values are read once at import.
"""

import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

# Load .env for local development; real environment variables win
_BACKEND_DIR = Path(__file__).resolve().parents[2]
load_dotenv(dotenv_path=_BACKEND_DIR / ".env", override=False)


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


class Settings:
    # Database Configuration
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./cemtem.db")

    # Telegram Bot (Must be set via .env, never in code)
    TELEGRAM_BOT_TOKEN: str = os.getenv("TELEGRAM_BOT_TOKEN", "")

    # Operator relay chat: replies typed here are forwarded to web sessions
    RELAY_CHAT_ID: Optional[str] = os.getenv("RELAY_CHAT_ID") or None

    # Fan-out: how many matched vendors receive one inquiry (0 = no cap)
    MAX_VENDORS_PER_INQUIRY: int = _int_env("MAX_VENDORS_PER_INQUIRY", 3)

    # Session expiry
    SESSION_TTL_MINUTES: int = _int_env("SESSION_TTL_MINUTES", 1440)
    QUOTE_DRAFT_TTL_MINUTES: int = _int_env("QUOTE_DRAFT_TTL_MINUTES", 2880)
    SESSION_SWEEP_INTERVAL_SECONDS: int = _int_env("SESSION_SWEEP_INTERVAL_SECONDS", 600)

    # CORS (specific origins only, no wildcards)
    CORS_ORIGINS: List[str] = [
        origin.strip()
        for origin in os.getenv(
            "CORS_ORIGINS",
            "http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173",
        ).split(",")
        if origin.strip()
    ]

    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    DEBUG: bool = ENVIRONMENT == "development"
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "DEBUG" if DEBUG else "INFO")


settings = Settings()
