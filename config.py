"""
Runtime configuration for the PawMart API.

Values come from environment variables (a local .env file is loaded first).
"""
import logging
import os
import secrets
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r, using %s", name, raw, default)
        return default


@dataclass(frozen=True)
class Settings:
    database_url: Optional[str] = None
    database_name: str = "pawmart"
    jwt_secret: str = field(default_factory=lambda: secrets.token_hex(32))
    jwt_expires_days: int = 7
    bcrypt_rounds: int = 12
    rate_limit_window_seconds: int = 15 * 60
    rate_limit_max: int = 100
    auth_rate_limit_max: int = 5
    resend_api_key: Optional[str] = None
    email_from: str = "PawMart <no-reply@pawmart.app>"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"
    default_page_size: int = 10
    max_page_size: int = 100
    recent_listings_limit: int = 6

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()

        jwt_secret = os.getenv("JWT_SECRET")
        if not jwt_secret:
            logger.warning("JWT_SECRET not set; generated a random secret, tokens will not survive a restart")
            jwt_secret = secrets.token_hex(32)

        origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

        return cls(
            database_url=os.getenv("DATABASE_URL") or None,
            database_name=os.getenv("DATABASE_NAME") or "pawmart",
            jwt_secret=jwt_secret,
            jwt_expires_days=_int_env("JWT_EXPIRES_DAYS", 7),
            bcrypt_rounds=_int_env("BCRYPT_ROUNDS", 12),
            rate_limit_window_seconds=_int_env("RATE_LIMIT_WINDOW_SECONDS", 15 * 60),
            rate_limit_max=_int_env("RATE_LIMIT_MAX", 100),
            auth_rate_limit_max=_int_env("AUTH_RATE_LIMIT_MAX", 5),
            resend_api_key=os.getenv("RESEND_API_KEY") or None,
            email_from=os.getenv("EMAIL_FROM") or "PawMart <no-reply@pawmart.app>",
            cors_origins=origins or ["*"],
            log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
        )
