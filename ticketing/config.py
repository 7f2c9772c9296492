"""Environment-driven settings and logging setup."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass


def _env_flag(name: str, default: str = "0") -> bool:
    return os.environ.get(name, default) == "1"


@dataclass
class Settings:
    log_level: str = "INFO"

    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db: str = "event_ticketing"

    # Empty disables caching; every read goes to MongoDB.
    redis_url: str = "redis://localhost:6379/0"
    cache_ttl_seconds: int = 60 * 60

    secret_key: str = "CHANGE_ME_IN_PRODUCTION"
    session_cookie_secure: bool = False
    session_cookie_samesite: str = "Lax"
    session_protection: str = "strong"

    razorpay_key_id: str = ""
    razorpay_key_secret: str = ""
    razorpay_base_url: str = "https://api.razorpay.com/v1"
    payment_currency: str = "INR"

    host: str = "0.0.0.0"
    port: int = 5000
    debug: bool = False
    testing: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
            mongo_uri=os.environ.get("MONGO_URI", cls.mongo_uri),
            mongo_db=os.environ.get("MONGO_DB", cls.mongo_db),
            redis_url=os.environ.get("REDIS_URL", cls.redis_url),
            cache_ttl_seconds=int(os.environ.get("CACHE_TTL_SECONDS", str(cls.cache_ttl_seconds))),
            secret_key=os.environ.get("SECRET_KEY", cls.secret_key),
            session_cookie_secure=_env_flag("SESSION_COOKIE_SECURE"),  # set to 1 behind HTTPS
            session_cookie_samesite=os.environ.get("SESSION_COOKIE_SAMESITE", cls.session_cookie_samesite),
            session_protection=os.environ.get("SESSION_PROTECTION", cls.session_protection),
            razorpay_key_id=os.environ.get("RAZORPAY_KEY_ID", ""),
            razorpay_key_secret=os.environ.get("RAZORPAY_KEY_SECRET", ""),
            razorpay_base_url=os.environ.get("RAZORPAY_BASE_URL", cls.razorpay_base_url),
            payment_currency=os.environ.get("PAYMENT_CURRENCY", cls.payment_currency),
            host=os.environ.get("HOST", cls.host),
            port=int(os.environ.get("PORT", "5000")),
            debug=_env_flag("FLASK_DEBUG"),
        )


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
