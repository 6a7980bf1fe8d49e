"""
Configuration management.
Loads from config_local.py (gitignored) for secrets, with environment/default fallbacks.
"""
import os
from typing import Optional


def _env(name: str, default=None):
    return os.getenv(f"CRM_BILLING_{name}", default)


def _env_bool(name: str, default: bool) -> bool:
    value = _env(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# Try to import local config (gitignored)
try:
    from crm_billing.config_local import (
        DATABASE_DSN,
        SESSION_COOKIE_NAME,
        SESSION_SECRET,
        SESSION_TTL_HOURS,
        ENABLE_EXPIRY_SCHEDULER,
        EXPIRY_SWEEP_HOUR,
        EXPIRY_SWEEP_MINUTE,
        DEFAULT_CURRENCY,
        LOG_LEVEL,
        CORS_ORIGINS,
    )
except ImportError:
    # Fallback to environment (sqlite keeps local runs and tests working without MySQL)
    DATABASE_DSN: str = _env("DATABASE_DSN", "sqlite:///./crm_billing.db")
    SESSION_COOKIE_NAME: str = _env("SESSION_COOKIE_NAME", "crm_session")
    SESSION_SECRET: Optional[str] = _env("SESSION_SECRET")
    SESSION_TTL_HOURS: int = int(_env("SESSION_TTL_HOURS", "24"))
    ENABLE_EXPIRY_SCHEDULER: bool = _env_bool("ENABLE_EXPIRY_SCHEDULER", True)
    EXPIRY_SWEEP_HOUR: int = int(_env("EXPIRY_SWEEP_HOUR", "0"))  # UTC
    EXPIRY_SWEEP_MINUTE: int = int(_env("EXPIRY_SWEEP_MINUTE", "0"))
    DEFAULT_CURRENCY: str = _env("DEFAULT_CURRENCY", "INR")
    LOG_LEVEL: str = _env("LOG_LEVEL", "INFO")
    CORS_ORIGINS: list[str] = [
        origin.strip()
        for origin in _env("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
        if origin.strip()
    ]


def get_settings():
    """Return settings object (for FastAPI dependency injection if needed)."""
    return type("Settings", (), {
        "database_dsn": DATABASE_DSN,
        "session_cookie_name": SESSION_COOKIE_NAME,
        "session_secret": SESSION_SECRET,
        "session_ttl_hours": SESSION_TTL_HOURS,
        "enable_expiry_scheduler": ENABLE_EXPIRY_SCHEDULER,
        "expiry_sweep_hour": EXPIRY_SWEEP_HOUR,
        "expiry_sweep_minute": EXPIRY_SWEEP_MINUTE,
        "default_currency": DEFAULT_CURRENCY,
        "log_level": LOG_LEVEL,
        "cors_origins": CORS_ORIGINS,
    })()
