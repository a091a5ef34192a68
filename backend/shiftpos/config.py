# backend/shiftpos/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/shiftpos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///shiftpos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Terminal this process serves; one open shift per terminal
    TERMINAL_ID = os.environ.get("TERMINAL_ID", "main")

    # Pricing defaults (store settings override these)
    DEFAULT_TAX_RATE_PERCENT = os.environ.get("TAX_RATE_PERCENT", "0")
    PRICE_OVERRIDE_POLICY = os.environ.get("PRICE_OVERRIDE_POLICY", "allow")  # allow, clamp, reject

    # Shift rotation: auto-close an open shift started on an earlier business date
    SHIFT_DAILY_ROTATION = _env_bool("SHIFT_DAILY_ROTATION", True)
    BUSINESS_TIMEZONE = os.environ.get("BUSINESS_TIMEZONE", "UTC")

    VOID_POLICY = os.environ.get("VOID_POLICY", "any")  # any, open_shift_only

    # Bounded retry for settlement steps after the sale record exists
    SETTLEMENT_MAX_ATTEMPTS = int(os.environ.get("SETTLEMENT_MAX_ATTEMPTS", "3"))
    SETTLEMENT_BACKOFF_BASE = float(os.environ.get("SETTLEMENT_BACKOFF_BASE", "0.05"))
