# Overview: Store settings with config-backed defaults and typed validation.

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

from flask import current_app

from ..extensions import db
from ..models import StoreSetting
from .concurrency import run_with_retry
from .errors import SettingsError


PRICE_OVERRIDE_POLICIES = ("allow", "clamp", "reject")
VOID_POLICIES = ("any", "open_shift_only")


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in {"1", "true", "yes", "on"}:
        return True
    if text in {"0", "false", "no", "off"}:
        return False
    raise SettingsError(f"Expected a boolean, got {value!r}")


def _parse_percent(value: Any) -> Decimal:
    try:
        rate = Decimal(str(value))
    except InvalidOperation:
        raise SettingsError(f"Expected a number, got {value!r}")
    if not rate.is_finite() or rate < 0:
        raise SettingsError("Tax rate must be zero or positive")
    return rate


def _choice(options: tuple[str, ...]):
    def _parse(value: Any) -> str:
        text = str(value).strip().lower()
        if text not in options:
            raise SettingsError(f"Expected one of {', '.join(options)}; got {value!r}")
        return text
    return _parse


def _parse_name(value: Any) -> str:
    text = str(value).strip()
    if not text:
        raise SettingsError("Store name cannot be empty")
    return text


# key -> (config default key, parser)
SETTINGS_REGISTRY = {
    "store_name": (None, _parse_name),
    "tax_rate_percent": ("DEFAULT_TAX_RATE_PERCENT", _parse_percent),
    "daily_shift_rotation": ("SHIFT_DAILY_ROTATION", _parse_bool),
    "price_override_policy": ("PRICE_OVERRIDE_POLICY", _choice(PRICE_OVERRIDE_POLICIES)),
    "void_policy": ("VOID_POLICY", _choice(VOID_POLICIES)),
}


def _registry_entry(key: str):
    entry = SETTINGS_REGISTRY.get(key)
    if entry is None:
        raise SettingsError(f"Unknown setting '{key}'", details={"key": key})
    return entry


def _default(key: str) -> Any:
    config_key, _ = _registry_entry(key)
    if config_key is None:
        return "ShiftPOS"
    return current_app.config.get(config_key)


def get_setting(key: str) -> Any:
    """Typed value of a setting: stored row if present, else the app config default."""
    _, parse = _registry_entry(key)
    row = db.session.query(StoreSetting).filter_by(key=key).first()
    raw = row.value if row is not None and row.value is not None else _default(key)
    return parse(raw)


def set_setting(key: str, value: Any, updated_by: str | None = None) -> Any:
    return set_settings({key: value}, updated_by=updated_by)[key]


def all_settings() -> dict:
    return {key: get_setting(key) for key in SETTINGS_REGISTRY}


def tax_rate_percent() -> Decimal:
    return get_setting("tax_rate_percent")


def price_override_policy() -> str:
    return get_setting("price_override_policy")


def get_pricing_policy() -> dict:
    """Tax rate and price override policy a checkout is priced under."""
    return {
        "tax_rate_percent": tax_rate_percent(),
        "price_override_policy": price_override_policy(),
    }


def set_settings(values: dict, updated_by: str | None = None) -> dict:
    """Validate every key first, then write them in one commit."""
    parsed = {}
    for key, value in values.items():
        _, parse = _registry_entry(key)
        parsed[key] = parse(value)

    def _op():
        for key, value in parsed.items():
            row = db.session.query(StoreSetting).filter_by(key=key).first()
            if row is None:
                row = StoreSetting(key=key)
                db.session.add(row)
            row.value = str(value).lower() if isinstance(value, bool) else str(value)
            row.updated_by = updated_by
        db.session.commit()
        return all_settings()

    return run_with_retry(_op)
