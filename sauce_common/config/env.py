"""Parsing helpers for environment overrides of settings."""

from __future__ import annotations

_TRUE_VALUES = {"1", "true", "yes", "on"}


def parse_bool_env(value: str | None) -> bool | None:
    """Interpret ``1/true/yes/on`` as True, anything else set as False.

    An unset variable yields None so callers can keep their default.
    """
    if value is None:
        return None
    return value.strip().lower() in _TRUE_VALUES


def parse_int_env(value: str | None) -> int | None:
    """Integer value of the variable, or None when unset or not a number."""
    if value is None or not value.strip():
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None


def parse_str_env(value: str | None) -> str | None:
    """Return a stripped string, or None when unset or blank."""
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None
