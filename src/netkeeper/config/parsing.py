"""Parsing helpers for configuration values."""

from typing import Any, List, Optional


def _try_parse_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    normalized = str(value).strip().lower()
    if normalized in {"true", "1", "yes", "on"}:
        return True
    if normalized in {"false", "0", "no", "off"}:
        return False
    return None


def _parse_list(value: Any) -> List[str]:
    """Parse a comma-separated string (env) or a list (TOML) into strings."""
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if str(v).strip()]
    return [part.strip() for part in str(value).split(",") if part.strip()]


def _parse_optional_int(value: Any) -> Optional[int]:
    """Parse an int where 0, "none" and "" mean unset."""
    if value is None:
        return None
    if isinstance(value, str) and value.strip().lower() in {"", "none", "null"}:
        return None
    parsed = int(value)
    return parsed if parsed > 0 else None


def _parse_optional_float(value: Any) -> Optional[float]:
    """Parse a float where 0, "none" and "" mean unset."""
    if value is None:
        return None
    if isinstance(value, str) and value.strip().lower() in {"", "none", "null"}:
        return None
    parsed = float(value)
    return parsed if parsed > 0 else None
