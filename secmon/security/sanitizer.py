import enum
from datetime import datetime
from typing import Any, Mapping, Optional

from pydantic import BaseModel

from secmon.core.logger import logger

REDACTED = "[REDACTED]"
MAX_DEPTH = 8

SENSITIVE_KEYS = (
    "password",
    "token",
    "secret",
    "key",
    "auth",
    "session",
    "jwt",
    "apikey",
    "api_key",
    "authorization",
    "cookie",
    "x-api-key",
    "x-auth-token",
    "bearer",
)


class SanitizationError(Exception):
    pass


def is_sensitive_key(key: str) -> bool:
    lowered = key.lower()
    return any(sensitive in lowered for sensitive in SENSITIVE_KEYS)


def sanitize(data: Any) -> Any:
    """Return a JSON-friendly copy of ``data`` with sensitive values redacted.

    Keys are matched case-insensitively by substring, at every nesting level.
    A value that cannot be converted is dropped rather than passed through.
    """
    try:
        return _sanitize_value(data, 0)
    except SanitizationError as e:
        logger.warning("sanitize_dropped_value", error=str(e))
        return None


def sanitize_mapping(data: Optional[Mapping[Any, Any]]) -> Optional[dict[str, Any]]:
    if data is None:
        return None
    try:
        return _sanitize_mapping(data, 0)
    except SanitizationError as e:
        logger.warning("sanitize_dropped_value", error=str(e))
        return {}


def _sanitize_mapping(data: Mapping[Any, Any], depth: int) -> dict[str, Any]:
    if depth > MAX_DEPTH:
        raise SanitizationError("maximum nesting depth exceeded")

    sanitized: dict[str, Any] = {}
    try:
        items = list(data.items())
    except Exception as e:
        raise SanitizationError(f"unreadable mapping: {type(e).__name__}") from e

    for raw_key, value in items:
        try:
            key = str(raw_key)
            if is_sensitive_key(key):
                sanitized[key] = REDACTED
            else:
                sanitized[key] = _sanitize_value(value, depth + 1)
        except Exception as e:
            # drop the field, never its raw content
            logger.debug("sanitize_dropped_field", error=type(e).__name__)
            continue

    return sanitized


def _sanitize_value(value: Any, depth: int) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value

    if depth > MAX_DEPTH:
        raise SanitizationError("maximum nesting depth exceeded")

    if isinstance(value, enum.Enum):
        return value.value

    if isinstance(value, datetime):
        return value.isoformat()

    if isinstance(value, BaseModel):
        return _sanitize_mapping(value.model_dump(mode="json"), depth)

    if isinstance(value, Mapping):
        return _sanitize_mapping(value, depth)

    if isinstance(value, (list, tuple, set, frozenset)):
        result = []
        for item in value:
            try:
                result.append(_sanitize_value(item, depth + 1))
            except SanitizationError:
                continue
        return result

    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")

    try:
        return str(value)
    except Exception as e:
        raise SanitizationError(f"unprintable value: {type(e).__name__}") from e
