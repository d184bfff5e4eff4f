import re
from typing import Any

from acquired_gateway.exceptions import VerificationError

_TAGS = re.compile(r"<[^>]*>?")
_OCTETS = re.compile(r"%[a-fA-F0-9]{2}")
_CONTROL = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_WHITESPACE = re.compile(r"[\r\n\t ]+")


def sanitize_text(value: str) -> str:
    """Strip tags, percent-encoded octets, control characters and extra whitespace."""
    value = _TAGS.sub("", value)
    value = _OCTETS.sub("", value)
    value = _CONTROL.sub("", value)
    return _WHITESPACE.sub(" ", value).strip()


def sanitize_data(data: Any) -> Any:
    """Sanitize every string leaf of a decoded payload. Non-strings pass through."""
    if isinstance(data, dict):
        return {key: sanitize_data(value) for key, value in data.items()}
    if isinstance(data, list):
        return [sanitize_data(value) for value in data]
    if isinstance(data, str):
        return sanitize_text(data)
    return data


def is_empty(value: Any) -> bool:
    """Emptiness as the processor contract defines it: None, "", "0", 0, False or empty containers."""
    if value is None or value is False:
        return True
    if isinstance(value, str):
        return value in ("", "0")
    if isinstance(value, (int, float)):
        return value == 0
    if isinstance(value, (dict, list)):
        return not value
    return False


def missing_fields(data: Any, required_fields: list[str]) -> list[str]:
    if not isinstance(data, dict):
        return list(required_fields)
    return [name for name in required_fields if is_empty(data.get(name))]


def validate_required_fields(data: Any, required_fields: list[str], context: str = "webhook") -> None:
    missing = missing_fields(data, required_fields)
    if missing:
        raise VerificationError(
            f'Missing required fields in {context}: "{", ".join(missing)}".'
        )
