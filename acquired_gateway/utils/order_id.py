"""Composite order IDs sent to the processor with payment links.

A payment link carries ``"<id>-<key>"`` where ``key`` is the store order key
or, for the add-payment-method flow, ``add_payment_method_`` followed by a
random token. Keys never contain a hyphen, so a valid ID splits into exactly
two parts.
"""

import secrets
import string

PAYMENT_METHOD_KEY_PREFIX = "add_payment_method"

_KEY_ALPHABET = string.ascii_letters + string.digits


def format_order_id(object_id: int, key: str) -> str:
    return f"{object_id}-{key}"


def generate_payment_method_key(length: int = 13) -> str:
    token = "".join(secrets.choice(_KEY_ALPHABET) for _ in range(length))
    return f"{PAYMENT_METHOD_KEY_PREFIX}_{token}"


def _split(incoming_order_id: str) -> list[str] | None:
    parts = incoming_order_id.split("-")
    return parts if len(parts) == 2 else None


def get_id(incoming_order_id: str) -> int | None:
    parts = _split(incoming_order_id)
    if parts is None:
        return None
    try:
        return int(parts[0])
    except ValueError:
        return None


def get_key(incoming_order_id: str) -> str | None:
    parts = _split(incoming_order_id)
    return parts[1] if parts is not None else None


def is_for_payment_method(incoming_order_id: str) -> bool:
    key = get_key(incoming_order_id)
    return bool(key) and key.startswith(PAYMENT_METHOD_KEY_PREFIX)


def is_for_order(incoming_order_id: str) -> bool:
    return not is_for_payment_method(incoming_order_id)
