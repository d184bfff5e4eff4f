import hashlib
import hmac
import re

# ASCII whitespace only, so the digest matches what the processor signs.
_WHITESPACE = re.compile(rb"[ \t\n\r\f\v]+")


def _to_bytes(value: str | bytes) -> bytes:
    return value if isinstance(value, bytes) else value.encode("utf-8")


def generate_redirect_hash(
    status: str, transaction_id: str, order_id: str, timestamp: str | int, secret: str
) -> str:
    """Generate the double SHA-256 hash sent with redirect callbacks."""
    first = hashlib.sha256(
        f"{status}{transaction_id}{order_id}{timestamp}".encode("utf-8")
    ).hexdigest()
    return hashlib.sha256(f"{first}{secret}".encode("utf-8")).hexdigest()


def verify_redirect_hash(data: dict, secret: str, supplied_hash: str) -> bool:
    """Verify a redirect callback hash. An empty secret never verifies."""
    if not secret:
        return False
    expected = generate_redirect_hash(
        data["status"], data["transaction_id"], data["order_id"], data["timestamp"], secret
    )
    return hmac.compare_digest(_to_bytes(expected), _to_bytes(str(supplied_hash)))


def generate_webhook_signature(body: str | bytes, secret: str) -> str:
    """Generate the HMAC-SHA256 of a webhook body with all whitespace removed."""
    message = _WHITESPACE.sub(b"", _to_bytes(body))
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_webhook_signature(body: str | bytes, secret: str, signature: str) -> bool:
    """Verify a webhook ``Hash`` header. An empty secret never verifies."""
    if not secret:
        return False
    expected = generate_webhook_signature(body, secret)
    return hmac.compare_digest(_to_bytes(expected), _to_bytes(signature or ""))
