from .crypto import (
    generate_redirect_hash,
    generate_webhook_signature,
    verify_redirect_hash,
    verify_webhook_signature,
)
from .sanitize import sanitize_data, validate_required_fields

__all__ = [
    "generate_redirect_hash", "generate_webhook_signature",
    "verify_redirect_hash", "verify_webhook_signature",
    "sanitize_data", "validate_required_fields",
]
