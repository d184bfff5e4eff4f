class GatewayError(Exception):
    """Base class for errors raised by the gateway."""


class VerificationError(GatewayError):
    """Incoming redirect or webhook data failed authentication or validation."""


class AuthError(GatewayError):
    """No access token could be obtained from the processor."""


class DomainError(GatewayError):
    """Order, customer or payment method state does not allow the operation."""


class InvalidBodyError(GatewayError):
    """A processor response body is missing or fails the schema check."""
