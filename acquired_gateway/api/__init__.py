from .client import ApiClient
from .incoming import IncomingDataHandler
from .responses import Response, ResponseKind

__all__ = ["ApiClient", "IncomingDataHandler", "Response", "ResponseKind"]
