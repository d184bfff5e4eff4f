from .server import CallbackServer

__all__ = ["CallbackServer"]
