"""Acquired.com hosted payment integration."""

__version__ = "1.1.0"
