"""
Error types raised by the Prometheus client.

Transport failures are not wrapped: whatever httpx raises reaches the caller
as-is. ``TransportError`` is re-exported so callers can catch it from here.
"""

from httpx import TransportError


class PromBridgeError(Exception):
    """Base class for errors raised by prom_bridge itself."""


class InvalidRequest(PromBridgeError, ValueError):
    """The target URL could not be composed from the base URL and path."""

    def __init__(self, message: str, url: str = ""):
        super().__init__(message)
        self.url = url


class DecodeError(PromBridgeError):
    """The response body looked like gzip but could not be decompressed."""


__all__ = ["PromBridgeError", "InvalidRequest", "DecodeError", "TransportError"]
