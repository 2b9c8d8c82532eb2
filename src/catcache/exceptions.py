"""
Custom exception hierarchy for the cache service.

All exceptions inherit from CatCacheError, which provides optional context
for structured error handling and logging, plus the HTTP status code the
request router answers with when the exception escapes the engine.
"""

from __future__ import annotations

from typing import Any


class CatCacheError(Exception):
    """Base exception for all cache service errors.

    Attributes:
        message: Human-readable error message.
        context: Optional structured context for logging/debugging.
        status_code: HTTP status code used when surfaced to a client.
    """

    status_code: int = 500

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx_str})"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context!r})"


class ConfigurationError(CatCacheError):
    """Raised when configuration is invalid or missing.

    Examples:
        - Cache directory cannot be created
        - Upstream base URL is not http(s)
    """

    pass


class ClientError(CatCacheError):
    """Raised for requests that are wrong on the client side. Never retried."""

    status_code = 400


class MissingKeyError(ClientError):
    """Raised when the request path carries no cache key."""

    pass


class InvalidKeyError(ClientError):
    """Raised when a key is malformed or could escape the cache root.

    Context should include:
        - key: The rejected key
        - reason: Which rule the key broke
    """

    pass


class NotABlobError(ClientError):
    """Raised when a key resolves to something other than a regular file."""

    pass


class UnsupportedMethodError(ClientError):
    """Raised for HTTP methods other than GET, PUT and DELETE."""

    status_code = 405


class PayloadTooLargeError(ClientError):
    """Raised when a PUT body exceeds the configured size cap."""

    status_code = 413


class EntryNotFoundError(CatCacheError):
    """Raised when there is no entry for a key (nor upstream, for reads)."""

    status_code = 404


class StorageError(CatCacheError):
    """Raised when the local store fails for a reason other than not-found.

    Context should include:
        - key: The key being accessed
        - path: The filesystem path involved
        - operation: read, write, delete or init
    """

    pass
