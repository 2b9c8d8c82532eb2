"""
Cache key extraction and validation.

A key is the first segment of the request path. Keys become file names
under the cache root, so anything that could name a different location
(separators, dot segments, control characters) is rejected here, before
the local store is touched.
"""

from __future__ import annotations

import re
from urllib.parse import unquote

from catcache.exceptions import InvalidKeyError, MissingKeyError
from catcache.types import CacheKey

DEFAULT_MAX_KEY_LENGTH = 64

# Letters, digits, dot, underscore and dash. Covers status codes and
# the usual asset slugs without ever spelling a path.
_KEY_CHARS = re.compile(r"[A-Za-z0-9._-]+")


def extract_key(path: str) -> str:
    """Return the first segment of a request path, percent-decoded.

    "/404" -> "404", "/404/extra" -> "404", "/" -> "", "/a%2Fb" -> "a/b".
    Query strings and fragments are ignored. The path is never parsed as a
    URL, so "//host/404" has an empty first segment.
    """
    path = path.split("?", 1)[0].split("#", 1)[0]
    segments = path.split("/")
    segment = segments[1] if len(segments) > 1 else ""
    return unquote(segment)


def validate_key(
    key: str | None,
    max_length: int = DEFAULT_MAX_KEY_LENGTH,
    pattern: re.Pattern[str] | None = None,
) -> CacheKey:
    """Validate a raw key and return it unchanged.

    Args:
        key: Raw key string.
        max_length: Longest accepted key.
        pattern: Optional regex the key must fully match.

    Returns:
        The key, now safe to use as a file name.

    Raises:
        MissingKeyError: If the key is None or empty.
        InvalidKeyError: If the key is too long, contains separators or
            dot segments, uses characters outside [A-Za-z0-9._-], or does
            not match pattern.
    """
    if not key:
        raise MissingKeyError("Bad Request: Missing HTTP code")

    if len(key) > max_length:
        raise InvalidKeyError(
            "Bad Request: Key too long",
            context={"key": key[:max_length] + "...", "max_length": max_length},
        )

    if "/" in key or "\\" in key or "\x00" in key:
        raise InvalidKeyError(
            "Bad Request: Key must not contain path separators",
            context={"key": key, "reason": "separator"},
        )

    if key in (".", "..") or key.startswith(".."):
        raise InvalidKeyError(
            "Bad Request: Key must not be a relative path",
            context={"key": key, "reason": "dot_segment"},
        )

    if not _KEY_CHARS.fullmatch(key):
        raise InvalidKeyError(
            "Bad Request: Key contains unsupported characters",
            context={"key": key, "reason": "charset"},
        )

    if pattern is not None and not pattern.fullmatch(key):
        raise InvalidKeyError(
            "Bad Request: Key does not match the accepted format",
            context={"key": key, "reason": "pattern", "pattern": pattern.pattern},
        )

    return key


def resolve_key(
    path: str,
    max_length: int = DEFAULT_MAX_KEY_LENGTH,
    pattern: re.Pattern[str] | None = None,
) -> CacheKey:
    """Extract and validate the key of a request path in one step."""
    return validate_key(extract_key(path), max_length=max_length, pattern=pattern)
