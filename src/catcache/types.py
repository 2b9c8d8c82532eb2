"""
Core types for the cache service.

This module defines the result types passed between components:
- Enums for store, fetch and resolution outcomes
- Frozen dataclasses for immutable results (ReadResult, FetchResult, ResolveResult)
- A helper for request ID generation
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from uuid6 import uuid7

# A cached asset. Immutable bytes, no metadata.
Blob = bytes

# Validated key naming one Entry.
CacheKey = str


def generate_id(prefix: str = "") -> str:
    """Generate a time-ordered unique ID using UUID7.

    Args:
        prefix: Optional prefix for the ID (e.g., "req").

    Returns:
        A unique ID string, optionally prefixed.
    """
    uid = str(uuid7())
    return f"{prefix}_{uid}" if prefix else uid


class ReadStatus(str, Enum):
    """Outcome of a local store read."""

    FOUND = "found"
    NOT_FOUND = "not_found"
    INVALID = "invalid"  # path exists but is not a regular file


class WriteStatus(str, Enum):
    """Outcome of a local store write."""

    OK = "ok"
    FAILURE = "failure"


class DeleteStatus(str, Enum):
    """Outcome of a local store delete."""

    OK = "ok"
    NOT_FOUND = "not_found"
    FAILURE = "failure"


class FetchStatus(str, Enum):
    """Outcome of an upstream fetch."""

    FETCHED = "fetched"
    NOT_FOUND = "not_found"  # origin answered with a non-success status
    FAILURE = "failure"  # transport error, origin unreachable


class Resolution(str, Enum):
    """States of the read-path state machine."""

    START = "start"
    LOCAL_LOOKUP = "local_lookup"
    HIT = "hit"
    MISS = "miss"
    INVALID = "invalid"
    UPSTREAM_FETCH = "upstream_fetch"
    FETCHED = "fetched"
    UPSTREAM_MISS = "upstream_miss"
    UPSTREAM_FAIL = "upstream_fail"
    POPULATE = "populate"
    RESPOND = "respond"


@dataclass(frozen=True)
class ReadResult:
    """Result of reading one key from the local store."""

    status: ReadStatus
    blob: Blob | None = None

    @classmethod
    def found(cls, blob: Blob) -> ReadResult:
        return cls(status=ReadStatus.FOUND, blob=blob)

    @classmethod
    def not_found(cls) -> ReadResult:
        return cls(status=ReadStatus.NOT_FOUND)

    @classmethod
    def invalid(cls) -> ReadResult:
        return cls(status=ReadStatus.INVALID)


@dataclass(frozen=True)
class FetchResult:
    """Result of fetching a key from the upstream origin."""

    key: CacheKey
    status: FetchStatus
    blob: Blob | None = None
    status_code: int | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.status == FetchStatus.FETCHED


@dataclass(frozen=True)
class ResolveResult:
    """Final answer of the engine for one GET.

    Attributes:
        key: The resolved key.
        status_code: HTTP status to respond with (200, 400 or 404).
        blob: Body for a 200, None otherwise.
        state: Terminal state the request went through before RESPOND
            (HIT, INVALID, FETCHED, UPSTREAM_MISS or UPSTREAM_FAIL).
        populated: Whether a fetched blob was written to the store.
    """

    key: CacheKey
    status_code: int
    blob: Blob | None = None
    state: Resolution = Resolution.RESPOND
    populated: bool = False

    @property
    def ok(self) -> bool:
        return self.status_code == 200
