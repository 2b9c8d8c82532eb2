"""
Cache resolution engine.

Resolves a read against the local store, falls back to the upstream origin
on a miss and populates the store with what it fetched. Store and evict go
straight to the local store.

Read path:

    START -> LOCAL_LOOKUP -> HIT                            -> 200
                          -> INVALID                        -> 400
                          -> MISS -> UPSTREAM_FETCH
                                       -> FETCHED -> POPULATE -> 200
                                       -> UPSTREAM_MISS       -> 404
                                       -> UPSTREAM_FAIL       -> 404

Populating is best-effort: a failed write is logged and the fetched blob is
still returned. The next read simply misses again.
"""

from __future__ import annotations

from catcache.logging import get_logger
from catcache.store.local_store import LocalStore
from catcache.types import (
    Blob,
    CacheKey,
    DeleteStatus,
    FetchStatus,
    ReadStatus,
    Resolution,
    ResolveResult,
    WriteStatus,
)
from catcache.upstream.fetcher import UpstreamFetcher
from catcache.utils.locks import SingleFlight

logger = get_logger(__name__)


class CacheEngine:
    """Orchestrates local store and upstream fetcher for each request."""

    def __init__(
        self,
        store: LocalStore,
        fetcher: UpstreamFetcher,
        single_flight: bool = True,
    ) -> None:
        """Initialize the engine.

        Args:
            store: Local store holding cached entries.
            fetcher: Origin consulted on a local miss.
            single_flight: Share one fetch-and-populate between concurrent
                misses on the same key.
        """
        self.store = store
        self.fetcher = fetcher
        self._flights: SingleFlight[ResolveResult] | None = (
            SingleFlight() if single_flight else None
        )

    async def close(self) -> None:
        await self.fetcher.close()

    async def resolve(self, key: CacheKey) -> ResolveResult:
        """Resolve a read for key.

        Returns:
            ResolveResult with status 200 and the blob, 400 if the key names
            something that is not a blob, or 404 if neither the store nor
            the origin has it.

        Raises:
            StorageError: If the local read fails for a reason other than
                not-found.
        """
        logger.debug("Resolving key", state=Resolution.START.value)
        result = await self._resolve(key)
        logger.debug(
            "Responding",
            state=Resolution.RESPOND.value,
            outcome=result.state.value,
            status_code=result.status_code,
        )
        return result

    async def _resolve(self, key: CacheKey) -> ResolveResult:
        logger.debug("Looking up local store", state=Resolution.LOCAL_LOOKUP.value)
        local = await self.store.read(key)

        if local.status == ReadStatus.FOUND:
            logger.info("Cache hit", size=len(local.blob or b""))
            return ResolveResult(
                key=key, status_code=200, blob=local.blob, state=Resolution.HIT
            )

        if local.status == ReadStatus.INVALID:
            logger.error("Tried to read a directory instead of a file")
            return ResolveResult(key=key, status_code=400, state=Resolution.INVALID)

        logger.debug("Cache miss", state=Resolution.MISS.value)
        if self._flights is None:
            return await self._fetch_and_populate(key)
        return await self._flights.do(key, lambda: self._fetch_and_populate(key))

    async def _fetch_and_populate(self, key: CacheKey) -> ResolveResult:
        logger.debug("Fetching from origin", state=Resolution.UPSTREAM_FETCH.value)
        fetched = await self.fetcher.fetch(key)

        if fetched.status == FetchStatus.NOT_FOUND:
            return ResolveResult(
                key=key, status_code=404, state=Resolution.UPSTREAM_MISS
            )
        if fetched.status == FetchStatus.FAILURE:
            return ResolveResult(
                key=key, status_code=404, state=Resolution.UPSTREAM_FAIL
            )

        blob = fetched.blob or b""
        logger.debug("Populating store", state=Resolution.POPULATE.value)
        written = await self.store.write(key, blob)
        populated = written == WriteStatus.OK
        if not populated:
            logger.warning("Populate failed, serving fetched blob uncached")

        return ResolveResult(
            key=key,
            status_code=200,
            blob=blob,
            state=Resolution.FETCHED,
            populated=populated,
        )

    async def store_blob(self, key: CacheKey, blob: Blob) -> WriteStatus:
        """Store blob under key, overwriting any existing entry."""
        status = await self.store.write(key, blob)
        if status == WriteStatus.OK:
            logger.info("File saved", size=len(blob))
        return status

    async def evict(self, key: CacheKey) -> DeleteStatus:
        """Delete the entry for key."""
        status = await self.store.delete(key)
        if status == DeleteStatus.OK:
            logger.info("Entry evicted")
        return status
