"""
Filesystem-backed store for cached blobs.

One file per key under the cache root, named {key}{suffix}. Writes go to a
temporary file in the same directory and are renamed over the target, so a
concurrent reader sees either the old blob or the new one in full.
"""

from __future__ import annotations

import asyncio
import os
import re
import tempfile
from pathlib import Path

from catcache.exceptions import InvalidKeyError, StorageError
from catcache.keys import DEFAULT_MAX_KEY_LENGTH, validate_key
from catcache.logging import get_logger
from catcache.types import Blob, CacheKey, DeleteStatus, ReadResult, WriteStatus
from catcache.utils.locks import KeyedLock

logger = get_logger(__name__)

DEFAULT_SUFFIX = ".jpg"


class LocalStore:
    """Key to blob mapping stored as plain files under a root directory.

    Blocking filesystem calls run in worker threads; writes and deletes on
    the same key are serialized with a per-key lock.
    """

    def __init__(
        self,
        root: str | Path,
        suffix: str = DEFAULT_SUFFIX,
        max_key_length: int = DEFAULT_MAX_KEY_LENGTH,
        key_pattern: re.Pattern[str] | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            root: Directory holding one file per key.
            suffix: Appended to each key to form its file name.
            max_key_length: Longest key accepted by path_for().
            key_pattern: Optional regex keys must fully match.
        """
        self.root = Path(root)
        self.suffix = suffix
        self.max_key_length = max_key_length
        self.key_pattern = key_pattern
        self._locks = KeyedLock()

    async def init(self) -> None:
        """Create the root directory (and parents) if absent.

        Raises:
            StorageError: If the directory cannot be created.
        """
        try:
            await asyncio.to_thread(self.root.mkdir, parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(
                f"Cannot create cache directory: {e}",
                context={"path": str(self.root), "operation": "init"},
            ) from e
        logger.info("Local store initialized", cache_dir=str(self.root))

    def path_for(self, key: CacheKey) -> Path:
        """Map a key to its file path.

        Raises:
            MissingKeyError: If key is empty.
            InvalidKeyError: If key is malformed or the path would leave root.
        """
        validate_key(key, max_length=self.max_key_length, pattern=self.key_pattern)
        path = self.root / f"{key}{self.suffix}"

        root = self.root.resolve()
        if path.resolve(strict=False).parent != root:
            raise InvalidKeyError(
                "Bad Request: Key resolves outside the cache directory",
                context={"key": key, "reason": "traversal"},
            )
        return path

    async def exists(self, key: CacheKey) -> bool:
        """True iff an entry for key is present as a regular file."""
        path = self.path_for(key)
        return await asyncio.to_thread(path.is_file)

    async def read(self, key: CacheKey) -> ReadResult:
        """Read the blob stored for key.

        Returns:
            ReadResult with FOUND and the bytes, NOT_FOUND if there is no
            entry, or INVALID if the path exists but is not a regular file.

        Raises:
            StorageError: On any other I/O failure.
        """
        path = self.path_for(key)
        try:
            return await asyncio.to_thread(self._read_sync, path)
        except OSError as e:
            logger.error("Failed to read entry", path=str(path), error=str(e))
            raise StorageError(
                f"Failed to read entry: {e}",
                context={"key": key, "path": str(path), "operation": "read"},
            ) from e

    @staticmethod
    def _read_sync(path: Path) -> ReadResult:
        try:
            if path.is_dir():
                return ReadResult.invalid()
            return ReadResult.found(path.read_bytes())
        except FileNotFoundError:
            return ReadResult.not_found()
        except IsADirectoryError:
            # Replaced by a directory between the check and the read
            return ReadResult.invalid()

    async def write(self, key: CacheKey, blob: Blob) -> WriteStatus:
        """Store blob for key, replacing any previous entry.

        Returns:
            WriteStatus.OK, or WriteStatus.FAILURE if the filesystem refused.
            A failed write never leaves a partial entry behind.
        """
        path = self.path_for(key)
        async with self._locks.hold(key):
            try:
                await asyncio.to_thread(self._write_sync, path, blob)
            except OSError as e:
                logger.error("Failed to write entry", path=str(path), error=str(e))
                return WriteStatus.FAILURE

        logger.debug("Stored entry", path=str(path), size=len(blob))
        return WriteStatus.OK

    @staticmethod
    def _write_sync(path: Path, blob: Blob) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=path.parent, prefix=f".{path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(blob)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise

    async def delete(self, key: CacheKey) -> DeleteStatus:
        """Remove the entry for key.

        Returns:
            OK if removed, NOT_FOUND if absent, FAILURE otherwise
            (permission error, path is a directory, ...).
        """
        path = self.path_for(key)
        async with self._locks.hold(key):
            try:
                await asyncio.to_thread(path.unlink)
            except FileNotFoundError:
                return DeleteStatus.NOT_FOUND
            except OSError as e:
                logger.error("Failed to delete entry", path=str(path), error=str(e))
                return DeleteStatus.FAILURE

        logger.debug("Deleted entry", path=str(path))
        return DeleteStatus.OK
