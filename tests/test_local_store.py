"""
Tests for the filesystem-backed local store.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from unittest.mock import patch

import pytest

from catcache.exceptions import InvalidKeyError, MissingKeyError, StorageError
from catcache.store.local_store import LocalStore
from catcache.types import DeleteStatus, ReadStatus, WriteStatus


class TestLocalStoreBasics:
    """Test basic store operations."""

    @pytest.mark.asyncio
    async def test_init_creates_root(self, temp_dir: Path) -> None:
        """Test that init creates the root with parents."""
        root = temp_dir / "a" / "b" / "cache"
        store = LocalStore(root)

        await store.init()

        assert root.is_dir()

    @pytest.mark.asyncio
    async def test_init_failure_raises_storage_error(self, temp_dir: Path) -> None:
        """Test that an uncreatable root is reported as StorageError."""
        blocker = temp_dir / "file"
        blocker.write_bytes(b"")
        store = LocalStore(blocker / "cache")

        with pytest.raises(StorageError) as exc_info:
            await store.init()

        assert exc_info.value.context["operation"] == "init"

    @pytest.mark.asyncio
    async def test_write_and_read(self, store: LocalStore) -> None:
        """Test storing and retrieving a blob."""
        assert await store.write("200", b"ok cat") == WriteStatus.OK

        result = await store.read("200")

        assert result.status == ReadStatus.FOUND
        assert result.blob == b"ok cat"

    @pytest.mark.asyncio
    async def test_one_file_per_key(self, store: LocalStore, cache_dir: Path) -> None:
        """Test that entries are named key + suffix with exact contents."""
        await store.write("404", b"\x00\x01binary")

        assert (cache_dir / "404.jpg").read_bytes() == b"\x00\x01binary"
        assert sorted(p.name for p in cache_dir.iterdir()) == ["404.jpg"]

    @pytest.mark.asyncio
    async def test_custom_suffix(self, cache_dir: Path) -> None:
        """Test that the suffix is configurable."""
        store = LocalStore(cache_dir, suffix=".png")
        await store.write("500", b"png")

        assert (cache_dir / "500.png").read_bytes() == b"png"

    @pytest.mark.asyncio
    async def test_write_overwrites(self, store: LocalStore) -> None:
        """Test last-writer-wins on the same key."""
        await store.write("301", b"old")
        await store.write("301", b"new")

        result = await store.read("301")
        assert result.blob == b"new"

    @pytest.mark.asyncio
    async def test_empty_blob(self, store: LocalStore) -> None:
        """Test that an empty blob is a valid entry."""
        await store.write("204", b"")

        result = await store.read("204")
        assert result.status == ReadStatus.FOUND
        assert result.blob == b""

    @pytest.mark.asyncio
    async def test_write_recreates_missing_root(
        self, store: LocalStore, cache_dir: Path
    ) -> None:
        """Test that write creates the root if it was removed."""
        cache_dir.rmdir()

        assert await store.write("200", b"x") == WriteStatus.OK
        assert (cache_dir / "200.jpg").exists()


class TestLocalStoreMissingAndInvalid:
    """Test not-found and non-blob handling."""

    @pytest.mark.asyncio
    async def test_read_missing(self, store: LocalStore) -> None:
        """Test that a missing key reads as NOT_FOUND."""
        result = await store.read("999")

        assert result.status == ReadStatus.NOT_FOUND
        assert result.blob is None

    @pytest.mark.asyncio
    async def test_read_directory_is_invalid(
        self, store: LocalStore, cache_dir: Path
    ) -> None:
        """Test that a directory at the entry path reads as INVALID."""
        (cache_dir / "dir.jpg").mkdir()

        result = await store.read("dir")

        assert result.status == ReadStatus.INVALID

    @pytest.mark.asyncio
    async def test_exists(self, store: LocalStore, cache_dir: Path) -> None:
        """Test that only regular files count as existing entries."""
        await store.write("200", b"x")
        (cache_dir / "dir.jpg").mkdir()

        assert await store.exists("200") is True
        assert await store.exists("404") is False
        assert await store.exists("dir") is False

    @pytest.mark.asyncio
    async def test_read_io_error_raises(self, store: LocalStore) -> None:
        """Test that other I/O errors surface as StorageError."""
        await store.write("200", b"x")

        with patch.object(store, "_read_sync", side_effect=PermissionError("denied")):
            with pytest.raises(StorageError) as exc_info:
                await store.read("200")

        assert exc_info.value.context["operation"] == "read"

    @pytest.mark.asyncio
    async def test_write_failure_returns_failure(
        self, store: LocalStore, cache_dir: Path
    ) -> None:
        """Test that a write onto a directory fails without leftovers."""
        (cache_dir / "dir.jpg").mkdir()

        assert await store.write("dir", b"data") == WriteStatus.FAILURE
        assert sorted(p.name for p in cache_dir.iterdir()) == ["dir.jpg"]
        assert (cache_dir / "dir.jpg").is_dir()


class TestLocalStoreDelete:
    """Test delete semantics."""

    @pytest.mark.asyncio
    async def test_delete_existing(self, store: LocalStore, cache_dir: Path) -> None:
        """Test deleting an entry."""
        await store.write("410", b"gone")

        assert await store.delete("410") == DeleteStatus.OK
        assert not (cache_dir / "410.jpg").exists()
        assert (await store.read("410")).status == ReadStatus.NOT_FOUND

    @pytest.mark.asyncio
    async def test_delete_missing(self, store: LocalStore) -> None:
        """Test that deleting an absent key reports NOT_FOUND."""
        assert await store.delete("410") == DeleteStatus.NOT_FOUND

    @pytest.mark.asyncio
    async def test_delete_directory_fails(
        self, store: LocalStore, cache_dir: Path
    ) -> None:
        """Test that a directory at the entry path is a FAILURE, not NOT_FOUND."""
        (cache_dir / "dir.jpg").mkdir()

        assert await store.delete("dir") == DeleteStatus.FAILURE
        assert (cache_dir / "dir.jpg").is_dir()


class TestLocalStoreKeySafety:
    """Test that keys cannot escape the root."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("key", ["../outside", "..", "a/b", "..\\x"])
    async def test_traversal_rejected(
        self, store: LocalStore, temp_dir: Path, key: str
    ) -> None:
        """Test that traversal keys are rejected before any I/O."""
        with pytest.raises(InvalidKeyError):
            await store.write(key, b"evil")

        assert not (temp_dir / "outside.jpg").exists()

    @pytest.mark.asyncio
    async def test_empty_key_rejected(self, store: LocalStore) -> None:
        """Test that empty keys are rejected."""
        with pytest.raises(MissingKeyError):
            await store.read("")

    @pytest.mark.asyncio
    async def test_path_for_stays_in_root(self, store: LocalStore, cache_dir: Path) -> None:
        """Test the key to path mapping."""
        assert store.path_for("404") == cache_dir / "404.jpg"


class TestLocalStoreConcurrency:
    """Test atomicity under concurrent access."""

    @pytest.mark.asyncio
    async def test_concurrent_writes_never_mix(self, store: LocalStore) -> None:
        """Test that concurrent writers leave exactly one writer's blob."""
        b1 = b"1" * 256 * 1024
        b2 = b"2" * 256 * 1024

        await asyncio.gather(*(store.write("race", b) for b in [b1, b2] * 5))

        result = await store.read("race")
        assert result.blob in (b1, b2)

    @pytest.mark.asyncio
    async def test_readers_never_see_partial_blob(self, store: LocalStore) -> None:
        """Test that reads during rewrites return a complete blob."""
        b1 = b"a" * 512 * 1024
        b2 = b"b" * 512 * 1024
        await store.write("torn", b1)

        async def writer() -> None:
            for blob in [b2, b1] * 5:
                await store.write("torn", blob)

        async def reader() -> list[bytes | None]:
            seen = []
            for _ in range(20):
                seen.append((await store.read("torn")).blob)
            return seen

        _, seen = await asyncio.gather(writer(), reader())

        assert all(blob in (b1, b2) for blob in seen)

    @pytest.mark.asyncio
    async def test_no_temp_files_left(self, store: LocalStore, cache_dir: Path) -> None:
        """Test that temporary files are renamed away."""
        await asyncio.gather(*(store.write(f"k{i}", b"x") for i in range(10)))

        names = sorted(p.name for p in cache_dir.iterdir())
        assert names == sorted(f"k{i}.jpg" for i in range(10))
