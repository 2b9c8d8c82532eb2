"""
Pytest configuration and fixtures for cache service tests.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import AsyncIterator, Generator
from unittest.mock import patch

import httpx
import pytest

from catcache.api.server import create_app
from catcache.config import Settings, clear_settings_cache
from catcache.engine import CacheEngine
from catcache.store.local_store import LocalStore
from catcache.upstream.fetcher import UpstreamFetcher
from tests.fakes import JPEG_404, UPSTREAM_BASE, FakeOrigin


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test outputs."""
    return tmp_path


@pytest.fixture
def cache_dir(temp_dir: Path) -> Path:
    """Cache root inside the temporary directory (not created yet)."""
    return temp_dir / "cache"


@pytest.fixture
def mock_env_vars(cache_dir: Path) -> Generator[dict[str, str], None, None]:
    """Provide mock environment variables for testing."""
    env_vars = {
        "HOST": "127.0.0.1",
        "PORT": "9090",
        "CACHE_DIR": str(cache_dir),
        "UPSTREAM_BASE_URL": UPSTREAM_BASE,
        "UPSTREAM_TIMEOUT": "2.5",
        "LOG_LEVEL": "DEBUG",
    }

    with patch.dict(os.environ, env_vars, clear=False):
        clear_settings_cache()
        yield env_vars


@pytest.fixture
def settings(cache_dir: Path) -> Settings:
    """Settings pointing at the temporary cache root, ignoring any .env."""
    return Settings(
        _env_file=None,
        CACHE_DIR=cache_dir,
        UPSTREAM_BASE_URL=UPSTREAM_BASE,
        LOG_LEVEL="DEBUG",
    )


@pytest.fixture
def origin() -> FakeOrigin:
    """Fake upstream origin knowing a single key, 404."""
    fake = FakeOrigin()
    fake.blobs["404"] = JPEG_404
    return fake


@pytest.fixture
async def store(cache_dir: Path) -> LocalStore:
    """Create an initialized local store for testing."""
    local_store = LocalStore(cache_dir)
    await local_store.init()
    return local_store


@pytest.fixture
async def fetcher(origin: FakeOrigin) -> AsyncIterator[UpstreamFetcher]:
    """Upstream fetcher wired to the fake origin."""
    upstream = UpstreamFetcher(base_url=UPSTREAM_BASE, client=origin.client())
    yield upstream
    await upstream.close()


@pytest.fixture
def engine(store: LocalStore, fetcher: UpstreamFetcher) -> CacheEngine:
    """Engine over the temporary store and fake origin."""
    return CacheEngine(store, fetcher)


@pytest.fixture
async def client(
    settings: Settings, engine: CacheEngine
) -> AsyncIterator[httpx.AsyncClient]:
    """HTTP client talking to the app in-process."""
    app = create_app(settings, engine)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://cache.test") as c:
        yield c


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None, None, None]:
    """Automatically reset settings cache before and after each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()
