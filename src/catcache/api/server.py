"""
HTTP interface of the cache.

    GET    /{key}  resolve (local store, then upstream)   200 image/jpeg
    PUT    /{key}  store the raw request body             201
    DELETE /{key}  evict                                  200

Missing key -> 400, any other method -> 405. Settings and engine are held
on app.state so tests can build isolated apps.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import Depends, FastAPI, Request, Response
from fastapi.responses import PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from catcache import __version__
from catcache.config import Settings, get_settings
from catcache.engine import CacheEngine
from catcache.exceptions import (
    CatCacheError,
    EntryNotFoundError,
    NotABlobError,
    PayloadTooLargeError,
    StorageError,
    UnsupportedMethodError,
)
from catcache.keys import extract_key, validate_key
from catcache.logging import get_logger, log_context
from catcache.store.local_store import LocalStore
from catcache.types import DeleteStatus, Resolution, WriteStatus, generate_id
from catcache.upstream.fetcher import UpstreamFetcher

logger = get_logger(__name__)

SUPPORTED_METHODS = ("GET", "PUT", "DELETE")

# Every method the route listens on; the unsupported ones answer 405.
ROUTED_METHODS = ["GET", "PUT", "DELETE", "POST", "PATCH", "HEAD", "OPTIONS"]

BLOB_MEDIA_TYPE = "image/jpeg"


def build_engine(settings: Settings) -> CacheEngine:
    """Wire a CacheEngine from settings."""
    store = LocalStore(
        settings.CACHE_DIR,
        suffix=settings.FILE_SUFFIX,
        max_key_length=settings.MAX_KEY_LENGTH,
        key_pattern=settings.key_regex,
    )
    fetcher = UpstreamFetcher(
        base_url=settings.UPSTREAM_BASE_URL,
        timeout=settings.UPSTREAM_TIMEOUT,
    )
    return CacheEngine(store, fetcher, single_flight=settings.SINGLE_FLIGHT)


def get_engine(request: Request) -> CacheEngine:
    return request.app.state.engine


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def _request_path(request: Request) -> str:
    """Path as sent by the client, still percent-encoded when available."""
    raw_path = request.scope.get("raw_path")
    if raw_path:
        return raw_path.decode("latin-1")
    return request.url.path


async def _read_body(request: Request, limit: int | None) -> bytes:
    """Read the request body to completion, enforcing limit if set."""
    if limit is None:
        return await request.body()

    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > limit:
        raise PayloadTooLargeError(
            "Payload Too Large", context={"content_length": int(declared), "limit": limit}
        )

    chunks: list[bytes] = []
    size = 0
    async for chunk in request.stream():
        size += len(chunk)
        if size > limit:
            raise PayloadTooLargeError(
                "Payload Too Large", context={"received": size, "limit": limit}
            )
        chunks.append(chunk)
    return b"".join(chunks)


async def handle_cat(
    request: Request,
    engine: CacheEngine = Depends(get_engine),
    settings: Settings = Depends(get_app_settings),
) -> Response:
    """Dispatch one request to resolve, store or evict."""
    method = request.method.upper()

    with log_context(request_id=generate_id("req"), method=method):
        if method not in SUPPORTED_METHODS:
            logger.info("Unsupported method", path=request.url.path)
            raise UnsupportedMethodError("Method Not Allowed", context={"method": method})

        key = validate_key(
            extract_key(_request_path(request)),
            max_length=settings.MAX_KEY_LENGTH,
            pattern=settings.key_regex,
        )

        with log_context(key=key):
            logger.info(f"{method} request for file: {engine.store.path_for(key)}")

            if method == "GET":
                result = await engine.resolve(key)
                if result.state == Resolution.INVALID:
                    raise NotABlobError(
                        "Bad Request: Expected a file, but found a directory",
                        context={"key": key},
                    )
                if not result.ok:
                    raise EntryNotFoundError(
                        "Not Found", context={"key": key, "state": result.state.value}
                    )
                return Response(content=result.blob, media_type=BLOB_MEDIA_TYPE)

            if method == "PUT":
                body = await _read_body(request, settings.MAX_BODY_BYTES)
                if await engine.store_blob(key, body) != WriteStatus.OK:
                    raise StorageError("Server error", context={"key": key})
                return PlainTextResponse("File created", status_code=201)

            status = await engine.evict(key)
            if status == DeleteStatus.NOT_FOUND:
                raise EntryNotFoundError("Not Found", context={"key": key})
            if status == DeleteStatus.FAILURE:
                raise StorageError("Server error", context={"key": key})
            return Response(status_code=200)


async def handle_cache_error(request: Request, exc: CatCacheError) -> Response:
    """Render any CatCacheError as a plain-text response."""
    if exc.status_code >= 500:
        logger.error("Request failed", error=str(exc))
    else:
        logger.info("Request rejected", status_code=exc.status_code, error=str(exc))
    headers = {"Allow": ", ".join(SUPPORTED_METHODS)} if exc.status_code == 405 else None
    return PlainTextResponse(exc.message, status_code=exc.status_code, headers=headers)


async def handle_http_error(request: Request, exc: StarletteHTTPException) -> Response:
    """Keep framework-level errors (unknown methods etc.) plain text too."""
    return PlainTextResponse(
        str(exc.detail), status_code=exc.status_code, headers=getattr(exc, "headers", None)
    )


def create_app(
    settings: Settings | None = None,
    engine: CacheEngine | None = None,
) -> FastAPI:
    """Build the application.

    Args:
        settings: Settings to use; loaded from the environment if None.
        engine: Preassembled engine; built from settings if None.

    Returns:
        FastAPI app whose lifespan creates the cache directory on startup
        and closes the upstream client on shutdown.
    """
    settings = settings or get_settings()
    engine = engine or build_engine(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await engine.store.init()
        try:
            yield
        finally:
            await engine.close()

    app = FastAPI(title="catcache", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.engine = engine

    app.add_api_route("/{path:path}", handle_cat, methods=ROUTED_METHODS)
    app.add_exception_handler(CatCacheError, handle_cache_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_error)

    return app
