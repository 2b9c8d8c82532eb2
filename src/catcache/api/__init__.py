"""
HTTP interface module.

Provides create_app() building the FastAPI application around a CacheEngine.
"""

from catcache.api.server import build_engine, create_app

__all__ = ["build_engine", "create_app"]
