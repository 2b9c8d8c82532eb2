"""
Upstream module.

Provides UpstreamFetcher, used by the engine when the local store misses.
"""

from catcache.upstream.fetcher import UpstreamFetcher

__all__ = ["UpstreamFetcher"]
