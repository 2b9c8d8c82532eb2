"""
Local store module.

Provides LocalStore, the filesystem-backed key to blob mapping.
"""

from catcache.store.local_store import LocalStore

__all__ = ["LocalStore"]
