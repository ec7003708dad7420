"""
Caching layers: single-flight memoization and the persisted metadata cache.
"""

from .alias_store import AliasStore, JsonIndexAliasStore, SymlinkAliasStore
from .memoize import SKIP, CacheInfo, Memoized, SingleFlightCache, memoize
from .metadata_cache import MetadataCache
from .metadata_store import MetadataStore

__all__ = [
    "AliasStore",
    "JsonIndexAliasStore",
    "SymlinkAliasStore",
    "SKIP",
    "CacheInfo",
    "Memoized",
    "SingleFlightCache",
    "memoize",
    "MetadataCache",
    "MetadataStore",
]
