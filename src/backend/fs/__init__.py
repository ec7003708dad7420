"""
File system utilities for the media cache.

Provides:
- Storage directory layout (storage.py)
- Artifact and sidecar naming conventions (naming.py)
- Cache key derivation (hashing.py)
"""

from .storage import StorageLayout, StoragePaths
from .naming import fallback_artifact_path, safe_filename, sanitize_context_id, sidecar_path
from .hashing import cache_key

__all__ = [
    "StorageLayout",
    "StoragePaths",
    "fallback_artifact_path",
    "safe_filename",
    "sanitize_context_id",
    "sidecar_path",
    "cache_key",
]
