"""
Cache key derivation for the metadata cache.

A cache key is the SHA-256 digest of the UTF-8 encoded URL, rendered as
unpadded URL-safe base64 (43 characters). The alphabet [A-Za-z0-9_-] is legal
in file names on every platform we run on, and the key depends on nothing but
the URL, so it is stable across processes and restarts.
"""

from __future__ import annotations

import base64
import hashlib


# Hash algorithm to use
HASH_ALGORITHM = "sha256"

# Length of an unpadded base64url SHA-256 digest
CACHE_KEY_LENGTH = 43


def cache_key(url: str) -> str:
    """
    Compute the metadata cache key for a URL.

    Args:
        url: The URL exactly as it will be looked up (no normalization here).

    Returns:
        43-character URL-safe base64 string.
    """
    digest = hashlib.new(HASH_ALGORITHM, url.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")
