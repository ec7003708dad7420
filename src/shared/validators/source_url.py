"""
Source URL normalization for incoming media links.

Rules:
- Leading/trailing whitespace is ignored
- A link without a scheme is treated as https:// (chat clients often drop it)
- Only http:// and https:// are accepted
- The host must look like a domain name (contain a dot) or be localhost
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse


@dataclass(frozen=True)
class ValidationResult:
    """URL validation result."""

    valid: bool
    url: Optional[str] = None
    error: Optional[str] = None

    def __bool__(self) -> bool:
        return self.valid


ALLOWED_SCHEMES = ("http", "https")


def normalize_source_url(url: str) -> ValidationResult:
    """
    Validate a source URL and return its normalized form.

    Args:
        url: Raw URL as supplied by the caller.

    Returns:
        ValidationResult with the normalized URL on success, or a readable error.
    """
    if not url or not url.strip():
        return ValidationResult(valid=False, error="URL must not be empty")

    raw = url.strip()
    if not raw.lower().startswith(("http://", "https://")):
        if "://" in raw:
            scheme = raw.split("://", 1)[0]
            return ValidationResult(valid=False, error=f"Unsupported scheme {scheme}://")
        raw = f"https://{raw}"

    try:
        parsed = urlparse(raw)
    except ValueError:
        return ValidationResult(valid=False, error="Invalid URL")

    if parsed.scheme.lower() not in ALLOWED_SCHEMES:
        return ValidationResult(valid=False, error=f"Unsupported scheme {parsed.scheme}://")

    host = (parsed.hostname or "").lower()
    if not host:
        return ValidationResult(valid=False, error="URL is missing a host")
    if "." not in host and host != "localhost":
        return ValidationResult(valid=False, error=f"Invalid host: {host}")

    return ValidationResult(valid=True, url=raw)
