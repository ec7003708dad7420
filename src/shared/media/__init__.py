"""
Media metadata shared across pipeline stages.
"""

from .models import MediaReference, SkipSegment

__all__ = ["MediaReference", "SkipSegment"]
