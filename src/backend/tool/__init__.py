"""
External media tool (yt-dlp): subprocess runner, failure classification and
the self-update schedule.
"""

from .runner import ToolResult, ToolRunner, raise_for_result
from .update_policy import SelfUpdatePolicy
from .ytdlp import YtDlp

__all__ = [
    "ToolResult",
    "ToolRunner",
    "raise_for_result",
    "SelfUpdatePolicy",
    "YtDlp",
]
