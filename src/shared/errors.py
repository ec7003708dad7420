"""
Error taxonomy shared by the pipeline stages.

Subprocess failures are classified once, at the stage that spawned the tool,
from a structured ToolResult (exit code, terminating signal, timeout flag).
"Too large" uploads are not errors: see UploadStatus in the uploader.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from src.backend.tool.runner import ToolResult


class PipelineError(Exception):
    """Base class for failures surfaced to the per-URL pipeline handler."""


class ToolError(PipelineError):
    """The external tool did not complete successfully."""

    def __init__(self, message: str, *, result: Optional["ToolResult"] = None) -> None:
        super().__init__(message)
        self.result = result


class ToolTimeout(ToolError):
    def __init__(self, timeout_s: float, *, tool: str = "yt-dlp", result: Optional["ToolResult"] = None) -> None:
        super().__init__(f"Timed out after {timeout_s:g} seconds", result=result)
        self.timeout_s = timeout_s
        self.tool = tool


class ToolSignalTermination(ToolError):
    def __init__(self, signal_name: str, *, tool: str = "yt-dlp", result: Optional["ToolResult"] = None) -> None:
        super().__init__(f"{tool} was killed with signal {signal_name}", result=result)
        self.signal_name = signal_name
        self.tool = tool


class ToolExitError(ToolError):
    def __init__(
        self,
        exit_code: int,
        *,
        tool: str = "yt-dlp",
        detail: Optional[str] = None,
        result: Optional["ToolResult"] = None,
    ) -> None:
        message = f"{tool} exited with code {exit_code}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message, result=result)
        self.exit_code = exit_code
        self.tool = tool
        self.detail = detail


class ArtifactNotFound(PipelineError):
    """The artifact yt-dlp should have written is not on disk."""

    def __init__(self, path: str) -> None:
        super().__init__(f"yt-dlp output file not found: {path}")
        self.path = path


class UpstreamParseError(PipelineError):
    """A metadata document (fresh or cached) could not be parsed."""


class MessagingError(PipelineError):
    """The messaging endpoint rejected a request or could not be reached."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
