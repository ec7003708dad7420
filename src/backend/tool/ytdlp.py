"""
yt-dlp invocation contract.

Metadata:  yt-dlp <url> (--no-warnings | --verbose) ... --dump-json [--update]
Download:  yt-dlp (--no-warnings | --verbose) ... --load-info-json <path>

The download step replays the already-resolved info document, so the site
is never scraped twice for one item. Both steps share the output template and
format selection so the file name reported at scrape time is the file that
gets written.
"""

from __future__ import annotations

import logging
from typing import Optional

from .runner import LineCallback, ToolResult, ToolRunner, raise_for_result
from .update_policy import SelfUpdatePolicy


logger = logging.getLogger(__name__)

TOOL_NAME = "yt-dlp"

# Prefer separate best streams (merged to mp4), skip AV1 which many clients can't play.
DEFAULT_FORMAT = "bestvideo[vcodec!^=?av01]+bestaudio/best[vcodec!^=?av01]/best"

MERGE_OUTPUT_FORMAT = "mp4"


class YtDlp:
    def __init__(
        self,
        runner: ToolRunner,
        *,
        output_template: str,
        format_selector: str = DEFAULT_FORMAT,
        proxy_url: Optional[str] = None,
        update_policy: Optional[SelfUpdatePolicy] = None,
    ) -> None:
        self._runner = runner
        self._output_template = output_template
        self._format_selector = format_selector
        self._proxy_url = proxy_url
        self._update_policy = update_policy

    @property
    def runner(self) -> ToolRunner:
        return self._runner

    def _common_args(self, verbose: bool) -> list[str]:
        args = [
            "--verbose" if verbose else "--no-warnings",
            "--no-playlist",
            "--format",
            self._format_selector,
            "--merge-output-format",
            MERGE_OUTPUT_FORMAT,
            "--output",
            self._output_template,
        ]
        if self._proxy_url:
            args += ["--proxy", self._proxy_url]
        return args

    def info_args(self, url: str, *, verbose: bool = False) -> list[str]:
        args = [url, *self._common_args(verbose), "--dump-json"]
        if self._update_policy is not None and self._update_policy.should_update():
            logger.info("Requesting %s self-update", TOOL_NAME)
            args.append("--update")
        return args

    def download_args(self, info_path: str, *, verbose: bool = False) -> list[str]:
        return [*self._common_args(verbose), "--load-info-json", info_path]

    async def dump_info(
        self,
        url: str,
        *,
        verbose: bool = False,
        on_stderr_line: Optional[LineCallback] = None,
    ) -> ToolResult:
        """
        Scrape metadata for `url`.

        Raises:
            ToolTimeout, ToolSignalTermination, ToolExitError
        """
        result = await self._runner.run(self.info_args(url, verbose=verbose), on_stderr_line=on_stderr_line)
        raise_for_result(result, timeout_s=self._runner.timeout_s, tool=TOOL_NAME)
        return result

    async def download(
        self,
        info_path: str,
        *,
        verbose: bool = False,
        on_stderr_line: Optional[LineCallback] = None,
    ) -> ToolResult:
        """
        Download the media described by a saved info document.

        Raises:
            ToolTimeout, ToolSignalTermination, ToolExitError
        """
        result = await self._runner.run(self.download_args(info_path, verbose=verbose), on_stderr_line=on_stderr_line)
        raise_for_result(result, timeout_s=self._runner.timeout_s, tool=TOOL_NAME)
        return result
