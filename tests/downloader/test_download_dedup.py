"""
Tests for the download stage and its on-disk deduplication.

Covers:
1. Sidecar present -> nothing downloaded (already uploaded in this context)
2. Artifact present -> nothing downloaded
3. Otherwise yt-dlp replays the saved info document and the temp file is removed
4. Concurrent requests for one destination download once; failures (including
   a run that wrote no file) are retried
"""

import asyncio
import json
import shutil
import tempfile
import unittest
from pathlib import Path

from src.backend.downloader.dedup import DedupResult, RemoteHandleStore
from src.backend.downloader.downloader import ArtifactDownloader, DownloadStatus
from src.backend.fs.storage import StorageLayout
from src.backend.tool.ytdlp import YtDlp
from src.shared.errors import ArtifactNotFound, ToolExitError
from src.shared.media import MediaReference
from tests.fakes import RecordingLog, ScriptedToolRunner, download_step, failing_step, no_output_step


class TestRemoteHandleStore(unittest.TestCase):
    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.artifact = self.temp_dir / "youtube" / "abc.mp4"
        self.handles = RemoteHandleStore()

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_new_when_nothing_on_disk(self):
        check = self.handles.check(self.artifact, "bot")
        assert check.result == DedupResult.NEW
        assert not check.satisfied

    def test_downloaded_when_artifact_exists(self):
        self.artifact.parent.mkdir(parents=True)
        self.artifact.write_bytes(b"x")
        check = self.handles.check(self.artifact, "bot")
        assert check.result == DedupResult.DOWNLOADED
        assert check.satisfied

    def test_uploaded_when_sidecar_exists(self):
        """The sidecar wins even if the artifact was deleted after upload."""
        self.handles.put(self.artifact, "bot", "FILE_ID\n")
        check = self.handles.check(self.artifact, "bot")
        assert check.result == DedupResult.UPLOADED
        assert check.remote_handle == "FILE_ID"
        assert (self.temp_dir / "youtube" / "abc.mp4.bot.id").read_text(encoding="utf-8") == "FILE_ID"

    def test_sidecar_is_per_context(self):
        self.handles.put(self.artifact, "bot_a", "A")
        assert self.handles.get(self.artifact, "bot_b") is None
        assert self.handles.check(self.artifact, "bot_b").result == DedupResult.NEW

    def test_empty_sidecar_ignored(self):
        path = self.handles.path_for(self.artifact, "bot")
        path.parent.mkdir(parents=True)
        path.write_text("  \n", encoding="utf-8")
        assert self.handles.get(self.artifact, "bot") is None

    def test_put_rejects_empty_handle(self):
        with self.assertRaises(ValueError):
            self.handles.put(self.artifact, "bot", " ")

    def test_put_replaces_existing(self):
        self.handles.put(self.artifact, "bot", "old")
        self.handles.put(self.artifact, "bot", "new")
        assert self.handles.get(self.artifact, "bot") == "new"
        assert sorted(p.name for p in self.artifact.parent.iterdir()) == ["abc.mp4.bot.id"]


class TestArtifactDownloader(unittest.TestCase):
    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.layout = StorageLayout(self.temp_dir)
        self.layout.ensure_dirs()
        self.handles = RemoteHandleStore()
        self.artifact = self.layout.paths.downloads / "generic" / "abc.mp4"
        self.ref = MediaReference.from_info(
            {"id": "abc", "title": "Test", "filename": str(self.artifact), "webpage_url": "url"},
            requested_url="url",
        )

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def make_downloader(self, *steps, delay_s=0.0):
        runner = ScriptedToolRunner(*steps, delay_s=delay_s)
        ytdlp = YtDlp(runner, output_template=self.layout.output_template)
        downloader = ArtifactDownloader(ytdlp, self.layout, self.handles, context_id=lambda: "testbot")
        return downloader, runner

    def test_downloads_new_artifact(self):
        downloader, runner = self.make_downloader(download_step(2048, stderr=["[download] 100%"]))
        log = RecordingLog()

        outcome = asyncio.run(downloader.ensure_downloaded(self.ref, log=log))

        assert outcome.status == DownloadStatus.DOWNLOADED
        assert outcome.artifact_path == self.artifact
        assert self.artifact.stat().st_size == 2048
        assert log.lines == ["⬇️ <b>Downloading...</b>", "[download] 100%"]
        args = runner.calls[0]
        assert "--load-info-json" in args
        # The saved info document is cleaned up after the run
        assert list(self.layout.paths.tmp.iterdir()) == []

    def test_info_document_replayed_unchanged(self):
        seen = {}

        def capture(args):
            info_path = Path(args[args.index("--load-info-json") + 1])
            seen.update(json.loads(info_path.read_text(encoding="utf-8")))
            return download_step()(args)

        downloader, _ = self.make_downloader(capture)
        asyncio.run(downloader.ensure_downloaded(self.ref))
        assert seen == dict(self.ref.info)

    def test_skips_existing_artifact(self):
        self.artifact.parent.mkdir(parents=True)
        self.artifact.write_bytes(b"already here")
        downloader, runner = self.make_downloader()
        log = RecordingLog()

        outcome = asyncio.run(downloader.ensure_downloaded(self.ref, log=log))

        assert outcome.status == DownloadStatus.ALREADY_SATISFIED
        assert outcome.reason == DedupResult.DOWNLOADED
        assert runner.calls == []
        assert log.lines == []

    def test_skips_when_already_uploaded(self):
        self.handles.put(self.artifact, "testbot", "FILE_ID")
        downloader, runner = self.make_downloader()

        outcome = asyncio.run(downloader.ensure_downloaded(self.ref))

        assert outcome.reason == DedupResult.UPLOADED
        assert not self.artifact.exists()
        assert runner.calls == []

    def test_concurrent_requests_download_once(self):
        downloader, runner = self.make_downloader(download_step(), delay_s=0.02)

        async def run_test():
            return await asyncio.gather(*(downloader.ensure_downloaded(self.ref) for _ in range(3)))

        outcomes = asyncio.run(run_test())
        assert len(runner.calls) == 1
        assert all(o is outcomes[0] for o in outcomes)

    def test_failure_is_retried(self):
        downloader, runner = self.make_downloader(
            failing_step(1, ["ERROR: HTTP Error 403: Forbidden"]),
            download_step(),
        )

        async def run_test():
            with self.assertRaises(ToolExitError):
                await downloader.ensure_downloaded(self.ref)
            return await downloader.ensure_downloaded(self.ref)

        outcome = asyncio.run(run_test())
        assert outcome.status == DownloadStatus.DOWNLOADED
        assert len(runner.calls) == 2
        assert list(self.layout.paths.tmp.iterdir()) == []

    def test_success_without_file_is_a_failure(self):
        downloader, runner = self.make_downloader(no_output_step(), download_step())

        async def run_test():
            with self.assertRaises(ArtifactNotFound) as ctx:
                await downloader.ensure_downloaded(self.ref)
            self.assertIn(str(self.artifact), str(ctx.exception))
            return await downloader.ensure_downloaded(self.ref)

        outcome = asyncio.run(run_test())
        assert outcome.status == DownloadStatus.DOWNLOADED
        assert len(runner.calls) == 2
        assert self.artifact.is_file()


if __name__ == "__main__":
    unittest.main()
