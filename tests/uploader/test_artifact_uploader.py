"""
Tests for src/backend/uploader/uploader.py

Covers:
- Upload of a fresh artifact writes the sidecar and removes the local file
- A stored handle is re-sent without transferring bytes, including on repeat requests
- Oversize artifacts are reported, not raised
- Missing artifacts raise ArtifactNotFound
"""

import asyncio
import shutil
import tempfile
import unittest
from pathlib import Path

from src.backend.downloader.dedup import RemoteHandleStore
from src.backend.messaging.models import Destination, LocalVideo, RemoteVideo
from src.backend.uploader.uploader import MB, ArtifactUploader, UploadStatus, format_megabytes
from src.shared.errors import ArtifactNotFound, MessagingError
from src.shared.media import MediaReference
from tests.fakes import FakeMessagingClient, RecordingLog


class UploaderTestCase(unittest.TestCase):
    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.artifact = self.temp_dir / "abc.mp4"
        self.client = FakeMessagingClient()
        self.handles = RemoteHandleStore()
        self.destination = Destination(chat_id=42)
        self.ref = MediaReference.from_info(
            {
                "id": "abc",
                "title": "Test",
                "filename": str(self.artifact),
                "duration": 100,
                "width": 1280,
                "height": 720,
                "sponsorblock_chapters": [{"type": "skip", "start_time": 10, "end_time": 29.6}],
            },
            requested_url="url",
        )

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def write_artifact(self, size_bytes):
        with open(self.artifact, "wb") as f:
            f.truncate(size_bytes)


class TestUpload(UploaderTestCase):
    def test_uploads_and_records_handle(self):
        self.write_artifact(1000)
        uploader = ArtifactUploader(self.client, self.handles)
        log = RecordingLog()

        handle = asyncio.run(uploader.ensure_uploaded(self.ref, self.destination, 7, log=log))

        self.assertEqual(handle, "file-1")
        self.assertEqual(log.lines, ["\n🚀 <b>Uploading...</b>"])
        chat_id, video, fields, reply_to = self.client.videos[0]
        self.assertEqual(chat_id, 42)
        self.assertEqual(video, LocalVideo(self.artifact))
        self.assertEqual(reply_to, 7)
        self.assertEqual(fields.caption, "Test")
        self.assertEqual((fields.width, fields.height), (1280, 720))
        self.assertEqual(fields.duration, 80)
        self.assertEqual(self.handles.get(self.artifact, "testbot"), "file-1")
        self.assertFalse(self.artifact.exists())

    def test_keep_downloads(self):
        self.write_artifact(1000)
        uploader = ArtifactUploader(self.client, self.handles, keep_downloads=True)
        asyncio.run(uploader.ensure_uploaded(self.ref, self.destination))
        self.assertTrue(self.artifact.exists())

    def test_reuses_stored_handle(self):
        self.handles.put(self.artifact, "testbot", "EXISTING")
        uploader = ArtifactUploader(self.client, self.handles)
        log = RecordingLog()

        outcome = asyncio.run(uploader.upload(self.ref, self.destination, log=log))

        self.assertEqual(outcome.status, UploadStatus.REUSED)
        self.assertEqual(outcome.handle, "EXISTING")
        self.assertEqual(self.client.videos[0][1], RemoteVideo("EXISTING"))
        self.assertEqual(self.client.uploaded_paths(), [])
        self.assertEqual(log.lines, [])

    def test_handle_from_other_context_not_reused(self):
        self.handles.put(self.artifact, "otherbot", "OTHER")
        self.write_artifact(10)
        uploader = ArtifactUploader(self.client, self.handles)
        handle = asyncio.run(uploader.ensure_uploaded(self.ref, self.destination))
        self.assertEqual(handle, "file-1")
        self.assertEqual(self.client.uploaded_paths(), [self.artifact])

    def test_missing_artifact(self):
        uploader = ArtifactUploader(self.client, self.handles)
        with self.assertRaises(ArtifactNotFound) as ctx:
            asyncio.run(uploader.ensure_uploaded(self.ref, self.destination))
        self.assertIn(str(self.artifact), str(ctx.exception))

    def test_endpoint_failure_leaves_no_sidecar(self):
        self.write_artifact(10)
        self.client.fail_videos = 1
        uploader = ArtifactUploader(self.client, self.handles)

        async def run_test():
            with self.assertRaises(MessagingError):
                await uploader.ensure_uploaded(self.ref, self.destination)
            self.assertIsNone(self.handles.get(self.artifact, "testbot"))
            self.assertTrue(self.artifact.exists())
            return await uploader.ensure_uploaded(self.ref, self.destination)

        self.assertEqual(asyncio.run(run_test()), "file-1")


class TestTooLarge(UploaderTestCase):
    def test_oversize_artifact_is_skipped(self):
        self.write_artifact(3072 * MB)
        uploader = ArtifactUploader(self.client, self.handles, max_upload_bytes=2048 * MB)
        log = RecordingLog()

        outcome = asyncio.run(uploader.upload(self.ref, self.destination, log=log))

        self.assertEqual(outcome.status, UploadStatus.TOO_LARGE)
        self.assertIsNone(outcome.handle)
        self.assertEqual(outcome.size_bytes, 3072 * MB)
        self.assertEqual(log.lines, ["\n😞 Video too large (3072.00 MB exceeds max size of 2048.00 MB)"])
        self.assertEqual(self.client.videos, [])
        self.assertTrue(self.artifact.exists())

    def test_limit_is_inclusive(self):
        self.write_artifact(100)
        uploader = ArtifactUploader(self.client, self.handles, max_upload_bytes=100)
        self.assertEqual(asyncio.run(uploader.ensure_uploaded(self.ref, self.destination)), "file-1")

    def test_format_megabytes(self):
        self.assertEqual(format_megabytes(1536 * 1024), "1.50 MB")


class TestSingleFlight(UploaderTestCase):
    def test_concurrent_uploads_share_one_send(self):
        self.write_artifact(10)
        uploader = ArtifactUploader(self.client, self.handles)

        async def run_test():
            return await asyncio.gather(*(uploader.ensure_uploaded(self.ref, self.destination) for _ in range(3)))

        self.assertEqual(asyncio.run(run_test()), ["file-1"] * 3)
        self.assertEqual(len(self.client.videos), 1)

    def test_other_chat_gets_its_own_send(self):
        self.handles.put(self.artifact, "testbot", "H")
        uploader = ArtifactUploader(self.client, self.handles)

        async def run_test():
            await uploader.ensure_uploaded(self.ref, self.destination)
            await uploader.ensure_uploaded(self.ref, Destination(chat_id=43))

        asyncio.run(run_test())
        self.assertEqual([v[0] for v in self.client.videos], [42, 43])

    def test_repeat_request_is_delivered_again(self):
        self.write_artifact(10)
        uploader = ArtifactUploader(self.client, self.handles)

        async def run_test():
            first = await uploader.upload(self.ref, self.destination)
            second = await uploader.upload(self.ref, self.destination)
            return first, second

        first, second = asyncio.run(run_test())
        self.assertEqual(first.status, UploadStatus.UPLOADED)
        self.assertEqual(second.status, UploadStatus.REUSED)
        self.assertEqual([v[1] for v in self.client.videos], [LocalVideo(self.artifact), RemoteVideo("file-1")])

    def test_concurrent_chats_share_one_transfer(self):
        self.write_artifact(10)
        uploader = ArtifactUploader(self.client, self.handles)

        async def run_test():
            return await asyncio.gather(
                uploader.upload(self.ref, self.destination),
                uploader.upload(self.ref, Destination(chat_id=43)),
            )

        first, second = asyncio.run(run_test())
        self.assertEqual((first.status, first.chat_id), (UploadStatus.UPLOADED, 42))
        self.assertEqual((second.status, second.chat_id), (UploadStatus.REUSED, 43))
        self.assertEqual(
            [(v[0], v[1]) for v in self.client.videos],
            [(42, LocalVideo(self.artifact)), (43, RemoteVideo("file-1"))],
        )

    def test_oversize_reported_on_every_request(self):
        self.write_artifact(200)
        uploader = ArtifactUploader(self.client, self.handles, max_upload_bytes=100)
        logs = [RecordingLog(), RecordingLog()]

        async def run_test():
            for log in logs:
                await uploader.upload(self.ref, self.destination, log=log)

        asyncio.run(run_test())
        self.assertEqual([len(log.lines) for log in logs], [1, 1])


if __name__ == "__main__":
    unittest.main()
