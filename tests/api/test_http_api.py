"""
HTTP API tests: job submission and settings, through FastAPI's TestClient.
"""

import os
import shutil
import tempfile
import time
import unittest
from pathlib import Path
from unittest import mock

from fastapi.testclient import TestClient

from src.backend.app import create_app
from src.backend.pipeline.url_pipeline import PipelineResult, PipelineStatus


class FakePipeline:
    def __init__(self):
        self.calls = []

    async def process_event(self, urls, verbose=False, *, destination, reply_to=None):
        self.calls.append((list(urls), verbose, destination, reply_to))
        return [PipelineResult(url=url, status=PipelineStatus.UPLOADED, handle="H") for url in urls]


def wait_for_status(client, job_id, *statuses, timeout_s=5.0):
    deadline = time.monotonic() + timeout_s
    while True:
        job = client.get(f"/api/jobs/{job_id}").json()
        if job["status"] in statuses or time.monotonic() > deadline:
            return job
        time.sleep(0.01)


class ApiTestCase(unittest.TestCase):
    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        env = mock.patch.dict(os.environ, {}, clear=False)
        env.start()
        self.addCleanup(env.stop)
        for name in ("MEDIABOT_BOT_TOKEN", "MEDIABOT_API_ROOT", "MEDIABOT_STORAGE_ROOT"):
            os.environ.pop(name, None)

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)


class TestJobsApi(ApiTestCase):
    def setUp(self):
        super().setUp()
        self.pipeline = FakePipeline()
        self.app = create_app(repo_root=self.temp_dir, pipeline=self.pipeline)

    def test_submit_and_complete(self):
        with TestClient(self.app) as client:
            resp = client.post(
                "/api/jobs",
                json={"urls": ["https://example.com/a"], "chat_id": 42, "reply_to_message_id": 3},
            )
            self.assertEqual(resp.status_code, 202)
            job_id = resp.json()["job_id"]

            job = wait_for_status(client, job_id, "Done", "Failed")

        self.assertEqual(job["status"], "Done")
        self.assertEqual(
            job["results"],
            [{"url": "https://example.com/a", "status": "uploaded", "handle": "H", "error": None}],
        )
        urls, verbose, destination, reply_to = self.pipeline.calls[0]
        self.assertEqual(urls, ["https://example.com/a"])
        self.assertEqual(destination.chat_id, 42)
        self.assertTrue(destination.is_private)
        self.assertEqual(reply_to, 3)
        self.assertTrue((self.temp_dir / "data" / "jobs" / f"{job_id}.json").is_file())

    def test_validation(self):
        with TestClient(self.app) as client:
            self.assertEqual(client.post("/api/jobs", json={"urls": [], "chat_id": 1}).status_code, 422)
            resp = client.post("/api/jobs", json={"urls": ["  "], "chat_id": 1})
            self.assertEqual(resp.status_code, 400)
            self.assertEqual(resp.json()["detail"], "urls must not be empty")

    def test_unknown_job(self):
        with TestClient(self.app) as client:
            self.assertEqual(client.get("/api/jobs/missing").status_code, 404)
            self.assertEqual(client.post("/api/jobs/missing/cancel").status_code, 404)

    def test_state_and_list(self):
        with TestClient(self.app) as client:
            job_id = client.post("/api/jobs", json={"urls": ["u"], "chat_id": 1}).json()["job_id"]
            wait_for_status(client, job_id, "Done")
            state = client.get("/api/jobs/state").json()
            jobs = client.get("/api/jobs").json()

        self.assertEqual(state["max_concurrent"], 3)
        self.assertEqual(state["running_count"], 0)
        self.assertEqual([j["job_id"] for j in jobs], [job_id])


class TestUnconfiguredBot(ApiTestCase):
    def test_jobs_fail_without_bot(self):
        app = create_app(repo_root=self.temp_dir)
        with TestClient(app) as client:
            job_id = client.post("/api/jobs", json={"urls": ["u"], "chat_id": 1}).json()["job_id"]
            job = wait_for_status(client, job_id, "Done", "Failed")

        self.assertEqual(job["status"], "Failed")
        self.assertIn("not configured", job["error"])


class TestSettingsApi(ApiTestCase):
    def setUp(self):
        super().setUp()
        self.app = create_app(repo_root=self.temp_dir, pipeline=FakePipeline())

    def test_defaults(self):
        with TestClient(self.app) as client:
            data = client.get("/api/settings").json()
        self.assertFalse(data["bot"]["configured"])
        self.assertEqual(data["max_concurrent"], 3)
        self.assertEqual(data["limits"]["max_upload_mb"], 2048)
        self.assertEqual(data["limits"]["max_message_length"], 4096)

    def test_bot_token_is_persisted_but_not_echoed(self):
        with TestClient(self.app) as client:
            data = client.post("/api/settings/bot", json={"token": "123:abc", "local_mode": True}).json()
            cleared = client.delete("/api/settings/bot").json()

        self.assertTrue(data["bot"]["configured"])
        self.assertTrue(data["bot"]["local_mode"])
        self.assertNotIn("123:abc", str(data))
        self.assertFalse(cleared["bot"]["configured"])

    def test_max_concurrent_applies_to_scheduler(self):
        with TestClient(self.app) as client:
            resp = client.post("/api/settings/max-concurrent", json={"max_concurrent": 5})
            self.assertEqual(resp.status_code, 200)
            state = client.get("/api/jobs/state").json()
            self.assertEqual(client.post("/api/settings/max-concurrent", json={"max_concurrent": 0}).status_code, 422)

        self.assertEqual(state["max_concurrent"], 5)
        saved = (self.temp_dir / "data" / "config.json").read_text(encoding="utf-8")
        self.assertIn('"max_concurrent": 5', saved)

    def test_storage_root_relative_to_repo(self):
        with TestClient(self.app) as client:
            data = client.post("/api/settings/storage-root", json={"storage_root": "media"}).json()
        self.assertEqual(Path(data["storage_root"]), (self.temp_dir / "media").resolve())
        self.assertTrue((self.temp_dir / "media").is_dir())

    def test_proxy_validation(self):
        with TestClient(self.app) as client:
            bad = client.post("/api/settings/proxy", json={"enabled": True, "url": "ftp://proxy:21"})
            good = client.post("/api/settings/proxy", json={"enabled": True, "url": "socks5://proxy:1080"})
        self.assertEqual(bad.status_code, 400)
        self.assertEqual(good.status_code, 200)
        self.assertEqual(good.json()["proxy"], {"enabled": True, "url_configured": True})

    def test_limits(self):
        with TestClient(self.app) as client:
            data = client.post(
                "/api/settings/limits",
                json={"max_upload_mb": 50, "keep_downloads": True, "self_update_interval_s": 0},
            ).json()
        self.assertEqual(data["limits"]["max_upload_mb"], 50)
        self.assertTrue(data["limits"]["keep_downloads"])
        self.assertEqual(data["limits"]["self_update_interval_s"], 0.0)


if __name__ == "__main__":
    unittest.main()
