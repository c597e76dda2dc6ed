import os
import shutil
import tempfile
from pathlib import Path

import pytest

from ugclive.render_engine.errors import StatusUpdateError, UploadError
from ugclive.render_engine.schemas import GenerationRequest
from ugclive.store import completed_fields, failed_fields, processing_fields


class FakeStore:
    """In-memory stand-in for the request store, using the real column payloads."""

    def __init__(self, rows=None, fail_updates=False):
        self.rows = {str(r["id"]): dict(r) for r in (rows or [])}
        self.updates = []
        self.fail_updates = fail_updates

    def fetch_row(self, request_id):
        row = self.rows.get(str(request_id))
        return dict(row) if row else None

    def fetch(self, request_id):
        row = self.fetch_row(request_id)
        return GenerationRequest.from_row(row) if row else None

    def list_pending(self, limit=20):
        return [dict(r) for r in self.rows.values() if r.get("status") == "pending"][:limit]

    def update(self, request_id, fields):
        if self.fail_updates:
            raise StatusUpdateError("store unavailable")
        self.updates.append((request_id, dict(fields)))
        self.rows.setdefault(str(request_id), {"id": request_id}).update(fields)

    def mark_processing(self, request_id):
        self.update(request_id, processing_fields())

    def mark_completed(self, request_id, result_url):
        self.update(request_id, completed_fields(result_url))

    def mark_error(self, request_id, error):
        self.update(request_id, failed_fields("error", error))

    def mark_pending(self, request_id, error=None):
        self.update(request_id, failed_fields("pending", error))


class FakeStorage:
    def __init__(self, fail=False):
        self.fail = fail
        self.uploads = []

    def upload(self, path, key, content_type="video/mp4"):
        if self.fail:
            raise UploadError("bucket unavailable")
        assert os.path.getsize(path) > 0
        self.uploads.append((path, key))
        return f"https://storage.example.com/generated-videos/{key}"


def make_row(request_id="req-1", **overrides):
    row = {
        "id": request_id,
        "status": "pending",
        "text_alignment": "bottom",
        "video_alignment": None,
        "video_type": "aiugc",
        "remotion": {
            "caption": "Hello world",
            "template": "https://cdn.example.com/template.mp4",
            "demo": None,
            "sound": None,
            "audio_offset": 0,
        },
        "remotion_video": None,
        "error": None,
        "completed_at": None,
    }
    remotion = overrides.pop("remotion", None)
    if remotion:
        row["remotion"].update(remotion)
    row.update(overrides)
    return row


@pytest.fixture()
def temp_output_dir():
    tmpdir = tempfile.mkdtemp(prefix="renders_")
    yield tmpdir
    shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture()
def fake_store():
    return FakeStore(rows=[make_row("req-1")])


@pytest.fixture()
def fake_storage():
    return FakeStorage()


@pytest.fixture()
def app_client(fake_store):
    from ugclive import backend
    from ugclive.render_engine.worker import RenderScheduler

    # Not started: enqueued jobs stay queued so responses are deterministic.
    scheduler = RenderScheduler(lambda job: None, concurrency=2)
    backend.configure(scheduler, fake_store)
    backend.app.config.update({"TESTING": True})
    client = backend.app.test_client()
    yield client
    backend.configure(None, None, None)


def files_tagged(directory, job_id):
    return [p.name for p in Path(directory).iterdir() if job_id in p.name]


@pytest.fixture()
def row_factory():
    return make_row


@pytest.fixture()
def store_factory():
    return FakeStore


@pytest.fixture()
def storage_factory():
    return FakeStorage


@pytest.fixture()
def tagged_files():
    return files_tagged
