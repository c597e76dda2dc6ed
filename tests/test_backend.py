import os

from ugclive import backend
from ugclive.remote.invoker import InvokeResult


class StubInvoker:
    def __init__(self, result):
        self.result = result
        self.calls = []

    def trigger(self, request_id):
        self.calls.append(request_id)
        return self.result


def test_trigger_requires_id(app_client):
    resp = app_client.post("/trigger-video-generation", json={})
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "Missing required parameter: id"


def test_trigger_unknown_record(app_client):
    resp = app_client.post("/trigger-video-generation", json={"id": "nope"})
    assert resp.status_code == 404
    assert resp.get_json()["message"] == "Record not found"


def test_trigger_enqueues_and_reports_queue(app_client):
    resp = app_client.post("/trigger-video-generation", json={"id": "req-1"})
    body = resp.get_json()
    assert resp.status_code == 200
    assert body["success"] is True
    assert body["id"] == "req-1"
    assert body["queueStatus"] == {"queueLength": 1, "runningJobs": 0}


def test_retry_processing_enqueues(app_client):
    resp = app_client.post("/retry-processing/req-1")
    assert resp.status_code == 200
    assert resp.get_json()["queueStatus"]["queueLength"] == 1

    job = app_client.get("/jobs/req-1")
    assert job.status_code == 200
    assert job.get_json()["id"] == "req-1"
    assert job.get_json()["state"] == "received"


def test_store_failure_returns_500(app_client, mocker, fake_store):
    mocker.patch.object(fake_store, "fetch_row", side_effect=RuntimeError("connection reset"))
    resp = app_client.post("/trigger-video-generation", json={"id": "req-1"})
    assert resp.status_code == 500
    assert resp.get_json()["error"] == "connection reset"


def test_status_and_metrics(app_client):
    status = app_client.get("/status").get_json()
    assert status["status"] == "ok"
    assert status["queue"] == {"queueLength": 0, "runningJobs": 0}

    metrics = app_client.get("/metrics").get_json()
    assert metrics["queue_length"] == 0
    assert metrics["active_jobs"] == 0
    assert metrics["memory_usage_mb"] > 0
    assert metrics["uptime_seconds"] >= 0


def test_unknown_job_and_route(app_client):
    assert app_client.get("/jobs/ghost").status_code == 404
    resp = app_client.get("/does-not-exist")
    assert resp.status_code == 404
    assert resp.get_json() == {"error": "Endpoint not found"}


def test_trigger_remote(app_client):
    assert app_client.post("/trigger-remote/req-1").status_code == 500

    invoker = StubInvoker(InvokeResult(success=True, id="req-1", video_url="https://s3/v.mp4", attempts=1))
    backend.app.config["INVOKER"] = invoker
    resp = app_client.post("/trigger-remote/req-1")
    assert resp.status_code == 200
    assert resp.get_json()["video_url"] == "https://s3/v.mp4"
    assert invoker.calls == ["req-1"]

    backend.app.config["INVOKER"] = StubInvoker(InvokeResult(success=False, id="req-1", error="HTTP 503", attempts=3))
    assert app_client.post("/trigger-remote/req-1").status_code == 502

    backend.app.config["INVOKER"] = StubInvoker(InvokeResult(success=False, id="x", not_found=True))
    assert app_client.post("/trigger-remote/x").status_code == 404


class WritingRenderer:
    def __init__(self, fail=False):
        self.fail = fail
        self.specs = []

    def render(self, spec, output_path, timeout=900, on_progress=None):
        self.specs.append(spec)
        if self.fail:
            raise RuntimeError("ffmpeg failed (code 1)")
        with open(output_path, "wb") as f:
            f.write(b"rendered")
        return output_path


def _enable_direct_render(renderer, storage, output_dir):
    backend.app.config.update({"RENDERER": renderer, "STORAGE": storage, "OUTPUT_DIR": output_dir})


def test_numeric_id_is_tracked_by_string_key(app_client, fake_store, row_factory):
    fake_store.rows["7"] = row_factory(7)
    resp = app_client.post("/trigger-video-generation", json={"id": 7})
    assert resp.status_code == 200
    assert resp.get_json()["id"] == "7"
    assert app_client.get("/jobs/7").status_code == 200


def test_render_video_rejects_invalid_split_position(app_client, fake_storage, temp_output_dir):
    renderer = WritingRenderer()
    _enable_direct_render(renderer, fake_storage, temp_output_dir)
    resp = app_client.post("/render-video", json={
        "videoSourceUrl": "https://cdn/main.mp4",
        "splitScreen": True,
        "splitPosition": "diagonal",
    })
    assert resp.status_code == 400
    assert "left-right, right-left, top-bottom, bottom-top" in resp.get_json()["message"]
    assert renderer.specs == []


def test_render_video_renders_uploads_and_cleans_up(app_client, fake_storage, temp_output_dir):
    renderer = WritingRenderer()
    _enable_direct_render(renderer, fake_storage, temp_output_dir)
    resp = app_client.post("/render-video", json={
        "titleText": "Launch day",
        "textPosition": "top",
        "durationInSeconds": 8,
        "splitScreen": True,
        "splitPosition": "top-bottom",
        "videoSourceUrl": "https://cdn/main.mp4",
        "demoVideoSourceUrl": "https://cdn/demo.mp4",
        "audioSourceUrl": "https://cdn/song.mp3",
        "audioOffsetInSeconds": 4,
    })
    body = resp.get_json()

    assert resp.status_code == 200
    assert body["success"] is True
    assert body["videoUrl"].startswith("https://storage.example.com/generated-videos/video-")
    assert body["usedValues"]["splitPosition"] == "top-bottom"
    assert body["usedValues"]["usedDemoVideoSource"] == "https://cdn/demo.mp4"

    spec = renderer.specs[0]
    assert spec.layout_mode == "split"
    assert spec.total_duration_seconds == 8
    assert spec.audio_offset_seconds == 4.0
    assert spec.enable_audio is True
    assert os.listdir(temp_output_dir) == []


def test_render_video_defaults_and_failure(app_client, fake_storage, temp_output_dir):
    renderer = WritingRenderer(fail=True)
    _enable_direct_render(renderer, fake_storage, temp_output_dir)
    resp = app_client.post("/render-video", json={"videoSourceUrl": "https://cdn/main.mp4"})

    assert resp.status_code == 500
    assert resp.get_json()["message"] == "Failed to process video"
    spec = renderer.specs[0]
    assert spec.title_text == "Default Title"
    assert spec.text_position == "bottom"
    assert spec.total_duration_seconds == 10
    assert spec.layout_mode == "single"


def test_render_video_requires_source(app_client, fake_storage, temp_output_dir):
    _enable_direct_render(WritingRenderer(), fake_storage, temp_output_dir)
    assert app_client.post("/render-video", json={}).status_code == 400
