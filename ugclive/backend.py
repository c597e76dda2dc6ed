import logging
import time
from datetime import datetime, timezone
from pathlib import Path

import psutil
from flask import Flask, request, jsonify
from flask_cors import CORS

from .render_engine.errors import ValidationError
from .render_engine.layout import compose_from_props
from .render_engine.schemas import GenerationRequest
from .render_engine.utils import epoch_ms, remove_quietly

logger = logging.getLogger(__name__)

app = Flask(__name__)
CORS(app)

app.config.update({
    "SCHEDULER": None,
    "REQUEST_STORE": None,
    "INVOKER": None,
    "RENDERER": None,
    "STORAGE": None,
    "OUTPUT_DIR": "out",
    "RENDER_TIMEOUT": 900,
    "STARTED_AT": time.time(),
})


def configure(
    scheduler,
    store,
    invoker=None,
    renderer=None,
    storage=None,
    output_dir: str = "out",
    render_timeout: float = 900,
) -> Flask:
    """Attach the shared services the routes need."""
    app.config.update({
        "SCHEDULER": scheduler,
        "REQUEST_STORE": store,
        "INVOKER": invoker,
        "RENDERER": renderer,
        "STORAGE": storage,
        "OUTPUT_DIR": output_dir,
        "RENDER_TIMEOUT": render_timeout,
        "STARTED_AT": time.time(),
    })
    return app


def _uptime() -> float:
    return round(time.time() - app.config["STARTED_AT"], 3)


def _queue_status() -> dict:
    scheduler = app.config["SCHEDULER"]
    if scheduler is None:
        return {"queueLength": 0, "runningJobs": 0}
    return scheduler.status()


def _enqueue_request(request_id):
    if request_id is None or request_id == "":
        return jsonify({"success": False, "message": "Missing required parameter: id"}), 400
    # Jobs are keyed by the string id.
    request_id = str(request_id)

    store = app.config["REQUEST_STORE"]
    scheduler = app.config["SCHEDULER"]
    if store is None or scheduler is None:
        return jsonify({"success": False, "message": "Render service not configured"}), 500

    try:
        row = store.fetch_row(request_id)
    except Exception as e:
        logger.error("Error triggering video generation for %s: %s", request_id, e)
        return jsonify({
            "success": False,
            "message": "Failed to trigger video generation",
            "error": str(e),
        }), 500

    if row is None:
        return jsonify({"success": False, "message": "Record not found"}), 404

    future = scheduler.enqueue(request_id, GenerationRequest.from_row(row))
    future.add_done_callback(lambda f: _log_outcome(request_id, f))
    return jsonify({
        "success": True,
        "message": "Video generation process added to queue",
        "id": request_id,
        "queueStatus": scheduler.status(),
    }), 200


def _log_outcome(request_id, future) -> None:
    exc = future.exception()
    if exc is None:
        logger.info("Manually triggered video generation for ID: %s completed", request_id)
    else:
        logger.error("Manually triggered video generation for ID: %s failed: %s", request_id, exc)


@app.route("/trigger-video-generation", methods=["POST"])
def trigger_video_generation():
    data = request.get_json(silent=True) or {}
    return _enqueue_request(data.get("id"))


@app.route("/retry-processing/<request_id>", methods=["POST"])
def retry_processing(request_id: str):
    return _enqueue_request(request_id)


@app.route("/trigger-remote/<request_id>", methods=["POST"])
def trigger_remote(request_id: str):
    invoker = app.config["INVOKER"]
    if invoker is None:
        return jsonify({"success": False, "message": "Remote worker not configured"}), 500
    result = invoker.trigger(request_id)
    if result.not_found:
        return jsonify({"success": False, "message": "Record not found", "id": request_id}), 404
    return jsonify(result.to_dict()), 200 if result.success else 502


@app.route("/render-video", methods=["POST"])
def render_video():
    """Render straight from the posted props, upload, and answer with the public URL."""
    renderer = app.config["RENDERER"]
    storage = app.config["STORAGE"]
    if renderer is None or storage is None:
        return jsonify({"success": False, "message": "Render service not configured"}), 500

    data = request.get_json(silent=True) or {}
    try:
        spec = compose_from_props(data)
    except ValidationError as e:
        return jsonify({"success": False, "message": str(e)}), 400
    if not spec.primary_source:
        return jsonify({"success": False, "message": "Missing required parameter: videoSourceUrl"}), 400

    output_name = f"video-{epoch_ms()}.mp4"
    output_path = str(Path(app.config["OUTPUT_DIR"]) / output_name)
    logger.info("Direct render requested: %s (%s layout)", output_name, spec.layout_mode)
    try:
        renderer.render(spec, output_path, timeout=app.config["RENDER_TIMEOUT"])
        video_url = storage.upload(output_path, output_name)
    except Exception as e:
        logger.exception("Error rendering or uploading %s", output_name)
        return jsonify({
            "success": False,
            "message": "Failed to process video",
            "error": str(e),
        }), 500
    finally:
        remove_quietly(output_path, logger)

    return jsonify({
        "success": True,
        "message": "Video rendered and uploaded successfully",
        "videoUrl": video_url,
        "usedValues": {
            "titleText": spec.title_text,
            "textPosition": spec.text_position,
            "splitScreen": bool(data.get("splitScreen")),
            "splitPosition": data.get("splitPosition"),
            "usedVideoSource": spec.primary_source,
            "usedDemoVideoSource": data.get("demoVideoSourceUrl"),
            "usedAudioSource": spec.audio_source,
        },
    }), 200


@app.route("/jobs/<request_id>", methods=["GET"])
def get_job(request_id: str):
    scheduler = app.config["SCHEDULER"]
    job = scheduler.get(request_id) if scheduler is not None else None
    if not job:
        return jsonify({"error": "Job not found"}), 404
    return jsonify(job.summary()), 200


@app.route("/status", methods=["GET"])
def status():
    return jsonify({
        "status": "ok",
        "uptime": _uptime(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "queue": _queue_status(),
    }), 200


@app.route("/metrics", methods=["GET"])
def metrics():
    queue_status = _queue_status()
    mem = psutil.Process().memory_info()
    return jsonify({
        "queue_length": queue_status["queueLength"],
        "active_jobs": queue_status["runningJobs"],
        "uptime_seconds": _uptime(),
        "memory_usage_mb": round(mem.rss / 1024 / 1024),
        "total_memory_mb": round(mem.vms / 1024 / 1024),
    }), 200


@app.errorhandler(404)
def not_found(e):
    return jsonify({"error": "Endpoint not found"}), 404


@app.errorhandler(500)
def internal_error(e):
    return jsonify({"error": "Internal server error"}), 500
