"""
Stateless remote worker. Downloads the primary clip, always re-encodes it,
uploads to S3 as ``videos/{id}.mp4`` and reports back to the request store.
Runs as a Lambda-style ``handler(event, context)`` or behind a small Flask app.
"""

import json
import logging
import os
import shutil
from pathlib import Path
from typing import Any, Dict, List, Optional

from flask import Flask, jsonify, request

from ..config import Settings
from ..render_engine.errors import StatusUpdateError
from ..render_engine.media import download, transcode
from ..render_engine.orchestrator import error_detail
from ..render_engine.utils import ffmpeg_bin, remove_quietly
from ..storage import S3Storage
from ..store import RequestStore, processing_fields

logger = logging.getLogger(__name__)

TMP_DIR = os.environ.get("REMOTE_TMP_DIR", "/tmp")


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "statusCode": status_code,
        "headers": {"content-type": "application/json"},
        "body": json.dumps(body),
    }


def _parse_body(event: Any) -> Dict[str, Any]:
    if not isinstance(event, dict):
        return {}
    body = event.get("body", event)
    if isinstance(body, (bytes, bytearray)):
        body = body.decode("utf-8")
    if isinstance(body, str):
        try:
            body = json.loads(body or "{}")
        except ValueError:
            return {}
    return body if isinstance(body, dict) else {}


def list_files(directory: str) -> int:
    """Log every file in the sandbox working directory."""
    try:
        names = sorted(os.listdir(directory))
    except OSError as e:
        logger.info("Error listing files in %s: %s", directory, e)
        return 0
    logger.info("Listing files in %s:", directory)
    for name in names:
        try:
            logger.info("- %s: %d bytes", name, os.path.getsize(os.path.join(directory, name)))
        except OSError as e:
            logger.info("- %s: error getting stats: %s", name, e)
    return len(names)


def check_ffmpeg() -> Optional[str]:
    path = ffmpeg_bin()
    resolved = path if os.path.isabs(path) and os.path.exists(path) else shutil.which(path)
    if resolved:
        logger.info("FFmpeg found at: %s", resolved)
    else:
        logger.info("FFmpeg not found (looked for %s)", path)
    return resolved


def _default_clients():
    settings = Settings.from_env()
    return RequestStore.from_settings(settings), S3Storage(settings.s3_bucket)


def handler(event, context=None, store=None, storage=None, tmp_dir: Optional[str] = None) -> Dict[str, Any]:
    tmp_dir = tmp_dir or TMP_DIR
    logger.info("Remote worker invoked")
    check_ffmpeg()
    list_files(tmp_dir)

    body = _parse_body(event)
    request_id = body.get("id")
    data = body.get("data")
    if not request_id or not data:
        return _response(400, {"success": False, "error": "Missing required parameters: id and data"})

    video_source = (data.get("remotion") or {}).get("template")
    if not video_source:
        return _response(400, {"success": False, "error": "No video source provided"})

    if store is None or storage is None:
        default_store, default_storage = _default_clients()
        store = store or default_store
        storage = storage or default_storage

    temp_files: List[str] = []
    try:
        try:
            store.update(request_id, {**processing_fields(), "error": None})
        except StatusUpdateError as e:
            logger.error("Error updating status for %s: %s", request_id, e)

        source_path = str(Path(tmp_dir) / f"{request_id}_source.mp4")
        temp_files.append(source_path)
        download(video_source, source_path)

        output_path = str(Path(tmp_dir) / f"{request_id}.mp4")
        temp_files.append(output_path)
        transcode(source_path, output_path)

        video_url = storage.upload(output_path, f"videos/{request_id}.mp4")
        try:
            store.mark_completed(request_id, video_url)
        except StatusUpdateError as e:
            logger.error("Error updating status for %s: %s", request_id, e)

        return _response(200, {"success": True, "message": "Video processed successfully", "videoUrl": video_url})
    except Exception as e:
        logger.exception("Error processing video %s", request_id)
        try:
            store.mark_error(request_id, error_detail(e))
        except StatusUpdateError as update_error:
            logger.error("Failed to update error status for %s: %s", request_id, update_error)
        return _response(500, {"success": False, "error": str(e)})
    finally:
        for path in temp_files:
            remove_quietly(path, logger)
        list_files(tmp_dir)


def create_worker_app(store=None, storage=None, tmp_dir: Optional[str] = None) -> Flask:
    app = Flask(__name__)

    @app.route("/generate-video", methods=["POST"])
    def generate_video():
        result = handler(
            {"body": request.get_json(silent=True) or {}},
            store=store,
            storage=storage,
            tmp_dir=tmp_dir,
        )
        return jsonify(json.loads(result["body"])), result["statusCode"]

    return app
