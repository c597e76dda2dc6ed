"""
Serves locally transcoded temp files over HTTP so the renderer only ever sees URLs.
"""

import logging
import mimetypes
import os
import threading
from dataclasses import dataclass
from typing import Optional

from flask import Flask, jsonify, send_file
from werkzeug.serving import make_server
from werkzeug.utils import secure_filename

from .render_engine.utils import is_remote_url

logger = logging.getLogger(__name__)

ROUTE_PREFIX = "/videos"

MIME_BY_EXT = {
    "mp4": "video/mp4",
    "m4v": "video/mp4",
    "mov": "video/quicktime",
    "webm": "video/webm",
}


@dataclass
class ServerHandle:
    url: str
    port: int
    directory: str


def create_file_app(directory: str) -> Flask:
    app = Flask(__name__)
    app.config["SERVE_DIRECTORY"] = directory

    @app.route(f"{ROUTE_PREFIX}/<path:filename>", methods=["GET"])
    def get_video(filename):
        safe_name = secure_filename(os.path.basename(filename))
        file_path = os.path.join(app.config["SERVE_DIRECTORY"], safe_name)
        if not safe_name or not os.path.isfile(file_path):
            return jsonify({"error": "Video not found"}), 404

        ext = os.path.splitext(safe_name)[1].lower().lstrip(".")
        content_type = MIME_BY_EXT.get(ext) or mimetypes.guess_type(safe_name)[0] or "application/octet-stream"
        resp = send_file(file_path, mimetype=content_type, conditional=True)
        resp.headers["Accept-Ranges"] = "bytes"
        return resp

    return app


class LocalFileExposer:
    """One long-lived static file server per process, shared by every job."""

    def __init__(self, host: str = "localhost", port: int = 8787, bind_host: str = "127.0.0.1"):
        self.host = host
        self.port = port
        self.bind_host = bind_host
        self.handle: Optional[ServerHandle] = None
        self._server = None
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def server_base(self) -> str:
        return f"http://{self.host}:{self.port}"

    def start(self, directory: str) -> ServerHandle:
        with self._lock:
            if self.handle is not None:
                logger.info("File server already running on port %s", self.port)
                return self.handle
            os.makedirs(directory, exist_ok=True)
            app = create_file_app(os.path.abspath(directory))
            self._server = make_server(self.bind_host, self.port, app, threaded=True)
            # Port 0 asks the OS for a free port.
            self.port = self._server.server_port
            self._thread = threading.Thread(target=self._server.serve_forever, name="file-server", daemon=True)
            self._thread.start()
            self.handle = ServerHandle(url=self.server_base, port=self.port, directory=directory)
            logger.info("File server started on %s", self.server_base)
            return self.handle

    def url_for(self, path: Optional[str]) -> Optional[str]:
        if not path or is_remote_url(path):
            return path
        return f"{self.server_base}{ROUTE_PREFIX}/{os.path.basename(path)}"

    def stop(self) -> None:
        with self._lock:
            if self._server is None:
                return
            self._server.shutdown()
            self._server.server_close()
            if self._thread is not None:
                self._thread.join(timeout=5)
            self._server = None
            self._thread = None
            self.handle = None
            logger.info("File server shut down")
