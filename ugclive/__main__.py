#!/usr/bin/env python3
"""
Entry point.

    python -m ugclive serve              # local scheduler + HTTP intake
    python -m ugclive trigger-remote ID  # push one request to the remote worker
    python -m ugclive remote-worker      # serve the remote worker handler locally
"""

import argparse
import json
import logging
import signal
import sys

from .config import Settings, configure_logging
from .render_engine.errors import ConfigError

logger = logging.getLogger("ugclive")


def cmd_serve(settings: Settings) -> int:
    from . import backend
    from .file_server import LocalFileExposer
    from .notifier import PendingPoller
    from .remote.invoker import RemoteWorkerInvoker
    from .render_engine.media import CodecNormalizer
    from .render_engine.orchestrator import JobOrchestrator
    from .render_engine.render import FfmpegRenderer
    from .render_engine.worker import RenderScheduler
    from .storage import SupabaseStorage
    from .store import RequestStore

    store = RequestStore.from_settings(settings)
    storage = SupabaseStorage.from_settings(settings)

    exposer = LocalFileExposer(host=settings.file_server_host, port=settings.file_server_port)
    exposer.start(settings.output_dir)

    renderer = FfmpegRenderer(debug_props=settings.render_debug_props)
    orchestrator = JobOrchestrator(
        store,
        storage,
        exposer,
        settings.output_dir,
        normalizer=CodecNormalizer(settings.output_dir),
        renderer=renderer,
        render_timeout=settings.render_timeout,
    )
    scheduler = RenderScheduler(orchestrator, concurrency=settings.concurrency)
    scheduler.start()

    invoker = None
    if settings.remote_worker_url:
        invoker = RemoteWorkerInvoker.from_settings(settings, store)

    poller = None
    if settings.poll_interval > 0:
        poller = PendingPoller(store, scheduler, interval=settings.poll_interval)
        poller.start()

    def _shutdown(signum, frame):
        logger.info("Server shutdown initiated...")
        if poller:
            poller.stop()
        scheduler.stop(wait=False)
        exposer.stop()
        sys.exit(0)

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    app = backend.configure(
        scheduler,
        store,
        invoker,
        renderer=renderer,
        storage=storage,
        output_dir=settings.output_dir,
        render_timeout=settings.render_timeout,
    )
    logger.info("Server running at http://%s:%s", settings.host, settings.port)
    app.run(host=settings.host, port=settings.port, threaded=True)
    return 0


def cmd_trigger_remote(settings: Settings, request_id: str) -> int:
    from .remote.invoker import RemoteWorkerInvoker
    from .store import RequestStore

    store = RequestStore.from_settings(settings)
    result = RemoteWorkerInvoker.from_settings(settings, store).trigger(request_id)
    print(json.dumps(result.to_dict(), indent=2))
    return 0 if result.success else 1


def cmd_remote_worker(settings: Settings, port: int) -> int:
    from .remote.worker import create_worker_app

    app = create_worker_app()
    logger.info("Remote worker listening on port %s", port)
    app.run(host=settings.host, port=port)
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="ugclive", description="Short-video render service")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("serve", help="Run the local render scheduler and HTTP API")
    trigger = sub.add_parser("trigger-remote", help="Send one request to the remote worker")
    trigger.add_argument("id", help="generation request id")
    worker = sub.add_parser("remote-worker", help="Serve the remote worker handler")
    worker.add_argument("--port", type=int, default=9000)
    args = parser.parse_args(argv)

    settings = Settings.from_env()
    configure_logging(settings.log_level)
    try:
        if args.command == "serve":
            return cmd_serve(settings)
        if args.command == "trigger-remote":
            return cmd_trigger_remote(settings, args.id)
        return cmd_remote_worker(settings, args.port)
    except ConfigError as e:
        logger.error("%s", e)
        return 2


if __name__ == "__main__":
    sys.exit(main())
