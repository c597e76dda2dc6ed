"""Per-job pipeline: normalize -> resolve durations -> compose -> render -> publish -> report."""

import logging
import os
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional

from .durations import resolve_durations
from .errors import StatusUpdateError, UploadError
from .layout import compose, plan_layout
from .media import CodecNormalizer, probe_duration
from .render import FfmpegRenderer
from .schemas import RenderJob, TempArtifact
from .utils import ensure_dir, epoch_ms, remove_quietly

logger = logging.getLogger(__name__)

DEFAULT_RENDER_TIMEOUT = 900  # 15 minutes


def error_detail(exc: BaseException) -> dict:
    return {
        "message": str(exc),
        "stack": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


class JobOrchestrator:
    """Runs one render job end to end. Never raises past ``run``."""

    def __init__(
        self,
        store,
        storage,
        exposer,
        output_dir: str,
        normalizer: Optional[CodecNormalizer] = None,
        renderer=None,
        duration_probe: Callable[[str], int] = probe_duration,
        render_timeout: float = DEFAULT_RENDER_TIMEOUT,
    ):
        self.store = store
        self.storage = storage
        self.exposer = exposer
        self.output_dir = output_dir
        self.normalizer = normalizer or CodecNormalizer(output_dir)
        self.renderer = renderer or FfmpegRenderer()
        self.duration_probe = duration_probe
        self.render_timeout = render_timeout
        ensure_dir(output_dir)

    def __call__(self, job: RenderJob) -> None:
        self.run(job)

    def run(self, job: RenderJob) -> None:
        request = job.request
        job_id = job.id
        temp_files: List[TempArtifact] = []
        output_path: Optional[str] = None
        logger.info("Processing video generation for ID: %s", job_id)

        self._report(job_id, self.store.mark_processing, job_id)
        try:
            plan = plan_layout(request)

            job.advance("normalizing")
            refs = request.media_refs
            primary = self._normalize(refs.template, job_id, "main", temp_files)
            secondary = self._normalize(refs.demo, job_id, "demo", temp_files)

            primary_url = self.exposer.url_for(primary.url) if primary else None
            secondary_url = self.exposer.url_for(secondary.url) if secondary else None

            job.advance("resolving-duration")
            durations = resolve_durations(
                primary_url,
                secondary_url,
                plan.layout_mode,
                plan.split_orientation,
                probe=self.duration_probe,
            )

            job.advance("composing")
            spec = compose(request, durations, primary_url, secondary_url, plan=plan)

            job.advance("rendering")
            output_name = f"video-{job_id}-{epoch_ms()}.mp4"
            output_path = str(Path(self.output_dir) / output_name)
            logger.info("Starting render video - %s (%s layout)", job_id, spec.layout_mode)
            self.renderer.render(
                spec,
                output_path,
                timeout=self.render_timeout,
                on_progress=self._progress_logger(job_id),
            )

            job.advance("publishing")
            public_url = self.storage.upload(output_path, output_name)
            if not public_url:
                raise UploadError(f"storage returned no URL for {output_name}")
            logger.info("Video uploaded for %s: %s", job_id, public_url)

            self._report(job_id, self.store.mark_completed, job_id, public_url)
            job.result_url = public_url
            job.advance("completed")
        except Exception as e:
            logger.exception("Error in video generation for %s", job_id)
            job.error = str(e)
            job.advance("error")
            self._report(job_id, self.store.mark_error, job_id, error_detail(e))
        finally:
            self._cleanup(job_id, temp_files, output_path)

    def _normalize(self, url, job_id: str, label: str, temp_files: List[TempArtifact]):
        source = self.normalizer.normalize(url, job_id, label)
        if source is not None and source.artifact is not None:
            temp_files.append(source.artifact)
        return source

    def _report(self, job_id: str, update, *args) -> None:
        try:
            update(*args)
        except StatusUpdateError as e:
            # The row may now disagree with the job outcome.
            logger.error("Failed to update status for %s: %s", job_id, e)

    def _cleanup(self, job_id: str, temp_files: List[TempArtifact], output_path: Optional[str]) -> None:
        for artifact in temp_files:
            remove_quietly(artifact.path, logger)
        if output_path and os.path.exists(output_path):
            remove_quietly(output_path, logger)
        logger.debug("Cleanup finished for %s", job_id)

    @staticmethod
    def _progress_logger(job_id: str) -> Callable[[float], None]:
        last = {"step": 0}

        def _on_progress(fraction: float) -> None:
            step = int(fraction * 4)
            if step > last["step"]:
                last["step"] = step
                logger.info("Rendering progress video %s: %d%%", job_id, step * 25)

        return _on_progress
