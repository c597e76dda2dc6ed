import logging
import queue
import threading
from concurrent.futures import Future
from typing import Callable, Dict, List, Optional

from .schemas import GenerationRequest, RenderJob

logger = logging.getLogger(__name__)

_STOP = object()


class RenderScheduler:
    """FIFO job queue drained by a fixed pool of worker threads.

    Each worker takes the next job, runs it to completion and only then asks
    for another, so at most ``concurrency`` jobs execute at once. There is no
    de-duplication: two enqueues for the same id are two independent jobs.
    """

    def __init__(self, handler: Callable[[RenderJob], None], concurrency: int = 2):
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self.handler = handler
        self.concurrency = concurrency
        self.jobs: Dict[str, RenderJob] = {}
        self.q: "queue.Queue[object]" = queue.Queue()
        self.threads: List[threading.Thread] = []
        self._lock = threading.Lock()
        self._running = 0
        self._pending = 0
        self._stopped = False

    def start(self) -> None:
        with self._lock:
            if any(t.is_alive() for t in self.threads):
                return
            self._stopped = False
            self.threads = [
                threading.Thread(target=self._run, name=f"render-worker-{i}", daemon=True)
                for i in range(self.concurrency)
            ]
        for t in self.threads:
            t.start()
        logger.info("Render scheduler started with %d slots", self.concurrency)

    def stop(self, wait: bool = True, timeout: Optional[float] = None) -> None:
        with self._lock:
            self._stopped = True
            threads = list(self.threads)
        for _ in threads:
            self.q.put(_STOP)
        if wait:
            for t in threads:
                t.join(timeout)

    def enqueue(self, job_id: str, request: GenerationRequest) -> "Future[None]":
        with self._lock:
            if self._stopped:
                raise RuntimeError("scheduler is stopped")
            job = RenderJob(id=job_id, request=request)
            self.jobs[job_id] = job
            self._pending += 1
        self.q.put(job)
        logger.info("Queued render job %s (queue=%d)", job_id, self._pending)
        return job.future

    def get(self, job_id: str) -> Optional[RenderJob]:
        return self.jobs.get(job_id)

    def status(self) -> Dict[str, int]:
        with self._lock:
            return {"queueLength": self._pending, "runningJobs": self._running}

    def _run(self) -> None:
        while True:
            item = self.q.get()
            if item is _STOP:
                return
            job: RenderJob = item  # type: ignore[assignment]
            with self._lock:
                self._pending -= 1
                self._running += 1
            try:
                self.handler(job)
                job.future.set_result(None)
            except Exception as e:
                logger.exception("Render job %s raised past the orchestrator", job.id)
                job.future.set_exception(e)
            finally:
                with self._lock:
                    self._running -= 1
