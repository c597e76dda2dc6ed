import logging
import threading
from typing import Optional, Set

from .render_engine.schemas import GenerationRequest

logger = logging.getLogger(__name__)


class PendingPoller:
    """
    Stands in for the insert-event subscription: enqueues each pending row once.
    An id is only remembered while its job is queued or running.
    """

    def __init__(self, store, scheduler, interval: float = 5.0, batch_size: int = 20):
        self.store = store
        self.scheduler = scheduler
        self.interval = interval
        self.batch_size = batch_size
        self.seen: Set[str] = set()
        self._seen_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="pending-poller", daemon=True)
        self._thread.start()
        logger.info("Subscription established, polling for new requests every %ss", self.interval)

    def stop(self) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout=self.interval + 1)

    def poll_once(self) -> int:
        queued = 0
        for row in self.store.list_pending(limit=self.batch_size):
            request_id = str(row.get("id"))
            with self._seen_lock:
                if request_id in self.seen:
                    continue
                self.seen.add(request_id)
            logger.info("New video generation request received: %s", request_id)
            future = self.scheduler.enqueue(request_id, GenerationRequest.from_row(row))
            future.add_done_callback(lambda f, rid=request_id: self._forget(rid))
            queued += 1
        return queued

    def _forget(self, request_id: str) -> None:
        with self._seen_lock:
            self.seen.discard(request_id)

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self.poll_once()
            except Exception as e:
                logger.error("Polling for new requests failed: %s", e)
            self._stop.wait(self.interval)
