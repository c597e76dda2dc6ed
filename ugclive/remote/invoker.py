"""Pushes a whole job to the remote worker over HTTP, retrying with exponential backoff."""

import logging
import time
from dataclasses import dataclass, asdict
from typing import Any, Callable, Dict, List, Optional

import httpx

from ..render_engine.errors import NetworkError, StatusUpdateError
from ..render_engine.orchestrator import error_detail
from ..render_engine.schemas import STATUS_PENDING

logger = logging.getLogger(__name__)


def backoff_delays(max_retries: int, base: float = 1.0) -> List[float]:
    """Seconds to wait before each attempt: 0 first, then base * 2**(n-1)."""
    return [0.0 if attempt == 0 else base * (2 ** (attempt - 1)) for attempt in range(max_retries)]


@dataclass
class InvokeResult:
    success: bool
    id: str
    video_url: Optional[str] = None
    error: Optional[str] = None
    attempts: int = 0
    not_found: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class RemoteWorkerInvoker:
    def __init__(
        self,
        store,
        endpoint: str,
        timeout: float = 15.0,
        max_retries: int = 3,
        backoff_base: float = 1.0,
        failure_status: str = STATUS_PENDING,
        client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.store = store
        self.endpoint = endpoint
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.backoff_base = backoff_base
        self.failure_status = failure_status
        self.client = client or httpx.Client(timeout=timeout, follow_redirects=True)
        self.sleep = sleep

    @classmethod
    def from_settings(cls, settings, store) -> "RemoteWorkerInvoker":
        settings.require_remote_worker()
        return cls(
            store,
            settings.remote_worker_url,
            timeout=settings.remote_timeout,
            max_retries=settings.max_retries,
            backoff_base=settings.backoff_base,
            failure_status=settings.remote_failure_status,
        )

    def trigger(self, request_id: str) -> InvokeResult:
        row = self.store.fetch_row(request_id)
        if row is None:
            return InvokeResult(success=False, id=request_id, error="Record not found", not_found=True)

        try:
            self.store.mark_processing(request_id)
        except StatusUpdateError as e:
            logger.error("Failed to mark %s as processing: %s", request_id, e)

        payload = {"id": request_id, "data": row}
        last_error: Optional[Exception] = None
        attempts = 0
        for delay in backoff_delays(self.max_retries, self.backoff_base):
            if delay:
                logger.info("Retrying remote worker for %s in %.1fs", request_id, delay)
                self.sleep(delay)
            attempts += 1
            try:
                body = self._post(payload)
            except NetworkError as e:
                last_error = e
                logger.warning("Remote worker attempt %d/%d for %s failed: %s",
                               attempts, self.max_retries, request_id, e)
                continue

            if body.get("success"):
                logger.info("Remote worker finished %s: %s", request_id, body.get("videoUrl"))
                return InvokeResult(success=True, id=request_id, video_url=body.get("videoUrl"), attempts=attempts)
            # The worker ran and reported a failure; retrying would repeat the same work.
            last_error = NetworkError(f"remote worker reported failure: {body.get('error')}")
            break

        self._revert(request_id, last_error)
        return InvokeResult(success=False, id=request_id, error=str(last_error), attempts=attempts)

    def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            r = self.client.post(self.endpoint, json=payload, timeout=self.timeout)
        except httpx.HTTPError as e:
            raise NetworkError(f"{type(e).__name__}: {e}") from e
        try:
            body = r.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and "success" in body:
            return body
        if r.status_code >= 400:
            raise NetworkError(f"HTTP {r.status_code} | body: {r.text[:500]}")
        raise NetworkError(f"unexpected response from remote worker: {r.text[:500]}")

    def _revert(self, request_id: str, exc: Optional[Exception]) -> None:
        detail = error_detail(exc) if exc else None
        try:
            if self.failure_status == STATUS_PENDING:
                self.store.mark_pending(request_id, detail)
            else:
                self.store.mark_error(request_id, detail)
        except StatusUpdateError as e:
            logger.error("Failed to revert status for %s: %s", request_id, e)
