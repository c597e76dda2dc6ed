"""Request store client. Talks to the Supabase PostgREST endpoint for ``generated_videos``."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import requests

from .render_engine.errors import StatusUpdateError
from .render_engine.schemas import (
    GenerationRequest,
    STATUS_COMPLETED,
    STATUS_ERROR,
    STATUS_PENDING,
    STATUS_PROCESSING,
)

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class RequestStore:
    def __init__(self, base_url: str, api_key: str, table: str = "generated_videos", timeout: int = 30):
        self.endpoint = f"{base_url.rstrip('/')}/rest/v1/{table}"
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        })

    @classmethod
    def from_settings(cls, settings) -> "RequestStore":
        settings.require_store()
        return cls(settings.supabase_url, settings.supabase_key, settings.requests_table)

    def fetch_row(self, request_id: str) -> Optional[Dict[str, Any]]:
        r = self.session.get(
            self.endpoint,
            params={"id": f"eq.{request_id}", "select": "*"},
            timeout=self.timeout,
        )
        if r.status_code == 404:
            return None
        r.raise_for_status()
        rows = r.json()
        return rows[0] if rows else None

    def fetch(self, request_id: str) -> Optional[GenerationRequest]:
        row = self.fetch_row(request_id)
        return GenerationRequest.from_row(row) if row else None

    def list_pending(self, limit: int = 20) -> List[Dict[str, Any]]:
        r = self.session.get(
            self.endpoint,
            params={
                "status": f"eq.{STATUS_PENDING}",
                "select": "*",
                "order": "created_at.asc",
                "limit": str(limit),
            },
            timeout=self.timeout,
        )
        r.raise_for_status()
        return r.json()

    def update(self, request_id: str, fields: Dict[str, Any]) -> None:
        try:
            r = self.session.patch(
                self.endpoint,
                params={"id": f"eq.{request_id}"},
                json=fields,
                headers={"Prefer": "return=minimal"},
                timeout=self.timeout,
            )
            r.raise_for_status()
        except requests.RequestException as e:
            raise StatusUpdateError(f"update of {request_id} failed: {e}") from e
        logger.info("Request %s updated: status=%s", request_id, fields.get("status"))

    def mark_processing(self, request_id: str) -> None:
        self.update(request_id, processing_fields())

    def mark_completed(self, request_id: str, result_url: str) -> None:
        self.update(request_id, completed_fields(result_url))

    def mark_error(self, request_id: str, error: Any) -> None:
        self.update(request_id, failed_fields(STATUS_ERROR, error))

    def mark_pending(self, request_id: str, error: Any = None) -> None:
        self.update(request_id, failed_fields(STATUS_PENDING, error))


# Column payloads. completed_at and remotion_video are only ever non-null together
# with status=completed.

def processing_fields() -> Dict[str, Any]:
    return {"status": STATUS_PROCESSING, "completed_at": None, "remotion_video": None}


def completed_fields(result_url: str) -> Dict[str, Any]:
    return {
        "status": STATUS_COMPLETED,
        "remotion_video": result_url,
        "error": None,
        "completed_at": _now(),
    }


def failed_fields(status: str, error: Any) -> Dict[str, Any]:
    return {"status": status, "error": error, "completed_at": None, "remotion_video": None}
