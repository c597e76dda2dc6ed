from __future__ import annotations

from concurrent.futures import Future
from dataclasses import dataclass, field, asdict
from typing import Optional, Dict, Any
import time


STATUS_PENDING = "pending"
STATUS_PROCESSING = "processing"
STATUS_COMPLETED = "completed"
STATUS_ERROR = "error"

LAYOUT_SINGLE = "single"
LAYOUT_SPLIT = "split"
LAYOUT_SEQUENTIAL = "sequential"

SPLIT_ORIENTATIONS = ("left-right", "right-left", "top-bottom", "bottom-top")

# Orchestrator states, in pipeline order.
JOB_STATES = (
    "received",
    "normalizing",
    "resolving-duration",
    "composing",
    "rendering",
    "publishing",
    "completed",
    "error",
)

DEFAULT_CAPTION = "Default Title"


@dataclass
class MediaRefs:
    template: Optional[str] = None
    demo: Optional[str] = None
    sound: Optional[str] = None
    audio_offset_seconds: float = 0.0
    caption: Optional[str] = None

    @classmethod
    def from_json(cls, blob: Optional[Dict[str, Any]]) -> "MediaRefs":
        blob = blob or {}
        try:
            offset = float(blob.get("audio_offset") or 0)
        except (TypeError, ValueError):
            offset = 0.0
        return cls(
            template=blob.get("template") or None,
            demo=blob.get("demo") or None,
            sound=blob.get("sound") or None,
            audio_offset_seconds=offset,
            caption=blob.get("caption"),
        )


@dataclass
class GenerationRequest:
    id: str
    status: str = STATUS_PENDING
    caption_text: str = DEFAULT_CAPTION
    text_alignment: str = "bottom"
    video_alignment: Optional[str] = None
    video_type: Optional[str] = None
    media_refs: MediaRefs = field(default_factory=MediaRefs)
    result_url: Optional[str] = None
    error: Optional[Dict[str, Any]] = None
    created_at: Optional[str] = None
    completed_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "GenerationRequest":
        """Build a request from a ``generated_videos`` row as returned by the store."""
        refs = MediaRefs.from_json(row.get("remotion"))
        caption = refs.caption or row.get("caption") or DEFAULT_CAPTION
        return cls(
            id=str(row["id"]),
            status=row.get("status") or STATUS_PENDING,
            caption_text=caption,
            text_alignment=row.get("text_alignment") or "bottom",
            video_alignment=row.get("video_alignment"),
            video_type=row.get("video_type"),
            media_refs=refs,
            result_url=row.get("remotion_video"),
            error=row.get("error"),
            created_at=row.get("created_at"),
            completed_at=row.get("completed_at"),
        )


@dataclass
class LayoutPlan:
    layout_mode: str
    split_orientation: Optional[str] = None


@dataclass
class Durations:
    first_segment_seconds: int
    total_seconds: int


@dataclass
class CompositionSpec:
    title_text: str
    text_position: str
    primary_source: Optional[str]
    secondary_source: Optional[str]
    audio_source: Optional[str]
    audio_offset_seconds: float
    enable_audio: bool
    layout_mode: str
    split_orientation: Optional[str]
    first_segment_duration_seconds: int
    total_duration_seconds: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class TempArtifact:
    path: str
    job_id: str


@dataclass
class EffectiveSource:
    url: str
    artifact: Optional[TempArtifact] = None


@dataclass
class RenderJob:
    id: str
    request: GenerationRequest
    enqueued_at: float = field(default_factory=lambda: time.time())
    updated_at: float = field(default_factory=lambda: time.time())
    state: str = "received"
    error: Optional[str] = None
    result_url: Optional[str] = None
    future: "Future[None]" = field(default_factory=Future, repr=False)

    def advance(self, state: str) -> None:
        self.state = state
        self.updated_at = time.time()

    def summary(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "state": self.state,
            "enqueued_at": self.enqueued_at,
            "updated_at": self.updated_at,
            "error": self.error,
            "result_url": self.result_url,
        }
