"""Resolve request flags into a concrete composition."""

from typing import Any, Dict, Optional

from .errors import ValidationError
from .schemas import (
    CompositionSpec,
    DEFAULT_CAPTION,
    Durations,
    GenerationRequest,
    LayoutPlan,
    LAYOUT_SEQUENTIAL,
    LAYOUT_SINGLE,
    LAYOUT_SPLIT,
    SPLIT_ORIENTATIONS,
)

ALIGNMENT_TO_ORIENTATION = {
    "side": "right-left",
    "top": "bottom-top",
}

TEXT_POSITIONS = ("top", "center", "bottom")


def text_position(alignment: Optional[str]) -> str:
    return alignment if alignment in TEXT_POSITIONS else "bottom"


def plan_layout(request: GenerationRequest) -> LayoutPlan:
    """Pick the layout mode and split orientation, failing fast on bad input."""
    if request.video_alignment == "serial":
        return LayoutPlan(layout_mode=LAYOUT_SEQUENTIAL)
    if not request.media_refs.demo:
        return LayoutPlan(layout_mode=LAYOUT_SINGLE)

    orientation = ALIGNMENT_TO_ORIENTATION.get(request.video_alignment or "")
    if orientation not in SPLIT_ORIENTATIONS:
        raise ValidationError(
            f"Invalid split orientation for video_alignment={request.video_alignment!r}. "
            f"Must resolve to one of: {', '.join(SPLIT_ORIENTATIONS)}"
        )
    return LayoutPlan(layout_mode=LAYOUT_SPLIT, split_orientation=orientation)


def compose(
    request: GenerationRequest,
    durations: Durations,
    primary_source: Optional[str] = None,
    secondary_source: Optional[str] = None,
    plan: Optional[LayoutPlan] = None,
) -> CompositionSpec:
    """Build the CompositionSpec. Sources default to the request's own URLs."""
    plan = plan or plan_layout(request)
    refs = request.media_refs
    audio = refs.sound or None
    return CompositionSpec(
        title_text=request.caption_text,
        text_position=text_position(request.text_alignment),
        primary_source=primary_source or refs.template,
        secondary_source=secondary_source or refs.demo,
        audio_source=audio,
        audio_offset_seconds=refs.audio_offset_seconds,
        enable_audio=audio is not None,
        layout_mode=plan.layout_mode,
        split_orientation=plan.split_orientation,
        first_segment_duration_seconds=durations.first_segment_seconds,
        total_duration_seconds=durations.total_seconds,
    )


DEFAULT_DIRECT_DURATION = 10


def compose_from_props(props: Dict[str, Any]) -> CompositionSpec:
    """CompositionSpec from caller-supplied render props (camelCase keys, explicit URLs)."""
    split_screen = bool(props.get("splitScreen"))
    split_position = props.get("splitPosition")
    if split_screen and split_position not in SPLIT_ORIENTATIONS:
        raise ValidationError(
            f"Invalid splitPosition value. Must be one of: {', '.join(SPLIT_ORIENTATIONS)}"
        )

    demo = props.get("demoVideoSourceUrl") or None
    audio = props.get("audioSourceUrl") or None
    duration = props.get("durationInSeconds") or DEFAULT_DIRECT_DURATION
    split = split_screen and demo is not None
    return CompositionSpec(
        title_text=props.get("titleText") or DEFAULT_CAPTION,
        text_position=text_position(props.get("textPosition")),
        primary_source=props.get("videoSourceUrl") or None,
        secondary_source=demo if split else None,
        audio_source=audio,
        audio_offset_seconds=float(props.get("audioOffsetInSeconds") or 0),
        enable_audio=audio is not None,
        layout_mode=LAYOUT_SPLIT if split else LAYOUT_SINGLE,
        split_orientation=split_position if split else None,
        first_segment_duration_seconds=duration,
        total_duration_seconds=duration,
    )
