import pytest

from ugclive.render_engine.errors import ValidationError
from ugclive.render_engine.layout import compose, plan_layout, text_position
from ugclive.render_engine.schemas import Durations, GenerationRequest, MediaRefs


def _request(alignment=None, demo="https://cdn/demo.mp4", sound=None, text="bottom"):
    return GenerationRequest(
        id="req-1",
        caption_text="Caption",
        text_alignment=text,
        video_alignment=alignment,
        media_refs=MediaRefs(template="https://cdn/t.mp4", demo=demo, sound=sound, audio_offset_seconds=2.5),
    )


def test_side_alignment_maps_to_right_left():
    plan = plan_layout(_request("side"))
    assert plan.layout_mode == "split"
    assert plan.split_orientation == "right-left"


def test_top_alignment_maps_to_bottom_top():
    plan = plan_layout(_request("top"))
    assert plan.split_orientation == "bottom-top"


@pytest.mark.parametrize("alignment", ["bottom", None, "diagonal"])
def test_unrecognised_split_alignment_is_rejected(alignment):
    with pytest.raises(ValidationError):
        plan_layout(_request(alignment))


def test_serial_alignment_is_sequential_without_orientation():
    plan = plan_layout(_request("serial"))
    assert plan.layout_mode == "sequential"
    assert plan.split_orientation is None


def test_no_secondary_is_single_layout():
    plan = plan_layout(_request("bottom", demo=None))
    assert plan.layout_mode == "single"


@pytest.mark.parametrize("value,expected", [
    ("top", "top"), ("center", "center"), ("bottom", "bottom"), (None, "bottom"), ("left", "bottom"),
])
def test_text_position_lookup(value, expected):
    assert text_position(value) == expected


def test_compose_aggregates_request_and_durations():
    spec = compose(
        _request("side", sound="https://cdn/song.mp3", text="top"),
        Durations(first_segment_seconds=6, total_seconds=8),
        primary_source="http://localhost:8787/videos/temp.mp4",
    )
    assert spec.layout_mode == "split"
    assert spec.split_orientation == "right-left"
    assert spec.primary_source == "http://localhost:8787/videos/temp.mp4"
    assert spec.secondary_source == "https://cdn/demo.mp4"
    assert spec.enable_audio is True
    assert spec.audio_offset_seconds == 2.5
    assert spec.text_position == "top"
    assert spec.total_duration_seconds == 8
    assert spec.to_dict()["title_text"] == "Caption"


def test_compose_without_audio_disables_audio():
    spec = compose(_request("serial"), Durations(10, 18))
    assert spec.enable_audio is False
    assert spec.audio_source is None
    assert spec.first_segment_duration_seconds == 10
