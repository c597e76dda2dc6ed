import os

import pytest

from ugclive.render_engine import media
from ugclive.render_engine.errors import NetworkError, ProbeError, TranscodeError
from ugclive.render_engine.media import CodecNormalizer

SOURCE = "https://cdn.example.com/clip.mp4"


def _writing_transcoder(calls):
    def transcoder(source, out_path):
        calls.append((source, out_path))
        with open(out_path, "wb") as f:
            f.write(b"\x00" * 64)
        return out_path
    return transcoder


def test_hevc_source_is_transcoded(temp_output_dir):
    calls = []
    normalizer = CodecNormalizer(temp_output_dir, codec_probe=lambda url: "hevc", transcoder=_writing_transcoder(calls))
    result = normalizer.normalize(SOURCE, "req-1", "main")
    assert result.url != SOURCE
    assert result.artifact is not None
    assert result.artifact.job_id == "req-1"
    assert "req-1" in os.path.basename(result.url)
    assert os.path.exists(result.url)
    assert calls == [(SOURCE, result.url)]


def test_h264_source_is_returned_unchanged(temp_output_dir):
    calls = []
    normalizer = CodecNormalizer(temp_output_dir, codec_probe=lambda url: "h264", transcoder=_writing_transcoder(calls))
    result = normalizer.normalize(SOURCE, "req-1", "main")
    assert result.url == SOURCE
    assert result.artifact is None
    assert calls == []


def test_probe_failure_transcodes_to_be_safe(temp_output_dir):
    def failing_probe(url):
        raise ProbeError("ffprobe missing")

    calls = []
    normalizer = CodecNormalizer(temp_output_dir, codec_probe=failing_probe, transcoder=_writing_transcoder(calls))
    result = normalizer.normalize(SOURCE, "req-1", "main")
    assert result.url != SOURCE
    assert len(calls) == 1


def test_transcode_failure_falls_back_to_original(temp_output_dir):
    def failing_transcoder(source, out_path):
        raise TranscodeError("encoder crashed")

    normalizer = CodecNormalizer(temp_output_dir, codec_probe=lambda url: "hevc", transcoder=failing_transcoder)
    result = normalizer.normalize(SOURCE, "req-1", "main")
    assert result.url == SOURCE
    assert result.artifact is None


def test_missing_source_is_none(temp_output_dir):
    normalizer = CodecNormalizer(temp_output_dir, codec_probe=lambda url: "hevc")
    assert normalizer.normalize(None, "req-1", "demo") is None


def test_probe_codec_reads_first_line(mocker):
    mocker.patch.object(media, "run_tool", return_value="HEVC\n")
    assert media.probe_codec(SOURCE) == "hevc"


def test_probe_codec_wraps_tool_errors(mocker):
    mocker.patch.object(media, "run_tool", side_effect=RuntimeError("ffprobe failed"))
    with pytest.raises(ProbeError):
        media.probe_codec(SOURCE)


def test_probe_duration_floors_seconds(mocker):
    mocker.patch.object(media, "run_tool", return_value="12.96\n")
    assert media.probe_duration(SOURCE) == 12


def test_probe_duration_rejects_unparsable_output(mocker):
    mocker.patch.object(media, "run_tool", return_value="N/A\n")
    with pytest.raises(ProbeError):
        media.probe_duration(SOURCE)


def test_transcode_failure_removes_partial_output(mocker, temp_output_dir):
    out_path = os.path.join(temp_output_dir, "partial.mp4")

    def fail(cmd, timeout=None):
        with open(out_path, "wb") as f:
            f.write(b"partial")
        raise RuntimeError("ffmpeg failed (code 1)")

    mocker.patch.object(media, "run_tool", side_effect=fail)
    with pytest.raises(TranscodeError):
        media.transcode(SOURCE, out_path)
    assert not os.path.exists(out_path)


def test_transcode_uses_normalized_format(mocker, temp_output_dir):
    out_path = os.path.join(temp_output_dir, "out.mp4")

    def fake_run(cmd, timeout=None):
        with open(out_path, "wb") as f:
            f.write(b"data")
        return ""

    run = mocker.patch.object(media, "run_tool", side_effect=fake_run)
    media.transcode(SOURCE, out_path)
    cmd = run.call_args[0][0]
    assert cmd[cmd.index("-c:v") + 1] == "libx264"
    assert cmd[cmd.index("-c:a") + 1] == "aac"
    assert cmd[-1] == out_path


def test_download_copies_local_file(temp_output_dir):
    src = os.path.join(temp_output_dir, "src.mp4")
    with open(src, "wb") as f:
        f.write(b"video-bytes")
    dest = os.path.join(temp_output_dir, "nested", "copy.mp4")
    assert media.download(src, dest) == dest
    assert os.path.getsize(dest) == len(b"video-bytes")


def test_download_rejects_empty_file(temp_output_dir):
    src = os.path.join(temp_output_dir, "empty.mp4")
    open(src, "wb").close()
    with pytest.raises(NetworkError):
        media.download(src, os.path.join(temp_output_dir, "copy.mp4"))


def test_download_http_errors_become_network_errors(mocker, temp_output_dir):
    import requests

    mocker.patch.object(media.requests, "get", side_effect=requests.ConnectionError("refused"))
    with pytest.raises(NetworkError):
        media.download("https://cdn.example.com/x.mp4", os.path.join(temp_output_dir, "x.mp4"))
