"""
ffmpeg-backed rendering engine. Turns a CompositionSpec into a 1080x1920 H.264/AAC MP4.
"""

import logging
import os
import subprocess
import threading
from pathlib import Path
from typing import Callable, List, Optional

from .caption import render_caption_png
from .errors import RenderError
from .media import has_audio_stream
from .schemas import CompositionSpec, LAYOUT_SEQUENTIAL, LAYOUT_SPLIT
from .utils import ensure_dir, ffmpeg_bin, write_json

logger = logging.getLogger(__name__)

WIDTH = 1080
HEIGHT = 1920
FPS = 30
MUSIC_VOLUME = 0.12

ProgressCallback = Callable[[float], None]


def _fit(label_in: str, label_out: str, w: int, h: int) -> str:
    return (
        f"[{label_in}]scale={w}:{h}:force_original_aspect_ratio=increase,"
        f"crop={w}:{h},setsar=1,fps={FPS}[{label_out}]"
    )


def _program_audio(index: int, has_audio: bool, label: str, seconds: float) -> str:
    if has_audio:
        return f"[{index}:a]aresample=48000,aformat=channel_layouts=stereo[{label}]"
    return f"aevalsrc=0:channel_layout=stereo:sample_rate=48000:duration={seconds:.3f}[{label}]"


def _overlay_caption(caption_index: int, enable_until: Optional[float] = None) -> str:
    overlay = f"[base][{caption_index}:v]overlay=x=0:y=0:eof_action=repeat"
    if enable_until is not None:
        overlay += f":enable='lt(t,{enable_until:.3f})'"
    return f"{overlay}[vout]"


def _uses_two_clips(spec: CompositionSpec) -> bool:
    return spec.layout_mode in (LAYOUT_SEQUENTIAL, LAYOUT_SPLIT) and bool(spec.secondary_source)


def build_filter_graph(
    spec: CompositionSpec,
    primary_has_audio: bool = True,
    secondary_has_audio: bool = True,
) -> str:
    """
    Filter graph producing [vout] and [aout]. Inputs are the primary clip, the secondary
    clip when the layout uses one, the caption image, then the music track.
    """
    total = float(spec.total_duration_seconds)
    filters: List[str] = []
    sequential = spec.layout_mode == LAYOUT_SEQUENTIAL and bool(spec.secondary_source)
    split = spec.layout_mode == LAYOUT_SPLIT and bool(spec.secondary_source)
    caption_index = 2 if _uses_two_clips(spec) else 1

    if sequential:
        first = float(spec.first_segment_duration_seconds)
        rest = max(total - first, 0.0)
        filters.append(_fit("0:v", "v0", WIDTH, HEIGHT))
        filters.append(f"[v0]trim=duration={first:.3f},setpts=PTS-STARTPTS[v0t]")
        filters.append(_fit("1:v", "v1", WIDTH, HEIGHT))
        filters.append(_program_audio(0, primary_has_audio, "a0", first))
        filters.append(f"[a0]atrim=duration={first:.3f},asetpts=PTS-STARTPTS[a0t]")
        filters.append(_program_audio(1, secondary_has_audio, "a1", rest))
        filters.append("[v0t][a0t][v1][a1]concat=n=2:v=1:a=1[base][prog]")
        filters.append(_overlay_caption(caption_index, enable_until=first))
    elif split:
        if spec.split_orientation in ("left-right", "right-left"):
            pane_w, pane_h, stack = WIDTH // 2, HEIGHT, "hstack"
        else:
            pane_w, pane_h, stack = WIDTH, HEIGHT // 2, "vstack"
        filters.append(_fit("0:v", "p0", pane_w, pane_h))
        filters.append(_fit("1:v", "p1", pane_w, pane_h))
        # right-left / bottom-top put the primary clip in the second pane.
        reverse = spec.split_orientation in ("right-left", "bottom-top")
        panes = "[p1][p0]" if reverse else "[p0][p1]"
        filters.append(f"{panes}{stack}=inputs=2[base]")
        filters.append(_overlay_caption(caption_index))
        # Secondary pane is muted.
        filters.append(_program_audio(0, primary_has_audio, "a0", total))
        filters.append("[a0]apad[prog]")
    else:
        filters.append(_fit("0:v", "base", WIDTH, HEIGHT))
        filters.append(_overlay_caption(caption_index))
        filters.append(_program_audio(0, primary_has_audio, "a0", total))
        filters.append("[a0]apad[prog]")

    if spec.enable_audio and spec.audio_source:
        filters.append(
            f"[{caption_index + 1}:a]aresample=48000,aformat=channel_layouts=stereo,"
            f"volume={MUSIC_VOLUME}[mus]"
        )
        filters.append("[prog][mus]amix=inputs=2:duration=first:normalize=0[aout]")
    else:
        filters.append("[prog]anull[aout]")
    return ";".join(filters)


def build_command(
    spec: CompositionSpec,
    output_path: str,
    caption_image: str,
    primary_has_audio: bool = True,
    secondary_has_audio: bool = True,
) -> List[str]:
    if not spec.primary_source:
        raise RenderError("composition has no primary source")

    cmd = [ffmpeg_bin(), "-y", "-nostdin", "-hide_banner", "-loglevel", "error"]
    cmd += ["-i", spec.primary_source]
    if _uses_two_clips(spec):
        cmd += ["-i", spec.secondary_source]
    cmd += ["-i", caption_image]
    if spec.enable_audio and spec.audio_source:
        if spec.audio_offset_seconds:
            cmd += ["-ss", f"{spec.audio_offset_seconds:.3f}"]
        cmd += ["-i", spec.audio_source]

    cmd += [
        "-filter_complex",
        build_filter_graph(spec, primary_has_audio, secondary_has_audio),
        "-map", "[vout]",
        "-map", "[aout]",
        "-t", f"{float(spec.total_duration_seconds):.3f}",
        "-r", str(FPS),
        "-c:v", "libx264",
        "-preset", "veryfast",
        "-crf", "18",
        "-pix_fmt", "yuv420p",
        "-c:a", "aac",
        "-b:a", "192k",
        "-movflags", "+faststart",
        "-progress", "pipe:1",
        "-nostats",
        output_path,
    ]
    return cmd


def parse_progress(line: str, total_seconds: float) -> Optional[float]:
    """Fraction 0..1 from an ffmpeg ``-progress`` line, or None for other keys."""
    key, _, value = line.strip().partition("=")
    if key not in ("out_time_ms", "out_time_us") or not value.strip().isdigit():
        return None
    if total_seconds <= 0:
        return None
    # ffmpeg reports out_time_ms in microseconds.
    seconds = int(value) / 1_000_000
    return max(0.0, min(1.0, seconds / total_seconds))


class FfmpegRenderer:
    """Rendering engine contract: ``render(spec, output_path, timeout, on_progress) -> output_path``."""

    def __init__(self, debug_props: bool = False):
        self.debug_props = debug_props

    def render(
        self,
        spec: CompositionSpec,
        output_path: str,
        timeout: float = 900,
        on_progress: Optional[ProgressCallback] = None,
    ) -> str:
        ensure_dir(Path(output_path).parent)
        if self.debug_props:
            props_path = write_json(f"{output_path}.props.json", spec.to_dict())
            logger.info("Composition props written to %s", props_path)

        caption_image = f"{output_path}.caption.png"
        try:
            render_caption_png(spec.title_text or "", spec.text_position, caption_image, WIDTH, HEIGHT)
            primary_audio = has_audio_stream(spec.primary_source) if spec.primary_source else False
            secondary_audio = has_audio_stream(spec.secondary_source) if spec.secondary_source else False
            cmd = build_command(spec, output_path, caption_image, primary_audio, secondary_audio)
            self._run(cmd, float(spec.total_duration_seconds), timeout, on_progress)
        finally:
            try:
                os.remove(caption_image)
            except OSError:
                pass

        if not os.path.exists(output_path) or os.path.getsize(output_path) == 0:
            raise RenderError(f"renderer produced no output at {output_path}")
        return output_path

    def _run(
        self,
        cmd: List[str],
        total_seconds: float,
        timeout: float,
        on_progress: Optional[ProgressCallback],
    ) -> None:
        try:
            proc = subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True)
        except OSError as e:
            raise RenderError(f"could not start ffmpeg: {e}") from e

        timed_out = threading.Event()

        def _kill() -> None:
            timed_out.set()
            proc.kill()

        timer = threading.Timer(timeout, _kill)
        timer.start()
        try:
            for line in proc.stdout:
                fraction = parse_progress(line, total_seconds)
                if fraction is not None and on_progress is not None:
                    try:
                        on_progress(fraction)
                    except Exception:
                        logger.exception("render progress callback failed")
            stderr = proc.stderr.read()
            proc.wait()
        finally:
            timer.cancel()

        if timed_out.is_set():
            raise RenderError(f"render timed out after {timeout:.0f}s")
        if proc.returncode != 0:
            raise RenderError(f"ffmpeg failed (code {proc.returncode}):\n{stderr[-2000:]}")
