"""ffprobe/ffmpeg helpers and the codec compatibility normalizer."""

import logging
import os
import shutil
from pathlib import Path
from typing import Callable, Optional

import requests

from .errors import NetworkError, ProbeError, TranscodeError
from .schemas import EffectiveSource, TempArtifact
from .utils import ensure_dir, ffmpeg_bin, ffprobe_bin, is_remote_url, job_temp_path, run_tool

logger = logging.getLogger(__name__)

# Codecs the renderer cannot decode reliably.
INCOMPATIBLE_CODECS = frozenset({"hevc", "h265"})

TRANSCODE_ARGS = [
    "-c:v", "libx264",
    "-crf", "23",
    "-preset", "fast",
    "-c:a", "aac",
    "-strict", "experimental",
]


def probe_codec(url: str) -> str:
    """Codec name of the first video stream, lower-cased."""
    cmd = [
        ffprobe_bin(),
        "-v", "error",
        "-select_streams", "v:0",
        "-show_entries", "stream=codec_name",
        "-of", "default=noprint_wrappers=1:nokey=1",
        url,
    ]
    try:
        out = run_tool(cmd)
    except Exception as e:
        raise ProbeError(f"codec probe failed for {url}: {e}") from e
    codec = out.strip().lower()
    if not codec:
        raise ProbeError(f"no video stream reported for {url}")
    return codec


def probe_duration(url: str) -> int:
    """Container duration floored to whole seconds."""
    cmd = [
        ffprobe_bin(),
        "-v", "error",
        "-show_entries", "format=duration",
        "-of", "default=noprint_wrappers=1:nokey=1",
        url,
    ]
    try:
        out = run_tool(cmd)
    except Exception as e:
        raise ProbeError(f"duration probe failed for {url}: {e}") from e
    try:
        seconds = float(out.strip())
    except ValueError:
        raise ProbeError(f"could not parse duration from {out!r}")
    return int(seconds // 1)


def has_audio_stream(url: str) -> bool:
    cmd = [
        ffprobe_bin(),
        "-v", "error",
        "-select_streams", "a",
        "-show_entries", "stream=index",
        "-of", "csv=p=0",
        url,
    ]
    try:
        return bool(run_tool(cmd).strip())
    except Exception as e:
        logger.warning("Audio stream probe failed for %s, assuming none: %s", url, e)
        return False


def transcode(source: str, output_path: str) -> str:
    """Re-encode to H.264/AAC. Raises TranscodeError; leaves no partial output behind."""
    cmd = [ffmpeg_bin(), "-y", "-nostdin", "-hide_banner", "-loglevel", "error", "-i", source]
    cmd += TRANSCODE_ARGS + [output_path]
    try:
        run_tool(cmd)
    except Exception as e:
        if os.path.exists(output_path):
            os.remove(output_path)
        raise TranscodeError(f"transcode of {source} failed: {e}") from e
    if not os.path.exists(output_path) or os.path.getsize(output_path) == 0:
        raise TranscodeError(f"transcoded file is missing or empty: {output_path}")
    return output_path


class CodecNormalizer:
    """Makes sure a source uses a codec the renderer can read, re-encoding only when needed."""

    def __init__(
        self,
        output_dir: str,
        codec_probe: Callable[[str], str] = probe_codec,
        transcoder: Callable[[str, str], str] = transcode,
    ):
        self.output_dir = output_dir
        self.codec_probe = codec_probe
        self.transcoder = transcoder
        ensure_dir(output_dir)

    def needs_transcode(self, source_url: str) -> bool:
        try:
            codec = self.codec_probe(source_url)
        except ProbeError as e:
            # Unknown codec: transcode to be safe.
            logger.warning("Could not detect codec, will transcode to be safe: %s", e)
            return True
        logger.info("Detected source codec %s for %s", codec, source_url)
        return codec in INCOMPATIBLE_CODECS

    def normalize(self, source_url: Optional[str], job_id: str, label: str) -> Optional[EffectiveSource]:
        if not source_url:
            return None
        if not self.needs_transcode(source_url):
            return EffectiveSource(url=source_url)

        out_path = job_temp_path(self.output_dir, job_id, label)
        logger.info("[%s] Transcoding %s source to H.264: %s", job_id, label, out_path)
        try:
            self.transcoder(source_url, out_path)
        except TranscodeError as e:
            # Degraded mode: hand the original to the renderer and let it decide.
            logger.error("[%s] Transcode failed, using original %s source: %s", job_id, label, e)
            return EffectiveSource(url=source_url)
        return EffectiveSource(url=out_path, artifact=TempArtifact(path=out_path, job_id=job_id))


def download(url: str, dest_path: str, timeout: int = 60) -> str:
    """Fetch a source into ``dest_path`` (http(s) or local path). The result must be non-empty."""
    ensure_dir(Path(dest_path).parent)
    if is_remote_url(url):
        try:
            with requests.get(url, stream=True, timeout=timeout) as r:
                r.raise_for_status()
                with open(dest_path, "wb") as f:
                    for chunk in r.iter_content(chunk_size=8192):
                        if chunk:
                            f.write(chunk)
        except requests.RequestException as e:
            raise NetworkError(f"download of {url} failed: {e}") from e
    elif os.path.exists(url):
        shutil.copy(url, dest_path)
    else:
        raise FileNotFoundError(url)

    size = os.path.getsize(dest_path)
    logger.info("Downloaded %s (%d bytes)", url, size)
    if size == 0:
        raise NetworkError(f"downloaded file is empty: {url}")
    return dest_path
