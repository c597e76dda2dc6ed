import json
import os
import shutil
import subprocess
import time
from pathlib import Path
from typing import List, Optional


def ensure_dir(path: str | Path) -> None:
    Path(path).mkdir(parents=True, exist_ok=True)


def write_json(path: str | Path, obj) -> str:
    """Dump ``obj`` as pretty JSON next to a render; non-JSON values are stringified."""
    target = Path(path)
    ensure_dir(target.parent)
    target.write_text(json.dumps(obj, indent=2, sort_keys=True, default=str), encoding="utf-8")
    return str(target)


def is_remote_url(value: Optional[str]) -> bool:
    return bool(value) and value.startswith(("http://", "https://"))


def epoch_ms() -> int:
    return int(time.time() * 1000)


def job_temp_path(output_dir: str, job_id: str, label: str, prefix: str = "temp-h264") -> str:
    """Temp file name namespaced by job id and timestamp so concurrent jobs never collide."""
    return str(Path(output_dir) / f"{prefix}-{job_id}-{label}-{epoch_ms()}.mp4")


def ffmpeg_bin() -> str:
    path = os.environ.get("FFMPEG_BIN")
    if path:
        return path
    try:
        import imageio_ffmpeg  # type: ignore
        return imageio_ffmpeg.get_ffmpeg_exe()
    except Exception:
        return "ffmpeg"


def ffprobe_bin() -> str:
    return os.environ.get("FFPROBE_BIN") or shutil.which("ffprobe") or "ffprobe"


def run_tool(cmd: List[str], timeout: Optional[float] = None) -> str:
    """Run an external media tool; raise with the stderr tail on failure. Returns stdout."""
    proc = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE, timeout=timeout)
    if proc.returncode != 0:
        stderr_tail = proc.stderr.decode("utf-8", errors="ignore")[-2000:]
        raise RuntimeError(f"{Path(cmd[0]).name} failed (code {proc.returncode}):\n{stderr_tail}")
    return proc.stdout.decode("utf-8", errors="ignore")


def remove_quietly(path: str, logger) -> bool:
    """Delete a file, logging instead of raising. Returns True if the file is gone."""
    try:
        if os.path.exists(path):
            os.remove(path)
            logger.info("Deleted temporary file: %s", path)
        return True
    except OSError as e:
        logger.warning("Failed to delete temporary file %s: %s", path, e)
        return False
