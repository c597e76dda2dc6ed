import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from .render_engine.errors import ConfigError

logger = logging.getLogger(__name__)


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r, using %s", name, raw, default)
        return default


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r, using %s", name, raw, default)
        return default


@dataclass
class Settings:
    """Service configuration, read from the environment (and .env when present)."""
    concurrency: int = 2
    host: str = "0.0.0.0"
    port: int = 3000
    output_dir: str = "out"
    file_server_host: str = "localhost"
    file_server_port: int = 8787
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    requests_table: str = "generated_videos"
    storage_bucket: str = "generated-videos"
    s3_bucket: str = "ugclive-videos-us"
    remote_worker_url: Optional[str] = None
    remote_timeout: float = 15.0
    max_retries: int = 3
    backoff_base: float = 1.0
    remote_failure_status: str = "pending"
    render_timeout: float = 900.0
    render_debug_props: bool = False
    poll_interval: float = 5.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, load_env_file: bool = True) -> "Settings":
        if load_env_file:
            load_dotenv()
        return cls(
            concurrency=max(1, _env_int("RENDER_CONCURRENCY", 2)),
            host=os.environ.get("HOST", "0.0.0.0"),
            port=_env_int("PORT", 3000),
            output_dir=os.environ.get("OUTPUT_DIR", "out"),
            file_server_host=os.environ.get("FILE_SERVER_HOST", "localhost"),
            file_server_port=_env_int("FILE_SERVER_PORT", 8787),
            supabase_url=(os.environ.get("SUPABASE_URL") or "").rstrip("/") or None,
            supabase_key=os.environ.get("SUPABASE_KEY") or None,
            requests_table=os.environ.get("REQUESTS_TABLE", "generated_videos"),
            storage_bucket=os.environ.get("SUPABASE_STORAGE_BUCKET", "generated-videos"),
            s3_bucket=os.environ.get("S3_BUCKET", "ugclive-videos-us"),
            remote_worker_url=os.environ.get("REMOTE_WORKER_URL") or None,
            remote_timeout=_env_float("REMOTE_TIMEOUT_SECONDS", 15.0),
            max_retries=max(1, _env_int("REMOTE_MAX_RETRIES", 3)),
            backoff_base=_env_float("REMOTE_BACKOFF_SECONDS", 1.0),
            remote_failure_status=os.environ.get("REMOTE_FAILURE_STATUS", "pending"),
            render_timeout=_env_float("RENDER_TIMEOUT_SECONDS", 900.0),
            render_debug_props=_env_bool("RENDER_DEBUG_PROPS"),
            poll_interval=_env_float("POLL_INTERVAL_SECONDS", 5.0),
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        )

    def require_store(self) -> None:
        missing = [name for name, value in (("SUPABASE_URL", self.supabase_url), ("SUPABASE_KEY", self.supabase_key)) if not value]
        if missing:
            raise ConfigError(f"Missing request store credentials: {', '.join(missing)}")

    def require_remote_worker(self) -> None:
        if not self.remote_worker_url:
            raise ConfigError("REMOTE_WORKER_URL is required for the remote worker path")


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(levelname)s - %(message)s",
    )
