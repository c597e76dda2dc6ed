import logging
from typing import Callable, Optional

from .errors import ProbeError
from .media import probe_duration
from .schemas import Durations, LAYOUT_SEQUENTIAL

logger = logging.getLogger(__name__)

FALLBACK_SEGMENT_SECONDS = 6
FALLBACK_TOTAL_SECONDS = 30


def safe_duration(url: Optional[str], probe: Callable[[str], int] = probe_duration) -> Optional[int]:
    if not url:
        return None
    try:
        seconds = probe(url)
    except ProbeError as e:
        logger.warning("Could not detect video duration: %s", e)
        return None
    logger.info("Detected video duration: %s secs for %s", seconds, url)
    return seconds


def resolve_durations(
    primary_url: Optional[str],
    secondary_url: Optional[str],
    mode: str,
    split_orientation: Optional[str] = None,
    probe: Callable[[str], int] = probe_duration,
) -> Durations:
    """Segment and total length for a composition.

    Split layouts follow the secondary clip's length while sequential layouts
    play both clips back to back. Anything that could not be probed falls back
    to fixed defaults.
    """
    primary = safe_duration(primary_url, probe)
    secondary = safe_duration(secondary_url, probe)
    sequential = mode == LAYOUT_SEQUENTIAL

    first: Optional[int] = None
    total: Optional[int] = None

    if primary is not None:
        if secondary_url is None:
            total = primary
        if sequential:
            first = primary

    if secondary is not None:
        if not sequential and split_orientation is not None:
            total = secondary
        if sequential and primary is not None:
            total = primary + secondary

    resolved = Durations(
        first_segment_seconds=first if first is not None else FALLBACK_SEGMENT_SECONDS,
        total_seconds=total if total is not None else FALLBACK_TOTAL_SECONDS,
    )
    logger.info(
        "[Durations] primary=%s secondary=%s -> first=%ss total=%ss",
        primary, secondary, resolved.first_segment_seconds, resolved.total_seconds,
    )
    return resolved
