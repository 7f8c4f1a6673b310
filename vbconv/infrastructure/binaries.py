import logging
import shutil
import subprocess
from typing import NamedTuple, Optional
from vbconv.config.models import EngineConfig

logger = logging.getLogger(__name__)

DEFAULT_FFMPEG = "ffmpeg"
DEFAULT_FFPROBE = "ffprobe"


class EngineBinaries(NamedTuple):
    ffmpeg: str
    ffprobe: str


def _answers_version(name: str) -> bool:
    """True if `name` is on PATH and `name -version` exits cleanly."""
    path = shutil.which(name)
    if not path:
        return False
    try:
        result = subprocess.run([path, "-version"], capture_output=True, timeout=10)
    except (OSError, subprocess.TimeoutExpired):
        return False
    return result.returncode == 0


def _resolve(explicit: Optional[str], name: str, default: str) -> str:
    if explicit:
        logger.debug(f"Using explicit {name}: {explicit}")
        return explicit
    if _answers_version(name):
        return name
    logger.warning(f"{name} not found on PATH, falling back to '{default}'")
    return default


def resolve_binaries(config: EngineConfig) -> EngineBinaries:
    """Resolves ffmpeg/ffprobe: explicit override > PATH > default name."""
    return EngineBinaries(
        ffmpeg=_resolve(config.ffmpeg_bin, "ffmpeg", DEFAULT_FFMPEG),
        ffprobe=_resolve(config.ffprobe_bin, "ffprobe", DEFAULT_FFPROBE),
    )
