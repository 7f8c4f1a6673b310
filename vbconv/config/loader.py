import logging
import os
from pathlib import Path
from typing import Mapping, Optional
import yaml
from pydantic import ValidationError
from vbconv.config.models import AppConfig
from vbconv.domain.errors import ConfigError

logger = logging.getLogger(__name__)

# Environment variable -> (section, field)
ENV_OVERRIDES = {
    "FORCE_ENCODER": ("engine", "force_encoder"),
    "FFMPEG_BIN": ("engine", "ffmpeg_bin"),
    "FFPROBE_BIN": ("engine", "ffprobe_bin"),
}


def load_config(path: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None) -> AppConfig:
    """Loads YAML config (missing file means defaults) and applies environment overrides."""
    data = {}
    if path is not None and path.exists():
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Config {path} must be a mapping, got {type(data).__name__}")
    elif path is not None:
        logger.debug(f"Config {path} not found, using defaults")

    env = os.environ if environ is None else environ
    for var, (section, field) in ENV_OVERRIDES.items():
        value = env.get(var)
        if value:
            data.setdefault(section, {})
            data[section][field] = value

    try:
        return AppConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
