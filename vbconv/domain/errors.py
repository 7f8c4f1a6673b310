from pathlib import Path
from typing import Optional


class VBConvError(Exception):
    """Base class for converter errors."""


class ConfigError(VBConvError):
    pass


class ProbeError(VBConvError):
    """File could not be read or recognized by ffprobe. Not retried."""

    def __init__(self, path: Path, reason: str):
        super().__init__(f"ffprobe failed for {path}: {reason}")
        self.path = path
        self.reason = reason


class CapabilityDetectionError(VBConvError):
    """Encoder/decoder listing failed. Never surfaced past the capability directory."""


class EngineError(VBConvError):
    """ffmpeg failed to encode or copy a file."""

    def __init__(self, message: str, stderr: Optional[str] = None, returncode: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.stderr = stderr or ""
        self.returncode = returncode
