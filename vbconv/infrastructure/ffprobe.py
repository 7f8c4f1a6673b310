import subprocess
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional
from vbconv.domain.errors import ProbeError
from vbconv.domain.models import StreamInfo, StreamKind, StreamMetadata

logger = logging.getLogger(__name__)


def _to_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _to_float(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class FFprobeAdapter:
    """Wrapper around ffprobe to extract stream information."""

    def __init__(self, ffprobe_bin: str = "ffprobe"):
        self.ffprobe_bin = ffprobe_bin

    def _parse_stream(self, stream: Dict[str, Any]) -> StreamInfo:
        codec_type = stream.get("codec_type")
        kind = StreamKind(codec_type) if codec_type in ("video", "audio") else StreamKind.OTHER
        return StreamInfo(
            index=_to_int(stream.get("index")) or 0,
            kind=kind,
            codec_name=stream.get("codec_name") or "",
            pix_fmt=stream.get("pix_fmt"),
            bits_per_raw_sample=_to_int(stream.get("bits_per_raw_sample")),
            bit_rate=_to_int(stream.get("bit_rate")),
        )

    def probe(self, file_path: Path) -> StreamMetadata:
        """Executes ffprobe and parses JSON output."""
        if not file_path.exists():
            raise ProbeError(file_path, "file does not exist")

        cmd = [
            self.ffprobe_bin,
            "-v", "quiet",
            "-print_format", "json",
            "-show_streams",
            "-show_format",
            str(file_path)
        ]

        try:
            result = subprocess.run(cmd, capture_output=True, text=True, encoding="utf-8", errors="replace")
        except OSError as e:
            raise ProbeError(file_path, f"could not run {self.ffprobe_bin}: {e}") from e
        if result.returncode != 0:
            raise ProbeError(file_path, result.stderr.strip() or f"exit code {result.returncode}")

        try:
            data = json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise ProbeError(file_path, f"unparsable ffprobe output: {e}") from e

        fmt = data.get("format") or {}
        metadata = StreamMetadata(
            path=file_path,
            format_name=fmt.get("format_name") or "",
            duration=_to_float(fmt.get("duration")),
            bit_rate=_to_int(fmt.get("bit_rate")),
            streams=[self._parse_stream(s) for s in data.get("streams") or []],
        )
        if metadata.video_stream is None:
            raise ProbeError(file_path, "no video stream found")

        logger.debug(
            f"PROBE: {file_path.name} format={metadata.format_name} "
            f"video={metadata.video_stream.codec_name} "
            f"audio={metadata.audio_stream.codec_name if metadata.audio_stream else 'none'}"
        )
        return metadata
