import subprocess
import re
import shlex
import logging
import time
from collections import deque
from pathlib import Path
from typing import Callable, List, Optional, Set
from pydantic import BaseModel
from vbconv.domain.errors import CapabilityDetectionError, EngineError
from vbconv.domain.models import EncodeOptions

# Number of trailing non-progress stderr lines kept for diagnostics
STDERR_TAIL_LINES = 200

_PROGRESS_PATTERNS = {
    "frames": re.compile(r"frame=\s*(\d+)"),
    "fps": re.compile(r"fps=\s*([\d.]+)"),
    "size": re.compile(r"L?size=\s*(\d+)\s*[kK]i?B"),
    "time": re.compile(r"time=\s*(-?\d+):(\d+):(\d+(?:\.\d+)?)"),
    "bitrate": re.compile(r"bitrate=\s*([\d.]+)\s*kbits/s"),
}

_CODEC_LINE = re.compile(r"^[VAS][A-Z.]{5}$")


class EngineEvent(BaseModel):
    pass

class EngineStart(EngineEvent):
    cmdline: str

class EngineProgress(EngineEvent):
    percent: Optional[float] = None
    frames: Optional[int] = None
    current_fps: Optional[float] = None
    current_kbps: Optional[float] = None
    target_size: Optional[int] = None
    timemark: Optional[str] = None

class EngineDiagnostic(EngineEvent):
    message: str


def parse_progress_line(line: str, duration: Optional[float] = None) -> Optional[EngineProgress]:
    """Parses an ffmpeg stats line (frame=... time=...); None if the line is not progress."""
    time_match = _PROGRESS_PATTERNS["time"].search(line)
    if not time_match:
        return None

    h, m, s = time_match.groups()
    seconds = int(h) * 3600 + int(m) * 60 + float(s)
    percent = None
    if duration and duration > 0:
        percent = max(0.0, min(100.0, seconds / duration * 100))

    def _group(key: str) -> Optional[str]:
        match = _PROGRESS_PATTERNS[key].search(line)
        return match.group(1) if match else None

    frames = _group("frames")
    fps = _group("fps")
    size = _group("size")
    bitrate = _group("bitrate")
    return EngineProgress(
        percent=percent,
        frames=int(frames) if frames else None,
        current_fps=float(fps) if fps else None,
        current_kbps=float(bitrate) if bitrate else None,
        target_size=int(size) if size else None,
        timemark=f"{h}:{m}:{s}",
    )


def parse_codec_list(output: str) -> Set[str]:
    """Extracts codec names from `ffmpeg -encoders` / `ffmpeg -decoders` output."""
    names = set()
    for line in output.splitlines():
        parts = line.split()
        if len(parts) >= 2 and _CODEC_LINE.match(parts[0]) and parts[1] != "=":
            names.add(parts[1])
    return names


class FFmpegAdapter:
    """Wrapper around ffmpeg for remuxing, transcoding and capability queries."""

    def __init__(self, ffmpeg_bin: str = "ffmpeg", query_timeout: float = 10.0):
        self.ffmpeg_bin = ffmpeg_bin
        self.query_timeout = query_timeout
        self.logger = logging.getLogger(__name__)

    def _query(self, flag: str) -> Set[str]:
        cmd = [self.ffmpeg_bin, "-hide_banner", flag]
        try:
            result = subprocess.run(
                cmd, capture_output=True, text=True, encoding="utf-8", errors="replace", timeout=self.query_timeout
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise CapabilityDetectionError(f"ffmpeg {flag} failed: {e}") from e
        if result.returncode != 0:
            raise CapabilityDetectionError(f"ffmpeg {flag} exited with code {result.returncode}")
        return parse_codec_list(result.stdout)

    def list_encoders(self) -> Set[str]:
        return self._query("-encoders")

    def list_decoders(self) -> Set[str]:
        return self._query("-decoders")

    def build_command(self, input_path: Path, options: EncodeOptions, output_path: Path) -> List[str]:
        """Constructs the ffmpeg command line arguments."""
        return [
            self.ffmpeg_bin,
            "-hide_banner",
            "-y",  # a failed attempt may leave a partial output behind
            *options.input_options,
            "-i", str(input_path),
            *options.to_args(),
            str(output_path),
        ]

    def run(
        self,
        input_path: Path,
        options: EncodeOptions,
        output_path: Path,
        on_event: Optional[Callable[[EngineEvent], None]] = None,
        duration: Optional[float] = None,
    ):
        """Runs one ffmpeg attempt. Raises EngineError on failure."""
        emit = on_event or (lambda event: None)
        cmd = self.build_command(input_path, options, output_path)
        cmdline = shlex.join(cmd)
        start_time = time.monotonic()

        self.logger.info(f"FFMPEG_START: {input_path.name} (codec={options.video_codec})")
        self.logger.debug(f"FFMPEG_CMD: {cmdline}")

        try:
            process = subprocess.Popen(
                cmd,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                universal_newlines=True,
                encoding="utf-8",
                errors="replace",  # tags and paths echoed by ffmpeg need not be UTF-8
                bufsize=1
            )
        except OSError as e:
            raise EngineError(f"could not start {self.ffmpeg_bin}: {e}") from e

        emit(EngineStart(cmdline=cmdline))

        stderr_tail = deque(maxlen=STDERR_TAIL_LINES)
        try:
            # universal_newlines turns ffmpeg's \r-separated stats into lines
            for line in process.stderr:
                progress = parse_progress_line(line, duration)
                if progress is not None:
                    emit(progress)
                elif line.strip():
                    stderr_tail.append(line.rstrip())
            process.wait()
        except BaseException:
            process.kill()
            process.wait()
            raise

        elapsed = time.monotonic() - start_time
        if process.returncode != 0:
            stderr_text = "\n".join(stderr_tail)
            self.logger.info(
                f"FFMPEG_END: {input_path.name} status=failed code={process.returncode} elapsed={elapsed:.2f}s"
            )
            if stderr_text:
                emit(EngineDiagnostic(message=stderr_text))
            raise EngineError(
                f"ffmpeg exited with code {process.returncode}",
                stderr=stderr_text,
                returncode=process.returncode,
            )

        self.logger.info(f"FFMPEG_END: {input_path.name} status=completed elapsed={elapsed:.2f}s")
