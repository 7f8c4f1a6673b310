import threading
import pytest
from pathlib import Path
from typing import List, Optional
from vbconv.domain.errors import CapabilityDetectionError, EngineError
from vbconv.domain.models import StreamInfo, StreamKind, StreamMetadata
from vbconv.infrastructure.ffmpeg import EngineDiagnostic, EngineProgress, EngineStart


def build_metadata(
    path: Path = Path("movie.mkv"),
    vcodec: Optional[str] = "h264",
    acodec: Optional[str] = "aac",
    pix_fmt: Optional[str] = "yuv420p",
    bits: Optional[int] = None,
    video_bitrate: Optional[int] = None,
    format_bitrate: Optional[int] = None,
    duration: Optional[float] = 10.0,
) -> StreamMetadata:
    streams = []
    if vcodec is not None:
        streams.append(StreamInfo(
            index=0, kind=StreamKind.VIDEO, codec_name=vcodec, pix_fmt=pix_fmt,
            bits_per_raw_sample=bits, bit_rate=video_bitrate,
        ))
    if acodec is not None:
        streams.append(StreamInfo(index=len(streams), kind=StreamKind.AUDIO, codec_name=acodec))
    return StreamMetadata(
        path=path, format_name="matroska,webm", duration=duration,
        bit_rate=format_bitrate, streams=streams,
    )


@pytest.fixture
def metadata_factory():
    return build_metadata


class ScriptedEngine:
    """ffmpeg double: each run() pops the next outcome (None = success, str = failure stderr)."""

    def __init__(self, outcomes: Optional[List[Optional[str]]] = None, encoders=None, decoders=None,
                 fail_listing: bool = False):
        self.outcomes = list(outcomes or [])
        self.encoders = set(encoders or [])
        self.decoders = set(decoders or [])
        self.fail_listing = fail_listing
        self.calls = []
        self.list_calls = 0
        self._lock = threading.Lock()

    def list_encoders(self):
        with self._lock:
            self.list_calls += 1
        if self.fail_listing:
            raise CapabilityDetectionError("ffmpeg -encoders failed")
        return set(self.encoders)

    def list_decoders(self):
        if self.fail_listing:
            raise CapabilityDetectionError("ffmpeg -decoders failed")
        return set(self.decoders)

    def run(self, input_path, options, output_path, on_event=None, duration=None):
        emit = on_event or (lambda e: None)
        with self._lock:
            self.calls.append((input_path, options, output_path))
            outcome = self.outcomes.pop(0) if self.outcomes else None
        emit(EngineStart(cmdline=f"ffmpeg -i {input_path} -c:v {options.video_codec} {output_path}"))
        emit(EngineProgress(percent=50.0, frames=150, current_fps=30.0, timemark="00:00:05.00"))
        if outcome is not None:
            emit(EngineDiagnostic(message=outcome))
            raise EngineError("ffmpeg exited with code 1", stderr=outcome, returncode=1)


@pytest.fixture
def scripted_engine():
    return ScriptedEngine
