from pathlib import Path
from typing import List, Optional
from pydantic import BaseModel
from .models import ConversionMode, EncoderCapability, JobResult

class Event(BaseModel):
    """Base class for all domain events."""
    pass

class JobEvent(Event):
    """Event scoped to a single input file."""
    file_path: Path

class JobInfo(JobEvent):
    message: str

class JobStarted(JobEvent):
    cmdline: str
    mode: ConversionMode
    encoder: str
    attempt: int = 1

class JobProgressUpdated(JobEvent):
    percent: Optional[float] = None
    frames: Optional[int] = None
    current_fps: Optional[float] = None
    current_kbps: Optional[float] = None
    target_size: Optional[int] = None  # kB
    timemark: Optional[str] = None

class JobDiagnostic(JobEvent):
    """Raw ffmpeg stderr text, emitted before any fallback decision."""
    message: str

class JobCompleted(JobEvent):
    result: JobResult

class JobFailed(JobEvent):
    result: JobResult
    error_message: str

class BatchStarted(Event):
    files: List[Path]
    concurrency: int
    capability: EncoderCapability

class BatchFinished(Event):
    results: List[JobResult]

    @property
    def failed_count(self) -> int:
        return sum(1 for r in self.results if not r.success)
