import logging
from pathlib import Path
from typing import Callable, Optional
from pydantic import BaseModel
from vbconv.domain.errors import EngineError, ProbeError
from vbconv.domain.events import (
    Event, JobCompleted, JobDiagnostic, JobFailed, JobInfo, JobProgressUpdated, JobStarted,
)
from vbconv.domain.models import ConversionPlan, EncodeOptions, JobResult, SOFTWARE_ENCODER, StreamMetadata
from vbconv.infrastructure.ffmpeg import (
    EngineDiagnostic, EngineEvent, EngineProgress, EngineStart, FFmpegAdapter,
)
from vbconv.infrastructure.ffprobe import FFprobeAdapter
from vbconv.pipeline.capabilities import CapabilityDirectory
from vbconv.pipeline.planner import PlacementPlanner

EventCallback = Callable[[Event], None]


class AttemptState(BaseModel):
    """Per-job attempt bookkeeping: at most one automatic fallback."""
    attempts: int = 0
    fallback_used: bool = False

    def may_fall_back(self, failed: EncodeOptions, plan: ConversionPlan) -> bool:
        return failed.is_hardware and plan.fallback_options is not None and not self.fallback_used


def failure_message(error: EngineError) -> str:
    message = f"Conversion failed: {error.message or 'ffmpeg error'}"
    if error.stderr:
        message += f"\n{error.stderr}"
    return message


class JobExecutor:
    """Drives one file through probe, plan and ffmpeg, with a single hardware-to-software fallback."""

    def __init__(
        self,
        ffprobe_adapter: FFprobeAdapter,
        ffmpeg_adapter: FFmpegAdapter,
        planner: PlacementPlanner,
        directory: CapabilityDirectory,
    ):
        self.ffprobe_adapter = ffprobe_adapter
        self.ffmpeg_adapter = ffmpeg_adapter
        self.planner = planner
        self.directory = directory
        self.logger = logging.getLogger(__name__)
        self._shutdown_requested = False

    def request_shutdown(self):
        self._shutdown_requested = True

    def convert(self, file_path: Path, on_event: Optional[EventCallback] = None) -> JobResult:
        """Probes, plans and executes a single file."""
        emit = on_event or (lambda event: None)
        try:
            metadata = self.ffprobe_adapter.probe(file_path)
        except ProbeError as e:
            self.logger.error(f"PROBE_FAILED: {file_path.name}: {e}")
            result = JobResult(file_path=file_path, success=False, error_message=str(e))
            emit(JobFailed(file_path=file_path, result=result, error_message=str(e)))
            return result

        plan = self.planner.plan(metadata, self.directory.detect_encoder())
        return self.execute(file_path, plan, on_event, metadata=metadata)

    def execute(
        self,
        file_path: Path,
        plan: ConversionPlan,
        on_event: Optional[EventCallback] = None,
        metadata: Optional[StreamMetadata] = None,
    ) -> JobResult:
        emit = on_event or (lambda event: None)
        for notice in plan.notices:
            emit(JobInfo(file_path=file_path, message=notice))

        state = AttemptState()
        options = plan.primary_options
        duration = metadata.duration if metadata else None

        while True:
            state.attempts += 1
            relay = self._relay(file_path, plan, options, state.attempts, emit)
            try:
                self.ffmpeg_adapter.run(file_path, options, plan.output_path, relay, duration=duration)
            except EngineError as e:
                if state.may_fall_back(options, plan) and not self._shutdown_requested:
                    state.fallback_used = True
                    message = f"Hardware encoder {options.video_codec} failed, retrying with {SOFTWARE_ENCODER} fallback..."
                    self.logger.warning(f"FALLBACK: {file_path.name}: {e.message}; retrying with {SOFTWARE_ENCODER}")
                    emit(JobInfo(file_path=file_path, message=message))
                    options = plan.fallback_options
                    continue

                error_message = failure_message(e)
                self.logger.error(f"JOB_FAILED: {file_path.name} attempts={state.attempts}: {e.message}")
                result = JobResult(
                    file_path=file_path,
                    success=False,
                    error_message=error_message,
                    metadata=metadata,
                    mode=plan.mode,
                    attempts=state.attempts,
                    used_fallback=state.fallback_used,
                )
                emit(JobFailed(file_path=file_path, result=result, error_message=error_message))
                return result

            self.logger.info(f"JOB_COMPLETED: {file_path.name} -> {plan.output_path} attempts={state.attempts}")
            result = JobResult(
                file_path=file_path,
                success=True,
                output_path=plan.output_path,
                metadata=metadata,
                mode=plan.mode,
                attempts=state.attempts,
                used_fallback=state.fallback_used,
            )
            emit(JobCompleted(file_path=file_path, result=result))
            return result

    @staticmethod
    def _relay(
        file_path: Path, plan: ConversionPlan, options: EncodeOptions, attempt: int, emit: EventCallback
    ) -> Callable[[EngineEvent], None]:
        """Turns engine events into job events tagged with the input file."""
        def relay(event: EngineEvent):
            if isinstance(event, EngineStart):
                emit(JobStarted(
                    file_path=file_path, cmdline=event.cmdline, mode=plan.mode,
                    encoder=options.video_codec, attempt=attempt,
                ))
            elif isinstance(event, EngineProgress):
                emit(JobProgressUpdated(file_path=file_path, **event.model_dump()))
            elif isinstance(event, EngineDiagnostic):
                emit(JobDiagnostic(file_path=file_path, message=event.message))
        return relay
