from typing import Optional
from rich.console import Console
from rich.markup import escape
from vbconv.infrastructure.event_bus import EventBus
from vbconv.ui.state import UIState
from vbconv.domain.events import (
    BatchStarted, BatchFinished,
    JobStarted, JobProgressUpdated, JobInfo, JobDiagnostic,
    JobCompleted, JobFailed,
)

# Progress is echoed every time a file crosses another step of this size (percent)
PROGRESS_STEP = 10


class UIManager:
    """Subscribes to EventBus, updates UIState and echoes job activity to the console."""

    def __init__(self, bus: EventBus, state: UIState, console: Optional[Console] = None, verbose: bool = False):
        self.bus = bus
        self.state = state
        self.console = console or Console(stderr=True)
        self.verbose = verbose
        self._setup_subscriptions()

    def _setup_subscriptions(self):
        self.bus.subscribe(BatchStarted, self.on_batch_started)
        self.bus.subscribe(BatchFinished, self.on_batch_finished)
        self.bus.subscribe(JobStarted, self.on_job_started)
        self.bus.subscribe(JobProgressUpdated, self.on_job_progress)
        self.bus.subscribe(JobInfo, self.on_job_info)
        self.bus.subscribe(JobDiagnostic, self.on_job_diagnostic)
        self.bus.subscribe(JobCompleted, self.on_job_completed)
        self.bus.subscribe(JobFailed, self.on_job_failed)

    def on_batch_started(self, event: BatchStarted):
        self.state.start_batch(len(event.files), event.concurrency, event.capability)
        self.console.print(
            f"Starting conversion of {len(event.files)} file(s) "
            f"[dim](encoder={event.capability.encoder}, parallel={event.concurrency})[/dim]"
        )

    def on_batch_finished(self, event: BatchFinished):
        self.state.finish_batch()
        self.console.print("All done.")

    def on_job_started(self, event: JobStarted):
        self.state.add_active_file(event.file_path)
        self.state.set_progress(event.file_path, 0.0)
        if self.verbose:
            self.console.print(f"[dim]ffmpeg command for {escape(str(event.file_path))}: {escape(event.cmdline)}[/dim]")
        else:
            self.console.print(f"{escape(event.file_path.name)}: {event.mode.value} with {event.encoder}")

    def on_job_progress(self, event: JobProgressUpdated):
        if event.percent is None:
            return
        previous = self.state.set_progress(event.file_path, event.percent) or 0.0
        if int(event.percent // PROGRESS_STEP) > int(previous // PROGRESS_STEP):
            timemark = f" time: {event.timemark}" if event.timemark else ""
            self.console.print(f"[dim]{escape(event.file_path.name)}: {event.percent:.0f}%{timemark}[/dim]")

    def on_job_info(self, event: JobInfo):
        self.console.print(f"[yellow]{escape(event.file_path.name)}: {escape(event.message)}[/yellow]")

    def on_job_diagnostic(self, event: JobDiagnostic):
        if self.verbose:
            self.console.print(f"[dim]{escape(event.file_path.name)} [ffmpeg stderr]: {escape(event.message)}[/dim]")

    def on_job_completed(self, event: JobCompleted):
        self.state.add_result(event.result)
        self.console.print(
            f"[green]✅ {escape(str(event.file_path))} → {escape(str(event.result.output_path))}[/green]"
        )

    def on_job_failed(self, event: JobFailed):
        self.state.add_result(event.result)
        first_line = event.error_message.splitlines()[0] if event.error_message else "unknown error"
        self.console.print(f"[red]❌ {escape(str(event.file_path))} failed: {escape(first_line)}[/red]")
