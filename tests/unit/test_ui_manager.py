import pytest
from pathlib import Path
from rich.console import Console
from vbconv.domain.events import (
    BatchFinished, BatchStarted, JobCompleted, JobDiagnostic, JobFailed, JobInfo,
    JobProgressUpdated, JobStarted,
)
from vbconv.domain.models import ConversionMode, EncoderCapability, JobResult
from vbconv.infrastructure.event_bus import EventBus
from vbconv.ui.manager import UIManager
from vbconv.ui.report import build_results_table
from vbconv.ui.state import UIState


@pytest.fixture
def console():
    return Console(record=True, width=200, color_system=None)


def make_manager(console, verbose=False):
    bus = EventBus()
    state = UIState()
    UIManager(bus, state, console=console, verbose=verbose)
    return bus, state


def test_ui_manager_updates_state(console):
    bus, state = make_manager(console)
    path = Path("/videos/a.mkv")

    bus.publish(BatchStarted(files=[path, Path("/videos/b.mkv")], concurrency=2, capability=EncoderCapability.NVIDIA))
    assert state.total_files == 2
    assert state.concurrency == 2
    assert state.capability == EncoderCapability.NVIDIA

    bus.publish(JobStarted(file_path=path, cmdline="ffmpeg ...", mode=ConversionMode.TRANSCODE, encoder="h264_nvenc"))
    assert state.active_files == [path]
    assert state.pending_count == 1

    result = JobResult(file_path=path, success=True, output_path=Path("/videos/a.mp4"), attempts=2, used_fallback=True)
    bus.publish(JobCompleted(file_path=path, result=result))
    assert state.completed_count == 1
    assert state.fallback_count == 1
    assert state.active_files == []
    assert path not in state.progress

    failed = JobResult(file_path=Path("/videos/b.mkv"), success=False, error_message="Conversion failed: boom")
    bus.publish(JobFailed(file_path=failed.file_path, result=failed, error_message=failed.error_message))
    assert state.failed_count == 1
    assert state.pending_count == 0

    bus.publish(BatchFinished(results=[result, failed]))
    assert state.batch_finished

    output = console.export_text()
    assert "h264_nvenc" in output
    assert "/videos/a.mp4" in output
    assert "failed: Conversion failed: boom" in output


def test_progress_echoed_once_per_step(console):
    bus, state = make_manager(console)
    path = Path("a.mkv")

    for percent in (1.0, 4.0, 10.5, 12.0, 35.0, 36.0):
        bus.publish(JobProgressUpdated(file_path=path, percent=percent, timemark="00:00:01.00"))
    bus.publish(JobProgressUpdated(file_path=path, percent=None))

    lines = [l for l in console.export_text().splitlines() if "a.mkv:" in l]
    assert lines == [
        "a.mkv: 10% time: 00:00:01.00",
        "a.mkv: 35% time: 00:00:01.00",
    ]
    assert state.progress[path] == 36.0


def test_info_always_shown_diagnostics_only_when_verbose(console):
    bus, _ = make_manager(console)
    path = Path("a.mkv")
    bus.publish(JobInfo(file_path=path, message="Hardware encoder h264_nvenc failed, retrying with libx264 fallback..."))
    bus.publish(JobDiagnostic(file_path=path, message="[h264_nvenc] No capable devices found"))

    output = console.export_text()
    assert "retrying with libx264" in output
    assert "No capable devices" not in output

    verbose_console = Console(record=True, width=200, color_system=None)
    bus, _ = make_manager(verbose_console, verbose=True)
    bus.publish(JobDiagnostic(file_path=path, message="[h264_nvenc] No capable devices found"))
    assert "No capable devices" in verbose_console.export_text()


def test_markup_in_file_names_is_escaped(console):
    bus, _ = make_manager(console)
    path = Path("[bold]clip.mkv")
    bus.publish(JobInfo(file_path=path, message="[red]note"))
    assert "[bold]clip.mkv: [red]note" in console.export_text()


def test_results_table(console):
    results = [
        JobResult(file_path=Path("b.mkv"), success=False, error_message="Conversion failed: x\nstderr tail",
                  mode=ConversionMode.TRANSCODE, attempts=2, used_fallback=True),
        JobResult(file_path=Path("a.mkv"), success=True, output_path=Path("a.mp4"),
                  mode=ConversionMode.COPY, attempts=1),
    ]
    table = build_results_table(results)
    assert table.row_count == 2

    console.print(table)
    output = console.export_text()
    assert output.index("a.mkv") < output.index("b.mkv")
    assert "transcode (fallback)" in output
    assert "Conversion failed: x" in output
    assert "stderr tail" not in output


def test_ui_state_batch_lifecycle():
    state = UIState()
    state.start_batch(3, 2, EncoderCapability.SOFTWARE)
    assert not state.batch_finished

    state.finish_batch()
    assert state.batch_finished

    state.start_batch(1, 1, EncoderCapability.SOFTWARE)
    assert not state.batch_finished
    assert not hasattr(state, "recent_results")
