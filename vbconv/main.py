import typer
from pathlib import Path
from typing import Optional, List
from rich.console import Console
from vbconv.config.loader import load_config
from vbconv.config.models import AppConfig
from vbconv.domain.errors import ConfigError
from vbconv.domain.models import EncoderCapability
from vbconv.infrastructure.binaries import resolve_binaries
from vbconv.infrastructure.logging import setup_logging
from vbconv.infrastructure.event_bus import EventBus
from vbconv.infrastructure.file_scanner import FileScanner
from vbconv.infrastructure.ffprobe import FFprobeAdapter
from vbconv.infrastructure.ffmpeg import FFmpegAdapter
from vbconv.pipeline.capabilities import CapabilityDirectory
from vbconv.pipeline.planner import PlacementPlanner
from vbconv.pipeline.executor import JobExecutor
from vbconv.pipeline.scheduler import BatchScheduler
from vbconv.ui.state import UIState
from vbconv.ui.manager import UIManager
from vbconv.ui.report import build_results_table

app = typer.Typer(help="VBConv (Video Batch Converter) - remux or transcode videos to MP4")


def _apply_overrides(
    config: AppConfig,
    jobs: Optional[int] = None,
    encoder: Optional[str] = None,
    ffmpeg_bin: Optional[str] = None,
    ffprobe_bin: Optional[str] = None,
    debug: bool = False,
):
    if encoder:
        try:
            EncoderCapability.parse(encoder)
        except ValueError as e:
            raise typer.BadParameter(str(e), param_hint="--encoder")
        config.engine.force_encoder = encoder
    if jobs: config.general.jobs = jobs
    if ffmpeg_bin: config.engine.ffmpeg_bin = ffmpeg_bin
    if ffprobe_bin: config.engine.ffprobe_bin = ffprobe_bin
    if debug: config.general.debug = True


def build_scheduler(config: AppConfig, bus: EventBus) -> BatchScheduler:
    """Wires adapters, capability directory, planner and executor into a scheduler."""
    binaries = resolve_binaries(config.engine)
    ffprobe = FFprobeAdapter(ffprobe_bin=binaries.ffprobe)
    ffmpeg = FFmpegAdapter(ffmpeg_bin=binaries.ffmpeg, query_timeout=config.engine.query_timeout)
    directory = CapabilityDirectory(ffmpeg, force_encoder=config.engine.force_encoder)
    planner = PlacementPlanner(directory, config.encoding, output_extension=config.general.output_extension)
    executor = JobExecutor(ffprobe, ffmpeg, planner, directory)
    return BatchScheduler(executor, directory, bus, config=config.general)


@app.command()
def convert(
    paths: List[Path] = typer.Argument(..., help="Video files or directories to convert"),
    config_path: Optional[Path] = typer.Option(Path("conf/vbconv.yaml"), "--config", "-c", help="Path to YAML config"),
    jobs: Optional[int] = typer.Option(None, "--jobs", "-j", min=1, help="Override number of parallel conversions"),
    encoder: Optional[str] = typer.Option(None, "--encoder", "-e", help="Force encoder (e.g. h264_nvenc, software)"),
    ffmpeg_bin: Optional[str] = typer.Option(None, "--ffmpeg", help="Path to ffmpeg binary"),
    ffprobe_bin: Optional[str] = typer.Option(None, "--ffprobe", help="Path to ffprobe binary"),
    recursive: bool = typer.Option(False, "--recursive", "-r", help="Descend into subdirectories"),
    log_dir: Optional[Path] = typer.Option(None, "--log-dir", help="Directory for vbconv.log"),
    debug: bool = typer.Option(False, "--debug/--no-debug", help="Enable verbose debug logging")
):
    """Convert videos to MP4, remuxing when possible and transcoding otherwise."""
    try:
        config = load_config(config_path)
    except ConfigError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    _apply_overrides(config, jobs, encoder, ffmpeg_bin, ffprobe_bin, debug)

    logger = setup_logging(log_dir, debug=config.general.debug)
    logger.info(f"VBConv started: inputs={len(paths)}")
    logger.info(
        f"Config: jobs={config.general.jobs}, force_encoder={config.engine.force_encoder}, "
        f"debug={config.general.debug}"
    )

    missing = [p for p in paths if not p.exists()]
    for p in missing:
        typer.secho(f"Warning: {p} does not exist", fg=typer.colors.YELLOW, err=True)

    files = FileScanner(config.general.extensions, recursive=recursive).scan(paths)
    if not files:
        typer.secho("No files to convert.", fg=typer.colors.YELLOW, err=True)
        raise typer.Exit(code=1)

    console = Console()
    bus = EventBus()
    state = UIState()
    UIManager(bus, state, console=console, verbose=config.general.debug)
    scheduler = build_scheduler(config, bus)

    try:
        results = scheduler.run(files)
    except KeyboardInterrupt:
        typer.echo("\nInterrupted by user")
        raise typer.Exit(code=130)

    console.print(build_results_table(results))
    if any(not r.success for r in results):
        raise typer.Exit(code=1)


@app.command()
def detect(
    config_path: Optional[Path] = typer.Option(Path("conf/vbconv.yaml"), "--config", "-c", help="Path to YAML config"),
    encoder: Optional[str] = typer.Option(None, "--encoder", "-e", help="Force encoder"),
    ffmpeg_bin: Optional[str] = typer.Option(None, "--ffmpeg", help="Path to ffmpeg binary"),
    debug: bool = typer.Option(False, "--debug/--no-debug", help="Enable verbose debug logging")
):
    """Show the resolved ffmpeg binaries and the encoder that would be used."""
    try:
        config = load_config(config_path)
    except ConfigError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    _apply_overrides(config, encoder=encoder, ffmpeg_bin=ffmpeg_bin, debug=debug)
    setup_logging(None, debug=config.general.debug)

    binaries = resolve_binaries(config.engine)
    ffmpeg = FFmpegAdapter(ffmpeg_bin=binaries.ffmpeg, query_timeout=config.engine.query_timeout)
    directory = CapabilityDirectory(ffmpeg, force_encoder=config.engine.force_encoder)
    capability = directory.detect_encoder()

    typer.echo(f"ffmpeg:  {binaries.ffmpeg}")
    typer.echo(f"ffprobe: {binaries.ffprobe}")
    typer.echo(f"encoder: {capability.encoder} ({capability.value})")
    typer.echo(f"hevc_nvenc: {'yes' if directory.has_encoder('hevc_nvenc') else 'no'}")
    typer.echo(f"hevc_cuvid: {'yes' if directory.detect_decoder('hevc_cuvid') else 'no'}")


if __name__ == "__main__":
    app()
