import time
import typer
from pathlib import Path
from typing import List, Optional
from pydantic import ValidationError
from rich.console import Console
from rich.progress import BarColumn, Progress, TextColumn, TimeElapsedColumn
from dualcam.config.loader import load_config
from dualcam.config.models import PipelineConfig, PipelineMode, Preset
from dualcam.domain.events import PaddingApplied, StageStarted
from dualcam.domain.exceptions import InputValidationError, ProbeFailure
from dualcam.domain.models import JobStatus, StreamOrder
from dualcam.infrastructure.event_bus import EventBus
from dualcam.infrastructure.ffprobe import FFprobeAdapter
from dualcam.infrastructure.logging import setup_logging
from dualcam.pipeline.job_manager import JobManager

app = typer.Typer(help="Dualcam - side-by-side two-camera video pipeline")
console = Console()

POLL_INTERVAL = 0.5

@app.command()
def run(
    stream_a: List[Path] = typer.Option(..., "--a", "-a", help="Camera A input, repeat in playback order"),
    stream_b: List[Path] = typer.Option(..., "--b", "-b", help="Camera B input, repeat in playback order"),
    config_path: Optional[Path] = typer.Option(Path("conf/dualcam.yaml"), "--config", "-c", help="Path to YAML config"),
    mode: Optional[PipelineMode] = typer.Option(None, "--mode", "-m", help="Pipeline topology"),
    crf: Optional[int] = typer.Option(None, "--crf", help="Override final constant rate factor (0-51)"),
    preset: Optional[Preset] = typer.Option(None, "--preset", help="Override final x264 preset"),
    max_width: Optional[int] = typer.Option(None, "--max-width", help="Scale final output down to this width"),
    audio_bitrate: Optional[str] = typer.Option(None, "--audio-bitrate", help="Final audio bitrate, e.g. 96k"),
    output_dir: Optional[Path] = typer.Option(None, "--output-dir", "-o", help="Directory for intermediates and output"),
    debug: bool = typer.Option(False, "--debug/--no-debug", help="Enable verbose debug logging")
):
    """Combine two camera recordings side by side and compress the result."""
    try:
        config = load_config(config_path)
        # Apply CLI overrides
        overrides = {
            "mode": mode, "crf": crf, "preset": preset,
            "max_width": max_width, "audio_bitrate": audio_bitrate,
        }
        pipeline = PipelineConfig.model_validate(
            {**config.pipeline.model_dump(), **{k: v for k, v in overrides.items() if v is not None}}
        )
        if output_dir: config.general.output_dir = output_dir
        if debug: config.general.debug = True
    except (ValidationError, ValueError) as e:
        typer.secho(f"Invalid configuration: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=2)

    logger = setup_logging(config.general.output_dir, debug=config.general.debug)
    logger.info(f"Dualcam started: mode={pipeline.mode.value}, output={config.general.output_dir}")

    bus = EventBus()
    streams = StreamOrder(a=stream_a, b=stream_b)

    with JobManager.from_config(config, bus) as manager:
        with Progress(
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            TextColumn("{task.percentage:>3.0f}%"),
            TimeElapsedColumn(),
            console=console,
        ) as progress:
            task = progress.add_task("Starting", total=100)

            def on_stage(event: StageStarted):
                progress.update(task, description=f"[{event.step}/{event.total_steps}] {event.label}")

            def on_padding(event: PaddingApplied):
                progress.console.print(f"Padding camera {event.target.value} by {event.amount_seconds:.2f}s")

            bus.subscribe(StageStarted, on_stage)
            bus.subscribe(PaddingApplied, on_padding)

            try:
                job_id = manager.create_job(pipeline, streams)
            except InputValidationError as e:
                progress.stop()
                typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
                raise typer.Exit(code=2)

            status = manager.get_status(job_id)
            while not status.status.is_terminal:
                progress.update(task, completed=status.progress)
                time.sleep(POLL_INTERVAL)
                status = manager.get_status(job_id)
            progress.update(task, completed=status.progress)

        if status.status is JobStatus.ERROR:
            typer.secho(f"Job failed: {status.error_message}", fg=typer.colors.RED, err=True)
            raise typer.Exit(code=1)

        output_path = manager.get_output_path(job_id)
        typer.secho(f"Done: {output_path}", fg=typer.colors.GREEN)

@app.command()
def probe(
    files: List[Path] = typer.Argument(..., help="Media files to probe"),
    config_path: Optional[Path] = typer.Option(Path("conf/dualcam.yaml"), "--config", "-c", help="Path to YAML config"),
):
    """Print the container duration of each file."""
    config = load_config(config_path)
    ffprobe = FFprobeAdapter(config.tools.ffprobe)
    failed = False
    for path in files:
        try:
            typer.echo(f"{path}\t{ffprobe.get_duration(path):.3f}s")
        except ProbeFailure as e:
            failed = True
            typer.secho(str(e), fg=typer.colors.RED, err=True)
    if failed:
        raise typer.Exit(code=1)

if __name__ == "__main__":
    app()
