"""Pipeline topologies.

Pairwise:           combine(A[i], B[i]) for every i -> stream-copy concat -> compress
ConcatenateFirst:   concat(A) -> concat(B) -> [pad shorter] -> combine -> compress
"""
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Type
from dualcam.config.models import PipelineConfig, PipelineMode
from dualcam.domain.events import PaddingApplied, StageCompleted, StageStarted
from dualcam.domain.exceptions import IncompatibleSegmentsError, InputValidationError
from dualcam.domain.models import StageKind, StreamOrder
from dualcam.infrastructure.event_bus import EventBus
from dualcam.infrastructure.ffmpeg import FFmpegAdapter
from dualcam.infrastructure.ffprobe import FFprobeAdapter
from dualcam.pipeline.padding import DEFAULT_TOLERANCE, PaddingPolicy
from dualcam.pipeline.progress import ProgressSink, StepProgress

logger = logging.getLogger(__name__)

def _video_layout(info: Dict[str, Any]) -> str:
    return f"{info['codec']} {info['width']}x{info['height']}"

def _audio_layout(info: Dict[str, Any]) -> str:
    if not info.get("has_audio"):
        return "no"
    return f"{info.get('audio_channels', 0)}ch {info.get('sample_rate', 0)}Hz"

class PipelineStrategy(ABC):
    """Runs a job to completion, reporting overall progress to a sink."""

    mode: PipelineMode

    def __init__(
        self,
        ffmpeg: FFmpegAdapter,
        ffprobe: FFprobeAdapter,
        event_bus: EventBus,
        padding_tolerance: float = DEFAULT_TOLERANCE
    ):
        self.ffmpeg = ffmpeg
        self.ffprobe = ffprobe
        self.event_bus = event_bus
        self.padding_tolerance = padding_tolerance

    @abstractmethod
    def total_steps(self, streams: StreamOrder) -> int:
        ...

    def validate(self, streams: StreamOrder):
        if not streams.a or not streams.b:
            raise InputValidationError("Both camera streams need at least one video")

    @abstractmethod
    def run(self, job_id: str, config: PipelineConfig, streams: StreamOrder,
            work_dir: Path, sink: ProgressSink) -> Path:
        """Executes all stages and returns the final output path."""

    def _stage_started(self, job_id: str, stage: StageKind, label: str, progress: StepProgress):
        logger.info(f"[{job_id}] {label} (step {progress.completed_steps + 1}/{progress.total_steps})")
        self.event_bus.publish(StageStarted(
            job_id=job_id,
            stage=stage,
            label=label,
            step=progress.completed_steps + 1,
            total_steps=progress.total_steps
        ))

    def _stage_completed(self, job_id: str, stage: StageKind, label: str, output: Path, progress: StepProgress):
        progress.step_done()
        logger.info(f"[{job_id}] {label} complete -> {output.name}")
        self.event_bus.publish(StageCompleted(job_id=job_id, stage=stage, label=label, output_path=output))


class PairwiseStrategy(PipelineStrategy):
    mode = PipelineMode.PAIRWISE

    def total_steps(self, streams: StreamOrder) -> int:
        # N combines + concatenate + compress
        return len(streams.a) + 2

    def validate(self, streams: StreamOrder):
        super().validate(streams)
        if len(streams.a) != len(streams.b):
            raise InputValidationError(
                f"Pairwise mode needs equal stream lengths, got A={len(streams.a)} B={len(streams.b)}"
            )

    def run(self, job_id: str, config: PipelineConfig, streams: StreamOrder,
            work_dir: Path, sink: ProgressSink) -> Path:
        progress = StepProgress(self.total_steps(streams), sink)
        pairs_dir = work_dir / "pairs"
        pairs_dir.mkdir(parents=True, exist_ok=True)
        num_pairs = len(streams.a)

        pair_paths: List[Path] = []
        for i, (video_a, video_b) in enumerate(zip(streams.a, streams.b)):
            label = f"Combining pair {i + 1}/{num_pairs}"
            pair_output = pairs_dir / f"pair_{i + 1}.mp4"
            self._stage_started(job_id, StageKind.COMBINE, label, progress)
            self.ffmpeg.combine(video_a, video_b, pair_output, progress.stage_sink())
            pair_paths.append(pair_output)
            self._stage_completed(job_id, StageKind.COMBINE, label, pair_output, progress)

        self.assert_stream_copy_safe(pair_paths)

        combined = work_dir / "combined.mp4"
        label = "Concatenating pairs"
        self._stage_started(job_id, StageKind.CONCATENATE, label, progress)
        self.ffmpeg.concatenate(pair_paths, combined, progress.stage_sink(), reencode=False)
        self._stage_completed(job_id, StageKind.CONCATENATE, label, combined, progress)

        final = work_dir / "final.mp4"
        label = "Compressing final video"
        self._stage_started(job_id, StageKind.COMPRESS, label, progress)
        self.ffmpeg.compress(combined, final, config, progress.stage_sink())
        self._stage_completed(job_id, StageKind.COMPRESS, label, final, progress)
        return final

    def assert_stream_copy_safe(self, pair_paths: List[Path]):
        """Every pair must share codec, frame size and audio layout before '-c copy' concat.

        amerge sums the channels of both cameras, so mono and stereo sources
        yield pairs with different channel counts.
        """
        if len(pair_paths) < 2:
            return
        reference = self.ffprobe.get_stream_info(pair_paths[0])
        for path in pair_paths[1:]:
            info = self.ffprobe.get_stream_info(path)
            if _video_layout(info) != _video_layout(reference):
                raise IncompatibleSegmentsError(
                    f"{path.name} is {_video_layout(info)} but {pair_paths[0].name} is "
                    f"{_video_layout(reference)}; pairs cannot be joined by stream copy"
                )
            if _audio_layout(info) != _audio_layout(reference):
                raise IncompatibleSegmentsError(
                    f"{path.name} has {_audio_layout(info)} audio but {pair_paths[0].name} has "
                    f"{_audio_layout(reference)}; pairs cannot be joined by stream copy"
                )
            if info.get("fps") != reference.get("fps"):
                logger.warning(
                    f"{path.name} runs at {info.get('fps')} fps, {pair_paths[0].name} at {reference.get('fps')} fps"
                )


class ConcatenateFirstStrategy(PipelineStrategy):
    """For cameras whose segment boundaries do not line up."""

    mode = PipelineMode.CONCATENATE_FIRST

    def total_steps(self, streams: StreamOrder) -> int:
        return 4

    def run(self, job_id: str, config: PipelineConfig, streams: StreamOrder,
            work_dir: Path, sink: ProgressSink) -> Path:
        progress = StepProgress(self.total_steps(streams), sink)
        work_dir.mkdir(parents=True, exist_ok=True)

        concatenated: Dict[str, Path] = {}
        for camera, inputs in (("a", streams.a), ("b", streams.b)):
            output = work_dir / f"concat_{camera}.mp4"
            label = f"Concatenating camera {camera.upper()} ({len(inputs)} segments)"
            self._stage_started(job_id, StageKind.CONCATENATE, label, progress)
            # Raw camera segments are VFR, so this join always re-encodes
            self.ffmpeg.concatenate(inputs, output, progress.stage_sink(), reencode=True)
            concatenated[camera] = output
            self._stage_completed(job_id, StageKind.CONCATENATE, label, output, progress)

        # Padding sits between steps and does not advance the counter
        policy = PaddingPolicy(self.ffprobe, self.ffmpeg, self.padding_tolerance)
        left, right, decision = policy.apply(concatenated["a"], concatenated["b"], work_dir)
        if decision.pad:
            self.event_bus.publish(PaddingApplied(job_id=job_id, target=decision.target, amount_seconds=decision.amount))

        combined = work_dir / "combined.mp4"
        label = "Combining cameras side by side"
        self._stage_started(job_id, StageKind.COMBINE, label, progress)
        self.ffmpeg.combine(left, right, combined, progress.stage_sink())
        self._stage_completed(job_id, StageKind.COMBINE, label, combined, progress)

        final = work_dir / "final.mp4"
        label = "Compressing final video"
        self._stage_started(job_id, StageKind.COMPRESS, label, progress)
        self.ffmpeg.compress(combined, final, config, progress.stage_sink())
        self._stage_completed(job_id, StageKind.COMPRESS, label, final, progress)
        return final


STRATEGIES: Dict[PipelineMode, Type[PipelineStrategy]] = {
    PairwiseStrategy.mode: PairwiseStrategy,
    ConcatenateFirstStrategy.mode: ConcatenateFirstStrategy,
}

def select_strategy(mode: PipelineMode, ffmpeg: FFmpegAdapter, ffprobe: FFprobeAdapter,
                    event_bus: EventBus, padding_tolerance: float = DEFAULT_TOLERANCE) -> PipelineStrategy:
    try:
        strategy_cls = STRATEGIES[PipelineMode(mode)]
    except (KeyError, ValueError):
        raise InputValidationError(f"Unknown pipeline mode {mode!r}")
    return strategy_cls(ffmpeg, ffprobe, event_bus, padding_tolerance)
