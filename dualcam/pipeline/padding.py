import logging
from pathlib import Path
from typing import Optional, Tuple
from pydantic import BaseModel, ConfigDict
from dualcam.domain.models import PaddingTarget
from dualcam.infrastructure.ffmpeg import FFmpegAdapter, ProgressSink
from dualcam.infrastructure.ffprobe import FFprobeAdapter

DEFAULT_TOLERANCE = 5.0

logger = logging.getLogger(__name__)

class PaddingDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    pad: bool
    target: Optional[PaddingTarget] = None
    amount: float = 0.0

def should_pad(duration_a: float, duration_b: float, tolerance: float = DEFAULT_TOLERANCE) -> PaddingDecision:
    """Pads the shorter stream by the full difference once it exceeds the tolerance."""
    diff = abs(duration_a - duration_b)
    if diff <= tolerance:
        return PaddingDecision(pad=False)
    target = PaddingTarget.B if duration_a > duration_b else PaddingTarget.A
    return PaddingDecision(pad=True, target=target, amount=diff)

class PaddingPolicy:
    """Keeps the shorter camera from ending early once both are stacked."""

    def __init__(self, ffprobe: FFprobeAdapter, ffmpeg: FFmpegAdapter, tolerance: float = DEFAULT_TOLERANCE):
        self.ffprobe = ffprobe
        self.ffmpeg = ffmpeg
        self.tolerance = tolerance

    def decide(self, path_a: Path, path_b: Path) -> PaddingDecision:
        # ProbeFailure propagates: no safe decision without both durations
        duration_a = self.ffprobe.get_duration(path_a)
        duration_b = self.ffprobe.get_duration(path_b)
        decision = should_pad(duration_a, duration_b, self.tolerance)
        logger.info(
            f"Durations A={duration_a:.2f}s B={duration_b:.2f}s "
            f"diff={abs(duration_a - duration_b):.2f}s pad={decision.pad}"
        )
        return decision

    def apply(self, path_a: Path, path_b: Path, work_dir: Path,
              on_progress: Optional[ProgressSink] = None) -> Tuple[Path, Path, PaddingDecision]:
        """Returns the (possibly padded) pair to combine and the decision taken."""
        decision = self.decide(path_a, path_b)
        if not decision.pad:
            return path_a, path_b, decision

        shorter = path_a if decision.target is PaddingTarget.A else path_b
        padded = work_dir / f"{shorter.stem}_padded{shorter.suffix}"
        logger.info(f"Padding {shorter.name} by {decision.amount:.2f}s")
        self.ffmpeg.pad(shorter, padded, decision.amount, on_progress)

        if decision.target is PaddingTarget.A:
            return padded, path_b, decision
        return path_a, padded, decision
