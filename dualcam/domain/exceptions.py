"""Error taxonomy shared by the stage runner, the strategies and the job manager."""
from pathlib import Path
from typing import Optional


class DualcamError(Exception):
    """Base class for every error raised by the pipeline."""


class InputValidationError(DualcamError, ValueError):
    """Rejected stream order or config, raised before any stage runs."""


class ToolInvocationError(DualcamError):
    """The encoding tool could not be started or exited unsuccessfully."""

    def __init__(self, stage: str, detail: str, returncode: Optional[int] = None):
        self.stage = stage
        self.detail = detail
        self.returncode = returncode
        super().__init__(f"Failed to {stage}: {detail}")


class ProbeFailure(DualcamError):
    """Duration or stream info of a media file could not be determined."""

    def __init__(self, path: Path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to probe {path}: {reason}")


class PipelineIOError(DualcamError):
    """Concat list write/cleanup failure or a missing intermediate artifact."""


class IncompatibleSegmentsError(PipelineIOError):
    """Segments that cannot be joined by stream copy."""


class JobNotFound(DualcamError, KeyError):
    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} not found")

    def __str__(self) -> str:
        return self.args[0]


class JobNotReady(DualcamError):
    def __init__(self, job_id: str, status: str):
        self.job_id = job_id
        self.status = status
        super().__init__(f"Job {job_id} is not ready (status={status})")
