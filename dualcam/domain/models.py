from enum import Enum
from pathlib import Path
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field
from dualcam.config.models import PipelineConfig

class JobStatus(str, Enum):
    PROCESSING = "processing"
    DONE = "done"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self is not JobStatus.PROCESSING

class StageKind(str, Enum):
    COMBINE = "combine"
    CONCATENATE = "concatenate"
    COMPRESS = "compress"

class PaddingTarget(str, Enum):
    A = "A"
    B = "B"

class StreamOrder(BaseModel):
    """Ordered input files of camera A and camera B."""
    a: List[Path] = Field(default_factory=list)
    b: List[Path] = Field(default_factory=list)

class StageResult(BaseModel):
    output_path: Path
    duration_seconds: Optional[float] = None

class Job(BaseModel):
    """Mutable registry record. Only the JobManager touches it."""
    id: str
    config: PipelineConfig
    streams: StreamOrder
    status: JobStatus = JobStatus.PROCESSING
    progress: int = 0
    error_message: Optional[str] = None
    output_path: Optional[Path] = None

class JobSnapshot(BaseModel):
    """Read-only view handed out to pollers."""
    model_config = ConfigDict(frozen=True)

    id: str
    status: JobStatus
    progress: int
    error_message: Optional[str] = None
