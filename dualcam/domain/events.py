from pathlib import Path
from pydantic import BaseModel
from .models import PaddingTarget, StageKind

class Event(BaseModel):
    """Base class for all domain events."""
    pass

class JobEvent(Event):
    job_id: str

class JobStarted(JobEvent):
    mode: str

class JobProgressUpdated(JobEvent):
    progress_percent: int

class JobCompleted(JobEvent):
    output_path: Path

class JobFailed(JobEvent):
    error_message: str

class StageStarted(JobEvent):
    stage: StageKind
    label: str
    step: int
    total_steps: int

class StageCompleted(JobEvent):
    stage: StageKind
    label: str
    output_path: Path

class PaddingApplied(JobEvent):
    target: PaddingTarget
    amount_seconds: float
