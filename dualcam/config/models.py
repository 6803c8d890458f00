import re
from enum import Enum
from pathlib import Path
from typing import Optional
from pydantic import BaseModel, Field, field_validator

_BITRATE_RE = re.compile(r"^\d+k$")

class Preset(str, Enum):
    """x264 speed/compression tradeoffs, fastest first."""
    ULTRAFAST = "ultrafast"
    SUPERFAST = "superfast"
    VERYFAST = "veryfast"
    FASTER = "faster"
    FAST = "fast"
    MEDIUM = "medium"
    SLOW = "slow"
    SLOWER = "slower"
    VERYSLOW = "veryslow"

class PipelineMode(str, Enum):
    PAIRWISE = "pairwise"
    CONCATENATE_FIRST = "concatenate_first"

def _check_bitrate(v: str) -> str:
    if not _BITRATE_RE.match(v):
        raise ValueError(f"Invalid audio bitrate '{v}'. Expected a token like '96k'.")
    return v

class PipelineConfig(BaseModel):
    """Per-job settings for the final compression and the pipeline topology."""
    crf: int = Field(default=28, ge=0, le=51)
    preset: Preset = Preset.SLOW
    max_width: Optional[int] = Field(default=None, gt=0)
    audio_bitrate: str = "96k"
    mode: PipelineMode = PipelineMode.PAIRWISE

    @field_validator('audio_bitrate')
    @classmethod
    def validate_audio_bitrate(cls, v: str) -> str:
        return _check_bitrate(v)

class IntermediateConfig(BaseModel):
    """Encoder settings for the combine/concat stages feeding the final compress."""
    crf: int = Field(default=18, ge=0, le=51)
    preset: Preset = Preset.VERYFAST
    audio_bitrate: str = "192k"
    pair_height: int = Field(default=720, gt=0)

    @field_validator('audio_bitrate')
    @classmethod
    def validate_audio_bitrate(cls, v: str) -> str:
        return _check_bitrate(v)

class ToolsConfig(BaseModel):
    ffmpeg: str = "ffmpeg"
    ffprobe: str = "ffprobe"

class GeneralConfig(BaseModel):
    output_dir: Path = Path("output")
    padding_tolerance: float = Field(default=5.0, ge=0.0)
    max_jobs: int = Field(default=2, gt=0)
    debug: bool = False

class AppConfig(BaseModel):
    general: GeneralConfig = Field(default_factory=GeneralConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    intermediate: IntermediateConfig = Field(default_factory=IntermediateConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
