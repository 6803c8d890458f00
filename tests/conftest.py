import pytest
from pathlib import Path
from unittest.mock import MagicMock
from dualcam.config.models import PipelineConfig, PipelineMode
from dualcam.domain.models import StageResult, StreamOrder
from dualcam.infrastructure.event_bus import EventBus

STAGE_PROGRESS = (25, 50, 100)


def touch(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"\x00")
    return path


def _emit(on_progress):
    if on_progress:
        for percent in STAGE_PROGRESS:
            on_progress(percent)


@pytest.fixture
def make_streams(tmp_path):
    """Creates placeholder camera files and returns a StreamOrder over them."""
    def factory(count_a: int, count_b: int) -> StreamOrder:
        inputs = tmp_path / "uploads"
        a = [touch(inputs / "a" / f"cam_a_{i + 1:02d}.mp4") for i in range(count_a)]
        b = [touch(inputs / "b" / f"cam_b_{i + 1:02d}.mp4") for i in range(count_b)]
        return StreamOrder(a=a, b=b)
    return factory


@pytest.fixture
def stage_runner():
    """FFmpegAdapter stand-in: reports 25/50/100 per stage and writes the output file."""
    runner = MagicMock()

    def combine(video_a, video_b, output, on_progress=None):
        _emit(on_progress)
        return StageResult(output_path=touch(output))

    def concatenate(inputs, output, on_progress=None, reencode=False):
        _emit(on_progress)
        return StageResult(output_path=touch(output))

    def compress(input_path, output, config, on_progress=None):
        _emit(on_progress)
        return StageResult(output_path=touch(output))

    def pad(input_path, output, padding, on_progress=None):
        _emit(on_progress)
        return StageResult(output_path=touch(output))

    runner.combine.side_effect = combine
    runner.concatenate.side_effect = concatenate
    runner.compress.side_effect = compress
    runner.pad.side_effect = pad
    return runner


@pytest.fixture
def prober():
    """FFprobeAdapter stand-in with per-filename durations (default 60s)."""
    probe = MagicMock()
    probe.durations = {}
    probe.get_duration.side_effect = lambda path: probe.durations.get(Path(path).name, 60.0)
    probe.get_stream_info.return_value = {
        "width": 2560,
        "height": 720,
        "codec": "h264",
        "fps": 30.0,
        "has_audio": True,
        "audio_channels": 2,
        "sample_rate": 48000,
    }
    return probe


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def pairwise_config():
    return PipelineConfig(crf=28, preset="slow", audio_bitrate="96k", mode=PipelineMode.PAIRWISE)


@pytest.fixture
def concat_first_config():
    return PipelineConfig(crf=30, preset="medium", max_width=1920, audio_bitrate="128k",
                          mode=PipelineMode.CONCATENATE_FIRST)
