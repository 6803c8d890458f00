import pytest
from pathlib import Path
from dualcam.domain.exceptions import ProbeFailure
from dualcam.domain.models import PaddingTarget
from dualcam.pipeline.padding import PaddingPolicy, should_pad

def test_difference_at_tolerance_is_not_padded():
    decision = should_pad(65.0, 60.0)
    assert decision.pad is False
    assert decision.target is None
    assert decision.amount == 0.0

def test_longer_a_pads_b():
    decision = should_pad(70.0, 60.0)
    assert decision.pad is True
    assert decision.target is PaddingTarget.B
    assert decision.amount == 10.0

def test_longer_b_pads_a():
    decision = should_pad(58.5, 64.0)
    assert decision.pad is True
    assert decision.target is PaddingTarget.A
    assert decision.amount == pytest.approx(5.5)

def test_equal_durations():
    assert should_pad(42.0, 42.0).pad is False

def test_custom_tolerance():
    assert should_pad(61.5, 60.0, tolerance=1.0).pad is True
    assert should_pad(70.0, 60.0, tolerance=15.0).pad is False

class TestPaddingPolicy:
    def test_pads_shorter_stream(self, tmp_path, prober, stage_runner):
        prober.durations = {"concat_a.mp4": 70.0, "concat_b.mp4": 60.0}
        policy = PaddingPolicy(prober, stage_runner)

        left, right, decision = policy.apply(tmp_path / "concat_a.mp4", tmp_path / "concat_b.mp4", tmp_path)

        assert decision.target is PaddingTarget.B
        assert left == tmp_path / "concat_a.mp4"
        assert right == tmp_path / "concat_b_padded.mp4"
        args = stage_runner.pad.call_args[0]
        assert args[0] == tmp_path / "concat_b.mp4"
        assert args[1] == tmp_path / "concat_b_padded.mp4"
        assert args[2] == 10.0

    def test_pads_camera_a(self, tmp_path, prober, stage_runner):
        prober.durations = {"concat_a.mp4": 50.0, "concat_b.mp4": 60.0}
        policy = PaddingPolicy(prober, stage_runner)

        left, right, _ = policy.apply(tmp_path / "concat_a.mp4", tmp_path / "concat_b.mp4", tmp_path)

        assert left == tmp_path / "concat_a_padded.mp4"
        assert right == tmp_path / "concat_b.mp4"

    def test_within_tolerance_leaves_inputs(self, tmp_path, prober, stage_runner):
        prober.durations = {"concat_a.mp4": 65.0, "concat_b.mp4": 60.0}
        policy = PaddingPolicy(prober, stage_runner)

        left, right, decision = policy.apply(tmp_path / "concat_a.mp4", tmp_path / "concat_b.mp4", tmp_path)

        assert decision.pad is False
        assert (left, right) == (tmp_path / "concat_a.mp4", tmp_path / "concat_b.mp4")
        stage_runner.pad.assert_not_called()

    def test_probe_failure_is_fatal(self, tmp_path, prober, stage_runner):
        prober.get_duration.side_effect = ProbeFailure(Path("concat_b.mp4"), "could not determine video duration")
        policy = PaddingPolicy(prober, stage_runner)

        with pytest.raises(ProbeFailure):
            policy.apply(tmp_path / "concat_a.mp4", tmp_path / "concat_b.mp4", tmp_path)
        stage_runner.pad.assert_not_called()
