from dualcam.infrastructure.ffmpeg import ProgressSink, round_half_up

class StepProgress:
    """Overall job progress from equally weighted steps.

    overall = (completed_steps + stage_fraction) / total_steps * 100, halves rounded up.
    """

    def __init__(self, total_steps: int, sink: ProgressSink):
        if total_steps <= 0:
            raise ValueError(f"total_steps must be positive, got {total_steps}")
        self.total_steps = total_steps
        self.completed_steps = 0
        self._sink = sink

    def overall(self, stage_percent: float = 0.0) -> int:
        fraction = min(max(stage_percent, 0.0), 100.0) / 100
        return round_half_up((self.completed_steps + fraction) / self.total_steps * 100)

    def stage_sink(self) -> ProgressSink:
        """Progress callback for the stage currently running."""
        def report(percent: int):
            self._sink(self.overall(percent))
        return report

    def step_done(self):
        self.completed_steps = min(self.completed_steps + 1, self.total_steps)
        self._sink(self.overall())
