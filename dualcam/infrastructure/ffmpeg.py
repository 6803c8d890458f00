import math
import subprocess
import re
import logging
import queue
import threading
import time
from collections import deque
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence
from dualcam.config.models import IntermediateConfig, PipelineConfig
from dualcam.domain.exceptions import PipelineIOError, ProbeFailure, ToolInvocationError
from dualcam.domain.models import StageResult
from dualcam.infrastructure.ffprobe import FFprobeAdapter
from dualcam.infrastructure.filtergraph import ConcatList, FilterGraph, filter_expr

ProgressSink = Callable[[int], None]

# Regex to parse the input header 'Duration: 00:01:02.50' from ffmpeg stderr
_DURATION_RE = re.compile(r"Duration:\s*(\d+):(\d+):(\d+(?:\.\d+)?)")
_STDERR_TAIL = 20


def round_half_up(value: float) -> int:
    """Percent rounding: exact halves go up (12.5 -> 13)."""
    return math.floor(value + 0.5)


def parse_timestamp(value: str) -> Optional[float]:
    """'HH:MM:SS.ffffff' -> seconds, None for 'N/A' or garbage."""
    parts = value.strip().split(":")
    if len(parts) != 3:
        return None
    try:
        h, m, s = float(parts[0]), float(parts[1]), float(parts[2])
    except ValueError:
        return None
    return h * 3600 + m * 60 + s


class ProgressTracker:
    """Turns ffmpeg '-progress' key=value lines into 0-100 percentages.

    With an explicit total duration (re-encoding concat) the percentage is
    elapsed output time over that total, held at 99 until the process exits.
    Otherwise it falls back to the tool's own estimate: output time over the
    longest input duration announced on stderr.
    """

    def __init__(self, total_duration: Optional[float] = None):
        self.total_duration = total_duration if total_duration and total_duration > 0 else None
        self.reported_duration = 0.0
        self.last_percent: Optional[int] = None

    def observe_log(self, line: str):
        match = _DURATION_RE.search(line)
        if match:
            h, m, s = map(float, match.groups())
            self.reported_duration = max(self.reported_duration, h * 3600 + m * 60 + s)

    def observe_progress(self, line: str) -> Optional[int]:
        key, _, value = line.strip().partition("=")
        if key == "out_time_us":
            try:
                seconds = int(value) / 1_000_000
            except ValueError:
                return None
        elif key == "out_time":
            seconds = parse_timestamp(value)
            if seconds is None:
                return None
        else:
            return None

        percent = self.percent_for(max(0.0, seconds))
        if percent is None or percent == self.last_percent:
            return None
        self.last_percent = percent
        return percent

    def percent_for(self, seconds: float) -> Optional[int]:
        if self.total_duration:
            return min(99, round_half_up(seconds / self.total_duration * 100))
        if self.reported_duration > 0:
            return min(100, round_half_up(seconds / self.reported_duration * 100))
        return None


def _pump(stream: Iterable[str], kind: str, channel: "queue.Queue"):
    try:
        for line in stream:
            channel.put((kind, line))
    finally:
        channel.put((kind, None))


class FFmpegAdapter:
    """Runs one ffmpeg process per pipeline stage."""

    def __init__(
        self,
        ffprobe: FFprobeAdapter,
        ffmpeg_path: str = "ffmpeg",
        intermediate: Optional[IntermediateConfig] = None,
        debug: bool = False
    ):
        self.ffprobe = ffprobe
        self.ffmpeg_path = ffmpeg_path
        self.intermediate = intermediate or IntermediateConfig()
        self.debug = debug
        self.logger = logging.getLogger(__name__)

    # Command builders

    def _base_command(self) -> List[str]:
        return [
            self.ffmpeg_path,
            "-hide_banner",
            "-y",  # Overwrite output files
            "-nostats",
            "-progress", "pipe:1",
        ]

    def _intermediate_codec_options(self) -> List[str]:
        return [
            "-c:v", "libx264",
            "-preset", self.intermediate.preset.value,
            "-crf", str(self.intermediate.crf),
            "-c:a", "aac",
            "-b:a", self.intermediate.audio_bitrate,
        ]

    def _build_combine_command(self, video_a: Path, video_b: Path, output: Path) -> List[str]:
        height = self.intermediate.pair_height
        graph = FilterGraph()
        graph.chain(["0:v"], [filter_expr("scale", -2, height), filter_expr("setsar", 1)], ["left"])
        graph.chain(["1:v"], [filter_expr("scale", -2, height), filter_expr("setsar", 1)], ["right"])
        graph.chain(["left", "right"], [filter_expr("hstack", inputs=2)], ["v"])
        graph.chain(["0:a", "1:a"], [filter_expr("amerge", inputs=2)], ["a"])

        cmd = self._base_command()
        cmd.extend(["-i", str(video_a), "-i", str(video_b)])
        cmd.extend(["-filter_complex", graph.render(mapped=["v", "a"])])
        cmd.extend(["-map", "[v]", "-map", "[a]"])
        # Both cameras record VFR; pair outputs must be CFR for stream-copy concat
        cmd.extend(["-fps_mode", "cfr"])
        cmd.extend(self._intermediate_codec_options())
        cmd.append(str(output))
        return cmd

    def _build_concat_command(self, list_path: Path, output: Path, reencode: bool) -> List[str]:
        cmd = self._base_command()
        cmd.extend(["-f", "concat", "-safe", "0", "-i", str(list_path)])
        if reencode:
            cmd.extend(["-fps_mode", "cfr"])
            cmd.extend(self._intermediate_codec_options())
        else:
            cmd.extend(["-c", "copy"])
        cmd.append(str(output))
        return cmd

    def _build_compress_command(self, input_path: Path, output: Path, config: PipelineConfig) -> List[str]:
        cmd = self._base_command()
        cmd.extend(["-i", str(input_path)])
        cmd.extend([
            "-c:v", "libx264",
            "-crf", str(config.crf),
            "-preset", config.preset.value,
        ])
        if config.max_width:
            cmd.extend(["-vf", filter_expr("scale", config.max_width, -2)])
        cmd.extend([
            "-c:a", "aac",
            "-b:a", config.audio_bitrate,
            "-movflags", "+faststart",
        ])
        cmd.append(str(output))
        return cmd

    def _build_pad_command(self, input_path: Path, output: Path, padding: float) -> List[str]:
        graph = FilterGraph()
        graph.chain(["0:v"], [filter_expr("tpad", stop_mode="clone", stop_duration=padding)], ["v"])
        graph.chain(["0:a"], [filter_expr("apad", pad_dur=padding)], ["a"])

        cmd = self._base_command()
        cmd.extend(["-i", str(input_path)])
        cmd.extend(["-filter_complex", graph.render(mapped=["v", "a"])])
        cmd.extend(["-map", "[v]", "-map", "[a]"])
        cmd.extend(self._intermediate_codec_options())
        cmd.append(str(output))
        return cmd

    # Stages

    def combine(self, video_a: Path, video_b: Path, output: Path,
                on_progress: Optional[ProgressSink] = None) -> StageResult:
        """Side-by-side (hstack) of two videos with merged audio, normalized to CFR.

        Pairs keep the stacked width; scaling to max_width happens once, in compress.
        """
        self._require_inputs([video_a, video_b])
        cmd = self._build_combine_command(video_a, video_b, output)
        self._run(cmd, "combine videos", on_progress)
        return StageResult(output_path=output)

    def concatenate(self, inputs: Sequence[Path], output: Path,
                    on_progress: Optional[ProgressSink] = None, reencode: bool = False) -> StageResult:
        """Concat demuxer join. Stream copy, or re-encode with CFR normalization."""
        list_file = ConcatList(inputs)
        self._require_inputs(inputs)

        total_duration = None
        if reencode and on_progress:
            total_duration = self._total_duration(inputs)

        list_path = list_file.write(output.parent)
        try:
            cmd = self._build_concat_command(list_path, output, reencode)
            self._run(cmd, "concatenate videos", on_progress, total_duration=total_duration)
        finally:
            try:
                list_path.unlink(missing_ok=True)
            except OSError as e:
                self.logger.warning(f"Could not remove concat list {list_path}: {e}")
        return StageResult(output_path=output, duration_seconds=total_duration)

    def compress(self, input_path: Path, output: Path, config: PipelineConfig,
                 on_progress: Optional[ProgressSink] = None) -> StageResult:
        self._require_inputs([input_path])
        cmd = self._build_compress_command(input_path, output, config)
        self._run(cmd, "compress video", on_progress)
        return StageResult(output_path=output)

    def pad(self, input_path: Path, output: Path, padding: float,
            on_progress: Optional[ProgressSink] = None) -> StageResult:
        """Appends `padding` seconds of the cloned last frame and silence."""
        if padding <= 0:
            raise ValueError(f"Padding duration must be positive, got {padding}")
        self._require_inputs([input_path])
        cmd = self._build_pad_command(input_path, output, padding)
        self._run(cmd, "pad video", on_progress)
        return StageResult(output_path=output)

    # Internals

    def _require_inputs(self, paths: Sequence[Path]):
        missing = [str(p) for p in paths if not Path(p).exists()]
        if missing:
            raise PipelineIOError(f"Missing input file(s): {', '.join(missing)}")

    def _total_duration(self, inputs: Sequence[Path]) -> Optional[float]:
        total = 0.0
        for path in inputs:
            try:
                total += self.ffprobe.get_duration(path)
            except ProbeFailure as e:
                # Progress will come from ffmpeg's own estimate instead
                self.logger.warning(f"Could not get duration for {path}: {e.reason}")
                return None
        return total

    def _run(self, cmd: List[str], stage: str, on_progress: Optional[ProgressSink],
             total_duration: Optional[float] = None):
        """Blocks until ffmpeg exits, forwarding progress as it arrives."""
        output_name = Path(cmd[-1]).name
        start_time = time.monotonic()
        if self.debug:
            self.logger.info(f"FFMPEG_START: {stage} -> {output_name}")
            self.logger.debug(f"FFMPEG_CMD: {' '.join(cmd)}")

        try:
            process = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                universal_newlines=True,
                bufsize=1
            )
        except OSError as e:
            raise ToolInvocationError(stage, f"could not start {self.ffmpeg_path}: {e}") from e

        channel: "queue.Queue" = queue.Queue()
        readers = [
            threading.Thread(target=_pump, args=(process.stdout, "progress", channel), daemon=True),
            threading.Thread(target=_pump, args=(process.stderr, "log", channel), daemon=True),
        ]
        for reader in readers:
            reader.start()

        tracker = ProgressTracker(total_duration)
        stderr_tail: deque = deque(maxlen=_STDERR_TAIL)
        open_streams = len(readers)
        try:
            while open_streams:
                kind, line = channel.get()
                if line is None:
                    open_streams -= 1
                    continue
                if kind == "log":
                    tracker.observe_log(line)
                    if line.strip():
                        stderr_tail.append(line.rstrip())
                    continue
                percent = tracker.observe_progress(line)
                if percent is not None and on_progress:
                    on_progress(percent)
        finally:
            if open_streams:
                # Left the loop early (a progress callback raised): stop ffmpeg
                self.logger.warning(f"FFMPEG_KILL: {stage} -> {output_name}")
                process.kill()
                process.wait()

        for reader in readers:
            reader.join()
        process.wait()
        elapsed = time.monotonic() - start_time

        if process.returncode != 0:
            detail = f"ffmpeg exited with code {process.returncode}"
            if stderr_tail:
                detail = f"{detail}: {stderr_tail[-1]}"
            self.logger.error(f"FFMPEG_FAIL: {stage} -> {output_name} code={process.returncode}")
            for tail_line in stderr_tail:
                self.logger.debug(f"  {tail_line}")
            raise ToolInvocationError(stage, detail, returncode=process.returncode)

        if self.debug:
            self.logger.info(f"FFMPEG_END: {stage} -> {output_name} elapsed={elapsed:.2f}s")
