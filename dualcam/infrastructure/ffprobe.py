import subprocess
import json
import logging
from pathlib import Path
from typing import Dict, Any
from dualcam.domain.exceptions import ProbeFailure

class FFprobeAdapter:
    """Wrapper around ffprobe to read container duration and stream info."""

    def __init__(self, ffprobe_path: str = "ffprobe"):
        self.ffprobe_path = ffprobe_path
        self.logger = logging.getLogger(__name__)

    def _probe(self, file_path: Path) -> Dict[str, Any]:
        """Executes ffprobe and parses JSON output."""
        cmd = [
            self.ffprobe_path,
            "-v", "quiet",
            "-print_format", "json",
            "-show_streams",
            "-show_format",
            str(file_path)
        ]

        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as e:
            raise ProbeFailure(file_path, f"could not run {self.ffprobe_path}: {e}") from e
        if result.returncode != 0:
            raise ProbeFailure(file_path, f"ffprobe exited with code {result.returncode}: {result.stderr.strip()}")

        try:
            return json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise ProbeFailure(file_path, f"unparsable ffprobe output: {e}") from e

    def get_duration(self, file_path: Path) -> float:
        """Container-level duration in seconds."""
        data = self._probe(file_path)
        raw = data.get("format", {}).get("duration")
        if raw in (None, "", "N/A"):
            raise ProbeFailure(file_path, "could not determine video duration")
        try:
            duration = float(raw)
        except (TypeError, ValueError):
            raise ProbeFailure(file_path, f"invalid duration value {raw!r}")
        self.logger.debug(f"PROBE: {file_path.name} duration={duration:.3f}s")
        return duration

    def get_stream_info(self, file_path: Path) -> Dict[str, Any]:
        """Video stream properties of a file, plus the layout of its first audio stream."""
        data = self._probe(file_path)

        # Find video stream
        video_stream = next((s for s in data.get("streams", []) if s.get("codec_type") == "video"), None)
        if not video_stream:
            raise ProbeFailure(file_path, "no video stream found")

        audio_stream = next((s for s in data.get("streams", []) if s.get("codec_type") == "audio"), None)

        # Parse FPS (prefer avg_frame_rate; r_frame_rate is often timebase)
        fps = 0.0
        fps_str = video_stream.get("avg_frame_rate", "0/0")
        try:
            if "/" in fps_str:
                num, den = map(float, fps_str.split("/"))
                if den != 0:
                    fps = num / den
            else:
                fps = float(fps_str)
        except ValueError:
            fps = 0.0

        return {
            "width": int(video_stream.get("width", 0)),
            "height": int(video_stream.get("height", 0)),
            "codec": video_stream.get("codec_name", "unknown"),
            "fps": round(fps, 3),
            "has_audio": audio_stream is not None,
            "audio_channels": int(audio_stream.get("channels", 0)) if audio_stream else 0,
            "sample_rate": int(audio_stream.get("sample_rate", 0)) if audio_stream else 0,
        }
