"""Typed builders for ffmpeg filter graphs and concat-demuxer manifests.

Filter graphs and file lists are assembled from validated parts instead of
string concatenation, so that a malformed label or an unquotable path fails
before ffmpeg is started.
"""
import os
import re
import tempfile
from pathlib import Path
from typing import Iterable, List, Sequence, Union
from dualcam.domain.exceptions import PipelineIOError

_LABEL_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_STREAM_SPEC_RE = re.compile(r"^\d+:[vas]$")
_FORBIDDEN_ARG_CHARS = set("[],;'=\n\r")
# The concat demuxer reads its script line by line.
_FORBIDDEN_PATH_CHARS = ("\n", "\r", "\0")

FilterArg = Union[int, float, str]


def _format_arg(value: FilterArg) -> str:
    """Floats are written with microsecond precision, the resolution of ffmpeg durations."""
    if isinstance(value, bool):
        raise ValueError("Boolean filter arguments are not supported")
    if isinstance(value, float):
        text = f"{value:.6f}".rstrip("0").rstrip(".")
        return text or "0"
    text = str(value)
    if not text or _FORBIDDEN_ARG_CHARS & set(text):
        raise ValueError(f"Invalid filter argument {text!r}")
    return text


def filter_expr(name: str, *args: FilterArg, **options: FilterArg) -> str:
    """Renders one filter, e.g. filter_expr("scale", -2, 720) -> 'scale=-2:720'."""
    if not _LABEL_RE.match(name):
        raise ValueError(f"Invalid filter name {name!r}")
    parts = [_format_arg(a) for a in args]
    parts.extend(f"{key}={_format_arg(val)}" for key, val in options.items())
    return f"{name}={':'.join(parts)}" if parts else name


class FilterChain:
    def __init__(self, inputs: Sequence[str], filters: Sequence[str], outputs: Sequence[str]):
        if not filters:
            raise ValueError("A filter chain needs at least one filter")
        self.inputs = list(inputs)
        self.filters = list(filters)
        self.outputs = list(outputs)

    def render(self) -> str:
        head = "".join(f"[{label}]" for label in self.inputs)
        tail = "".join(f"[{label}]" for label in self.outputs)
        return f"{head}{','.join(self.filters)}{tail}"


class FilterGraph:
    """A -filter_complex description with label bookkeeping.

    Inputs are either stream specifiers of the command inputs (``0:v``) or
    labels produced by an earlier chain. Every produced label has to be
    consumed by a later chain or mapped to the output.
    """

    def __init__(self):
        self._chains: List[FilterChain] = []
        self._produced: List[str] = []
        self._consumed: set = set()

    def chain(self, inputs: Sequence[str], filters: Sequence[str], outputs: Sequence[str]) -> "FilterGraph":
        for label in inputs:
            if _STREAM_SPEC_RE.match(label):
                continue
            if label not in self._produced:
                raise ValueError(f"Filter input [{label}] is not produced by an earlier chain")
            if label in self._consumed:
                raise ValueError(f"Filter label [{label}] is consumed twice")
            self._consumed.add(label)
        for label in outputs:
            if not _LABEL_RE.match(label):
                raise ValueError(f"Invalid filter label {label!r}")
            if label in self._produced:
                raise ValueError(f"Filter label [{label}] is produced twice")
            self._produced.append(label)
        self._chains.append(FilterChain(inputs, filters, outputs))
        return self

    def render(self, mapped: Iterable[str]) -> str:
        mapped = set(mapped)
        unknown = mapped - set(self._produced)
        if unknown:
            raise ValueError(f"Mapped labels {sorted(unknown)} are not produced by the graph")
        dangling = [l for l in self._produced if l not in self._consumed and l not in mapped]
        if dangling:
            raise ValueError(f"Filter labels {dangling} are neither consumed nor mapped")
        return ";".join(chain.render() for chain in self._chains)


class ConcatList:
    """Manifest for the ffmpeg concat demuxer (``-f concat -safe 0``)."""

    def __init__(self, paths: Sequence[Path]):
        if not paths:
            raise PipelineIOError("No input videos provided for concatenation")
        for path in paths:
            if any(ch in str(path) for ch in _FORBIDDEN_PATH_CHARS):
                raise PipelineIOError(f"Path {str(path)!r} cannot be written to a concat list")
        # Relative entries would resolve against the list file's directory.
        self.paths = [Path(p).absolute() for p in paths]

    @staticmethod
    def quote(path: Path) -> str:
        return "'" + str(path).replace("'", "'\\''") + "'"

    def render(self) -> str:
        return "".join(f"file {self.quote(p)}\n" for p in self.paths)

    def write(self, directory: Path) -> Path:
        """Writes the manifest to a fresh file in directory. Caller removes it."""
        try:
            fd, name = tempfile.mkstemp(prefix="ffmpeg-concat-", suffix=".txt", dir=directory)
        except OSError as e:
            raise PipelineIOError(f"Failed to prepare concatenation: {e}") from e
        list_path = Path(name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(self.render())
        except OSError as e:
            list_path.unlink(missing_ok=True)
            raise PipelineIOError(f"Failed to prepare concatenation: {e}") from e
        return list_path
