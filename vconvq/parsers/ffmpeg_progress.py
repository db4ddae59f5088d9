# vconvq/parsers/ffmpeg_progress.py
import math
import re

_OUT_TIME_US = re.compile(rb"^\s*out_time_us=(-?\d+)\s*$")
_PROGRESS_END = re.compile(rb"^\s*progress=end\s*$")

ERROR_KEYWORDS = (
    "unknown encoder",
    "invalid argument",
    "failed",
    "could not write header",
    "no such file or directory",
)


def _clamp01(v: float) -> float:
    if not math.isfinite(v):
        return 0.0
    if v < 0:
        return 0.0
    if v > 1:
        return 1.0
    return v


class ProgressStreamParser:
    """Turns `-progress pipe:1` output into completion fractions.

    Chunks need not be line aligned: an incomplete trailing line stays
    buffered until the next feed() or flush().
    """

    def __init__(self, duration_seconds: float | None):
        self.duration = duration_seconds if duration_seconds and duration_seconds > 0 else None
        self.ended = False
        self._buf = bytearray()

    def feed(self, chunk: bytes) -> list[float]:
        self._buf.extend(chunk)
        out = []
        while (nl := self._buf.find(b"\n")) >= 0:
            line = bytes(self._buf[:nl])
            del self._buf[: nl + 1]
            if (v := self.parse_line(line)) is not None:
                out.append(v)
        return out

    def flush(self) -> list[float]:
        if not self._buf:
            return []
        line, self._buf = bytes(self._buf), bytearray()
        v = self.parse_line(line)
        return [v] if v is not None else []

    def parse_line(self, line: bytes) -> float | None:
        line = line.rstrip(b"\r")
        if _PROGRESS_END.match(line):
            self.ended = True
            return None
        if not (m := _OUT_TIME_US.match(line)) or self.duration is None:
            return None
        seconds = int(m.group(1)) / 1_000_000.0
        return _clamp01(seconds / self.duration)


class DiagnosticBuffer:
    """Keeps the whole stderr stream; hands out complete lines as they arrive."""

    def __init__(self):
        self._data = bytearray()
        self._pending = bytearray()

    def feed(self, chunk: bytes) -> list[str]:
        self._data.extend(chunk)
        self._pending.extend(chunk)
        lines = []
        while (nl := self._pending.find(b"\n")) >= 0:
            lines.append(self._pending[:nl].decode("utf-8", errors="replace").rstrip("\r"))
            del self._pending[: nl + 1]
        return lines

    def flush(self) -> list[str]:
        if not self._pending:
            return []
        tail, self._pending = self._pending.decode("utf-8", errors="replace").rstrip("\r"), bytearray()
        return [tail]

    def text(self) -> str:
        return self._data.decode("utf-8", errors="replace")


def extract_error(stderr: str, lookback: int = 10) -> str | None:
    lines = [s for ln in stderr.splitlines() if (s := ln.strip())]
    for line in reversed(lines[-lookback:] if lookback > 0 else []):
        low = line.lower()
        if low.startswith("error") or any(k in low for k in ERROR_KEYWORDS):
            return line
    return None


def failure_message(stderr: str, returncode: int) -> str:
    if msg := extract_error(stderr):
        return msg
    if returncode < 0:
        return f"FFmpeg was terminated by signal {-returncode}."
    msg = f"FFmpeg failed with exit code {returncode}."
    if not stderr.strip():
        msg += " No specific error message found on stderr."
    return msg
