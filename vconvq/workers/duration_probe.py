import json
import logging
import subprocess
import sys
import threading
import time
from pathlib import Path

from ..errors import CANCELLED_MESSAGE, DurationUnknown, UserCancelled
from ..utils.paths import find_ffprobe

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.2


def parse_duration(output: str) -> float:
    """Seconds from `ffprobe -show_entries format=duration -of json` output."""
    try:
        data = json.loads(output or "{}")
        value = float(data.get("format", {}).get("duration"))
    except (ValueError, TypeError, AttributeError):
        raise DurationUnknown("Could not read video duration from input file.") from None
    if not value > 0:
        raise DurationUnknown("Could not read video duration from input file.")
    return value


def probe_duration(path: Path, ffprobe: str | None = None, timeout: float = 60, cancel: threading.Event | None = None) -> float:
    """Run ffprobe on `path`; a set `cancel` event stops it with UserCancelled."""
    if not (exe := find_ffprobe(ffprobe)):
        raise DurationUnknown("ffprobe not found; cannot determine video duration.")
    cmd = [exe, "-v", "error", "-show_entries", "format=duration", "-of", "json", str(path)]
    kwargs = {}
    if sys.platform == "win32":
        kwargs["creationflags"] = subprocess.CREATE_NO_WINDOW
    try:
        proc = subprocess.Popen(cmd, stdin=subprocess.DEVNULL, stdout=subprocess.PIPE, stderr=subprocess.DEVNULL, text=True, **kwargs)
    except OSError as e:
        raise DurationUnknown(f"Could not run ffprobe: {e}") from None

    deadline = time.monotonic() + timeout
    with proc:
        while True:
            try:
                out, _ = proc.communicate(timeout=POLL_INTERVAL)
                break
            except subprocess.TimeoutExpired:
                if cancel is not None and cancel.is_set():
                    proc.kill(); proc.wait()
                    raise UserCancelled(CANCELLED_MESSAGE) from None
                if time.monotonic() >= deadline:
                    proc.kill(); proc.wait()
                    raise DurationUnknown(f"ffprobe timed out reading {Path(path).name}.") from None

    if proc.returncode != 0:
        raise DurationUnknown(f"ffprobe failed (rc={proc.returncode}) reading {Path(path).name}.")
    duration = parse_duration(out)
    logger.debug("duration of %s: %.3fs", path, duration)
    return duration
