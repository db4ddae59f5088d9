"""Logging setup and the ffmpeg transcript log."""

import logging
import sys
from pathlib import Path

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def get_log_dir() -> Path:
    log_dir = Path.home() / ".vconvq" / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir


def configure_logging(level: str | int = "INFO") -> None:
    """Root handler for the application; safe to call more than once."""
    root = logging.getLogger()
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    root.setLevel(level)
    if not any(getattr(h, "_vconvq", False) for h in root.handlers):
        h = logging.StreamHandler(sys.stderr)
        h.setFormatter(logging.Formatter(LOG_FORMAT))
        h._vconvq = True
        root.addHandler(h)


# Dedicated logger for raw ffmpeg output, kept out of the main log
_ffmpeg_logger = logging.getLogger("ffmpeg_output")
_ffmpeg_logger.setLevel(logging.DEBUG)
_ffmpeg_logger.propagate = False


def _ensure_ffmpeg_handler() -> None:
    if _ffmpeg_logger.handlers:
        return
    try:
        fh = logging.FileHandler(get_log_dir() / "ffmpeg.log", encoding="utf-8")
    except OSError:
        _ffmpeg_logger.addHandler(logging.NullHandler())
        return
    fh.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
    _ffmpeg_logger.addHandler(fh)


def log_ffmpeg_command(args: list[str]) -> None:
    _ensure_ffmpeg_handler()
    _ffmpeg_logger.info("Executing: %s", " ".join(args))


def log_ffmpeg_line(line: str) -> None:
    _ensure_ffmpeg_handler()
    _ffmpeg_logger.debug(line.rstrip())
