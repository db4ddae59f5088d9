import logging
from pathlib import Path

logger = logging.getLogger(__name__)

_UNITS = (("GB", 1000**3), ("MB", 1000**2), ("KB", 1000))


def file_size(path: Path | None) -> int | None:
    if path is None:
        return None
    try:
        return Path(path).stat().st_size
    except OSError as e:
        logger.debug("size unavailable for %s: %s", path, e)
        return None


def format_bytes(n: int) -> str:
    for unit, scale in _UNITS:
        if n >= scale:
            return f"{n / scale:.1f} {unit}"
    return f"{max(0, n) / 1000:.1f} KB" if n else "Zero KB"


def compression_summary(input_size: int | None, output_size: int | None) -> str:
    if input_size is None or output_size is None:
        return "Conversion complete."
    msg = f"Converted: {format_bytes(input_size)} → {format_bytes(output_size)}"
    if input_size > 0:
        change = (input_size - output_size) / input_size * 100
        if change >= 0:
            msg += f" ({change:.0f}% smaller)"
        else:
            msg += f" ({-change:.0f}% larger)"
    return msg
