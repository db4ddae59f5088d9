# vconvq/utils/settings.py
import json
import logging
from pathlib import Path

from ..errors import InvalidSettings
from ..models.conversion import ConversionSettings

logger = logging.getLogger(__name__)


# Top directory = folder that contains the `vconvq/` package
def _top_dir() -> Path:
    # This file is vconvq/utils/settings.py → parents[2] is the folder above vconvq/
    return Path(__file__).resolve().parents[2]

APP_SETTINGS_FILE = _top_dir() / "vconvq_settings.json"

DEFAULT_SETTINGS = {
    "output_dir": str(Path.home() / "Converted"),
    "ffmpeg_path": "ffmpeg",
    "ffprobe_path": "ffprobe",

    # Conversion snapshot taken at batch start
    "output_format": "mp4",
    "video_codec": "h264",
    "audio_codec": "aac",
    "quality_preset": "low",
    "overwrite_existing": True,        # False => existing outputs are Skipped

    # Process handling / logging
    "terminate_timeout": 5.0,          # seconds between SIGTERM and SIGKILL on cancel
    "log_level": "INFO",
    # layout persistence:
    # "col_widths": [...],
    # "v_split_sizes": [...],
}


def load_settings(path: Path | None = None) -> dict:
    p = path or APP_SETTINGS_FILE
    if p.exists():
        try:
            data = json.loads(p.read_text())
            return {**DEFAULT_SETTINGS, **data}
        except (OSError, ValueError) as e:
            logger.warning("settings file %s unreadable (%s); using defaults", p, e)
    # First run or broken file → write defaults so the file exists
    save_settings(DEFAULT_SETTINGS, p)
    return DEFAULT_SETTINGS.copy()


def save_settings(data: dict, path: Path | None = None) -> None:
    p = path or APP_SETTINGS_FILE
    try:
        p.write_text(json.dumps(data, indent=2))
    except OSError:
        # Last resort fallback to CWD
        logger.warning("cannot write %s; saving to working directory", p)
        Path(p.name).write_text(json.dumps(data, indent=2))


def conversion_settings(settings: dict) -> ConversionSettings:
    """Validated snapshot of the codec/format/quality part of `settings`."""
    return ConversionSettings.from_dict(settings)


def coerce_conversion_settings(settings: dict) -> dict:
    """Replace invalid codec/format/quality values with defaults, in place."""
    for key in ConversionSettings.__dataclass_fields__:
        try:
            ConversionSettings.from_dict({key: settings.get(key)})
        except InvalidSettings:
            logger.warning("invalid %s=%r in settings; using %r", key, settings.get(key), DEFAULT_SETTINGS[key])
            settings[key] = DEFAULT_SETTINGS[key]
    return settings
