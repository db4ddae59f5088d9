# vconvq/models/conversion.py
from dataclasses import asdict, dataclass

from ..errors import InvalidSettings

OUTPUT_FORMATS = ("mp4", "mov")
VIDEO_CODECS = ("h264", "hevc")
AUDIO_CODECS = ("aac", "mp3", "none")
QUALITY_PRESETS = ("high", "medium", "low")

DISPLAY_NAMES = {
    "mp4": "MP4",
    "mov": "MOV",
    "h264": "H.264 (libx264)",
    "hevc": "HEVC (H.265, libx265)",
    "aac": "AAC",
    "mp3": "MP3 (LAME)",
    "none": "None (No Audio)",
    "high": "High",
    "medium": "Medium",
    "low": "Low",
}

_CHOICES = {
    "output_format": OUTPUT_FORMATS,
    "video_codec": VIDEO_CODECS,
    "audio_codec": AUDIO_CODECS,
    "quality_preset": QUALITY_PRESETS,
}


@dataclass(frozen=True)
class ConversionSettings:
    output_format: str = "mp4"
    video_codec: str = "h264"
    audio_codec: str = "aac"
    quality_preset: str = "low"

    def __post_init__(self):
        for name, choices in _CHOICES.items():
            if (value := getattr(self, name)) not in choices:
                raise InvalidSettings(name, value)

    @classmethod
    def from_dict(cls, data: dict) -> "ConversionSettings":
        values = {}
        for name in _CHOICES:
            if name in data and data[name] is not None:
                v = data[name]
                values[name] = v.strip().lower() if isinstance(v, str) else v
        return cls(**values)

    def to_dict(self) -> dict:
        return asdict(self)

    def describe(self) -> str:
        return " • ".join(DISPLAY_NAMES[v] for v in (self.output_format, self.video_codec, self.audio_codec, self.quality_preset))
