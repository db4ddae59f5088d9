from pathlib import Path

from ..models.conversion import ConversionSettings

# (crf, preset) per quality
_X264_QUALITY = {"high": ("19", "medium"), "medium": ("22", "medium"), "low": ("25", "fast")}
_X265_QUALITY = {"high": ("21", "medium"), "medium": ("24", "medium"), "low": ("28", "fast")}

_AUDIO_ARGS = {
    "aac": ["-c:a", "aac", "-b:a", "192k"],
    "mp3": ["-c:a", "libmp3lame", "-b:a", "192k"],
    "none": ["-an"],
}


def build_command(input_path: Path, output_path: Path, settings: ConversionSettings) -> list[str]:
    """ffmpeg arguments (without the executable) for one conversion.

    Progress goes to stdout as key=value lines; diagnostics stay on stderr.
    """
    cmd = ["-y", "-nostdin", "-i", str(input_path), "-progress", "pipe:1", "-nostats"]

    if settings.video_codec == "hevc":
        crf, preset = _X265_QUALITY[settings.quality_preset]
        cmd += ["-c:v", "libx265", "-tag:v", "hvc1", "-crf", crf, "-preset", preset]
    else:
        crf, preset = _X264_QUALITY[settings.quality_preset]
        cmd += ["-c:v", "libx264", "-crf", crf, "-preset", preset, "-pix_fmt", "yuv420p"]

    cmd += _AUDIO_ARGS[settings.audio_codec]

    if settings.output_format == "mp4":
        cmd += ["-movflags", "+faststart"]

    cmd.append(str(output_path))
    return cmd
