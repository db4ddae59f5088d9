from pathlib import Path

import pytest

from vconvq.models.conversion import ConversionSettings
from vconvq.utils.ffmpeg_command import build_command

IN = Path("/videos/in clip.mov")
OUT = Path("/out/in clip.mp4")


def args_after(cmd, flag):
    return cmd[cmd.index(flag) + 1]


def test_h264_aac_mp4():
    cmd = build_command(IN, OUT, ConversionSettings("mp4", "h264", "aac", "high"))
    assert cmd[:7] == ["-y", "-nostdin", "-i", str(IN), "-progress", "pipe:1", "-nostats"]
    assert args_after(cmd, "-c:v") == "libx264"
    assert args_after(cmd, "-crf") == "19"
    assert args_after(cmd, "-preset") == "medium"
    assert args_after(cmd, "-pix_fmt") == "yuv420p"
    assert args_after(cmd, "-c:a") == "aac"
    assert args_after(cmd, "-b:a") == "192k"
    assert args_after(cmd, "-movflags") == "+faststart"
    assert cmd[-1] == str(OUT)


@pytest.mark.parametrize("quality, crf, preset", [("high", "21", "medium"), ("medium", "24", "medium"), ("low", "28", "fast")])
def test_hevc_quality(quality, crf, preset):
    cmd = build_command(IN, OUT, ConversionSettings("mov", "hevc", "aac", quality))
    assert args_after(cmd, "-c:v") == "libx265"
    assert args_after(cmd, "-tag:v") == "hvc1"
    assert args_after(cmd, "-crf") == crf
    assert args_after(cmd, "-preset") == preset
    assert "-pix_fmt" not in cmd


@pytest.mark.parametrize("quality, crf, preset", [("medium", "22", "medium"), ("low", "25", "fast")])
def test_h264_quality(quality, crf, preset):
    cmd = build_command(IN, OUT, ConversionSettings(video_codec="h264", quality_preset=quality))
    assert args_after(cmd, "-crf") == crf
    assert args_after(cmd, "-preset") == preset


def test_mp3_audio():
    cmd = build_command(IN, OUT, ConversionSettings(audio_codec="mp3"))
    assert args_after(cmd, "-c:a") == "libmp3lame"
    assert args_after(cmd, "-b:a") == "192k"


def test_no_audio():
    cmd = build_command(IN, OUT, ConversionSettings(audio_codec="none"))
    assert "-an" in cmd
    assert "-c:a" not in cmd


def test_mov_has_no_faststart():
    cmd = build_command(IN, Path("/out/x.mov"), ConversionSettings(output_format="mov"))
    assert "-movflags" not in cmd
    assert cmd[-1] == "/out/x.mov"
