import shutil
import sys
from pathlib import Path

from ..errors import OutputDirectoryMissing

VIDEO_EXTENSIONS = {".mp4", ".mov", ".avi", ".mkv", ".m4v", ".wmv", ".flv", ".webm", ".mpg", ".mpeg", ".ts", ".mts"}


def is_video_file(path: Path) -> bool:
    return path.is_file() and path.suffix.lower() in VIDEO_EXTENSIONS


def collect_media_files(paths) -> list[Path]:
    """
    Expand dropped/selected paths into video files.

    Files are kept if they look like video. Folders contribute their direct
    children (hidden entries skipped), sorted by name. Duplicates are dropped
    while preserving first-seen order.
    """
    found: list[Path] = []
    seen: set[Path] = set()

    def _add(p: Path):
        key = p.resolve()
        if key not in seen:
            seen.add(key)
            found.append(p)

    for raw in paths:
        p = Path(raw)
        if p.is_dir():
            try:
                children = sorted(p.iterdir())
            except (PermissionError, OSError):
                continue
            for child in children:
                if not child.name.startswith(".") and is_video_file(child):
                    _add(child)
        elif is_video_file(p):
            _add(p)
    return found


def output_path_for(input_path: Path, output_dir: Path | None, output_format: str) -> Path:
    if output_dir is None or not Path(output_dir).is_dir():
        raise OutputDirectoryMissing(f"Output folder not found: {output_dir or '(none chosen)'}")
    return Path(output_dir) / f"{Path(input_path).stem}.{output_format}"


def _exe(name: str) -> str:
    return f"{name}.exe" if sys.platform == "win32" else name


def find_ffmpeg(configured: str | None = None) -> str | None:
    """Configured path first, then PATH."""
    if configured:
        if Path(configured).is_file():
            return str(configured)
        if found := shutil.which(configured):
            return found
    return shutil.which(_exe("ffmpeg"))


def find_ffprobe(configured: str | None = None, ffmpeg_path: str | None = None) -> str | None:
    """Configured path, then PATH, then next to ffmpeg."""
    if configured:
        if Path(configured).is_file():
            return str(configured)
        if found := shutil.which(configured):
            return found
    if found := shutil.which(_exe("ffprobe")):
        return found
    if ffmpeg_path and (sibling := Path(ffmpeg_path).parent / _exe("ffprobe")).is_file():
        return str(sibling)
    return None
