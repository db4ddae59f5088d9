import logging
import os
import threading
from pathlib import Path
from typing import Callable

from ..errors import AccessDenied

logger = logging.getLogger(__name__)


class AccessGuard:
    """Held read permission for one input file.

    release() may be called any number of times, or never; only the first
    call runs the release hook.
    """

    def __init__(self, path: Path, on_release: Callable[[Path], None] | None = None):
        self.path = Path(path)
        self._on_release = on_release
        self._released = False
        self._lock = threading.Lock()

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        with self._lock:
            if self._released:
                return
            self._released = True
            hook, self._on_release = self._on_release, None
        if hook:
            try:
                hook(self.path)
            except Exception:
                logger.exception("release hook failed for %s", self.path)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.release()

    def __repr__(self):
        return f"AccessGuard({str(self.path)!r}, released={self._released})"


class FileAccessProvider:
    """Grants access to readable regular files."""

    def acquire(self, path: Path) -> AccessGuard:
        p = Path(path)
        if not p.is_file():
            raise AccessDenied(f"Unable to access input file: {p.name} (not found)")
        if not os.access(p, os.R_OK):
            raise AccessDenied(f"Unable to access input file: {p.name} (permission denied)")
        logger.debug("access acquired: %s", p)
        return AccessGuard(p, on_release=lambda q: logger.debug("access released: %s", q))


class NullAccessProvider:
    def acquire(self, path: Path) -> AccessGuard:
        return AccessGuard(Path(path))
