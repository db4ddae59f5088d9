from __future__ import annotations

import os

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from pathlib import Path

import pytest
from PySide6.QtCore import QObject, Signal

from vconvq.engine.scheduler import ConversionScheduler
from vconvq.errors import ErrorKind
from vconvq.utils.access import AccessGuard


class FakeRunner(QObject):
    """Stands in for FFmpegRunner; the test drives its signals by hand."""

    started = Signal(str)
    progress = Signal(str, float)
    finished = Signal(str)
    failed = Signal(str, str, str)
    line_out = Signal(str, str)

    def __init__(self):
        super().__init__()
        self.calls: list[tuple] = []
        self.cancel_calls = 0
        self.terminate_timeout = 5.0
        self.busy_with: str | None = None
        self.wait_timeouts: list = []

    def run(self, ffmpeg_path, args, job_id, input_path):
        assert self.busy_with is None, "scheduler launched a second job while one was live"
        self.busy_with = job_id
        self.calls.append((ffmpeg_path, list(args), job_id, Path(input_path)))

    def cancel(self):
        self.cancel_calls += 1

    def wait(self, timeout=None):
        self.wait_timeouts.append(timeout)
        return True

    def is_running(self):
        return self.busy_with is not None

    @property
    def last_job_id(self) -> str:
        return self.calls[-1][2]

    def complete(self, job_id: str, steps=(0.25, 0.5)):
        self.started.emit(job_id)
        for v in steps:
            self.progress.emit(job_id, v)
        self.progress.emit(job_id, 1.0)
        self.busy_with = None
        self.finished.emit(job_id)

    def fail(self, job_id: str, message: str, kind: ErrorKind = ErrorKind.RUNTIME_FAILURE):
        self.busy_with = None
        self.failed.emit(job_id, message, kind.value)


class RecordingAccess:
    def __init__(self, deny: set[str] | None = None):
        self.deny = deny or set()
        self.guards: dict[str, AccessGuard] = {}

    def acquire(self, path):
        from vconvq.errors import AccessDenied

        if Path(path).name in self.deny:
            raise AccessDenied(f"Unable to access input file: {Path(path).name}")
        guard = AccessGuard(Path(path))
        self.guards[Path(path).name] = guard
        return guard


@pytest.fixture
def fake_runner(qapp):
    return FakeRunner()


@pytest.fixture
def access():
    return RecordingAccess()


@pytest.fixture
def out_dir(tmp_path):
    d = tmp_path / "out"
    d.mkdir()
    return d


@pytest.fixture
def media_files(tmp_path):
    src = tmp_path / "src"
    src.mkdir()
    files = []
    for name in ("a.mov", "b.mov", "c.mov"):
        p = src / name
        p.write_bytes(b"\0" * 1000)
        files.append(p)
    return files


@pytest.fixture
def make_scheduler(fake_runner, access):
    def _make(**kw):
        kw.setdefault("runner", fake_runner)
        kw.setdefault("access", access)
        kw.setdefault("locate_ffmpeg", lambda: "/usr/bin/ffmpeg")
        return ConversionScheduler(**kw)
    return _make


@pytest.fixture(autouse=True)
def _isolated_home(tmp_path_factory, monkeypatch):
    # keeps the ffmpeg transcript log out of the real home directory
    monkeypatch.setenv("HOME", str(tmp_path_factory.getbasetemp()))
