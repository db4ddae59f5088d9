import logging
import os
import select
import shlex
import subprocess
import sys
import threading
import time
from pathlib import Path
from typing import Callable

from PySide6.QtCore import QObject, Signal

from ..errors import CANCELLED_MESSAGE, ConversionError, DurationUnknown, ErrorKind, LaunchFailed, RuntimeFailure, UserCancelled
from ..parsers.ffmpeg_progress import DiagnosticBuffer, ProgressStreamParser, extract_error, failure_message
from ..utils.log import log_ffmpeg_command, log_ffmpeg_line
from .duration_probe import probe_duration

logger = logging.getLogger(__name__)


class FFmpegRunner(QObject):
    """Runs one ffmpeg process at a time on a background thread.

    Every run() ends with exactly one of `finished` or `failed`; nothing is
    emitted for that job afterwards. `failed` carries an ErrorKind value so
    a cancellation can be told apart from an encoder error.
    """

    started = Signal(str)                 # job_id
    progress = Signal(str, float)         # job_id, fraction 0..1
    finished = Signal(str)                # job_id
    failed = Signal(str, str, str)        # job_id, message, ErrorKind value
    line_out = Signal(str, str)           # job_id, stderr line

    def __init__(self, duration_probe: Callable[..., float] | None = None, terminate_timeout: float = 5.0, parent=None):
        super().__init__(parent)
        self.duration_probe = duration_probe or probe_duration
        self.terminate_timeout = terminate_timeout
        self._lock = threading.Lock()
        self._cancel = threading.Event()
        self._cancel_at = 0.0
        self._busy = False
        self._proc: subprocess.Popen | None = None
        self._job_id: str | None = None
        self._thread: threading.Thread | None = None

    def is_running(self) -> bool:
        return self._busy

    @property
    def current_job_id(self) -> str | None:
        return self._job_id

    def run(self, ffmpeg_path: str, args: list[str], job_id: str, input_path: Path) -> None:
        with self._lock:
            if self._busy:
                raise RuntimeError(f"runner busy with job {self._job_id}")
            self._busy, self._job_id = True, job_id
            self._cancel.clear()
            self._thread = threading.Thread(
                target=self._work,
                args=(ffmpeg_path, list(args), job_id, Path(input_path)),
                name=f"ffmpeg-{job_id[:8]}",
                daemon=True,
            )
            self._thread.start()

    def cancel(self) -> None:
        with self._lock:
            if not self._busy:
                logger.info("Cancel requested, but no process is running.")
                return
            self._cancel.set()
            self._cancel_at = time.monotonic()
            proc = self._proc
        if proc is not None and proc.poll() is None:
            logger.info("Terminating FFmpeg process (PID %s)…", proc.pid)
            proc.terminate()

    def wait(self, timeout: float | None = None) -> bool:
        """Join the worker thread; True if it is no longer running."""
        if (t := self._thread) is not None:
            t.join(timeout)
            return not t.is_alive()
        return True

    def _work(self, ffmpeg_path: str, args: list[str], job_id: str, input_path: Path) -> None:
        try:
            self._convert(ffmpeg_path, args, job_id, input_path)
            outcome = None
        except ConversionError as e:
            outcome = (e.kind, str(e))
        except Exception as e:
            logger.exception("unexpected error while converting %s", input_path)
            outcome = (ErrorKind.RUNTIME_FAILURE, f"ERROR: {e}")

        with self._lock:
            self._busy, self._proc, self._job_id = False, None, None

        if outcome is None:
            logger.info("FFmpeg finished successfully: %s", input_path.name)
            self.finished.emit(job_id)
        else:
            kind, message = outcome
            if kind is ErrorKind.USER_CANCELLED:
                logger.info("Conversion cancelled: %s", input_path.name)
            else:
                logger.error("Conversion failed for %s: %s", input_path.name, message)
            self.failed.emit(job_id, message, kind.value)

    def _convert(self, ffmpeg_path: str, args: list[str], job_id: str, input_path: Path) -> None:
        duration = self.duration_probe(input_path, cancel=self._cancel)
        if not duration or duration <= 0:
            raise DurationUnknown("Could not read video duration from input file.")
        if self._cancel.is_set():
            raise UserCancelled(CANCELLED_MESSAGE)

        cmd = [ffmpeg_path, *args]
        log_ffmpeg_command(cmd)
        logger.info("Starting FFmpeg for %s (duration %.2fs)", input_path.name, duration)
        logger.debug("$ %s", " ".join(shlex.quote(c) for c in cmd))

        kwargs = {}
        if sys.platform == "win32":
            kwargs["creationflags"] = subprocess.CREATE_NO_WINDOW
        try:
            proc = subprocess.Popen(cmd, stdin=subprocess.DEVNULL, stdout=subprocess.PIPE, stderr=subprocess.PIPE, **kwargs)
        except OSError as e:
            raise LaunchFailed(f"Failed to start FFmpeg: {e}") from None

        with self._lock:
            self._proc = proc
            cancelled = self._cancel.is_set()
        if cancelled:
            proc.terminate()
        logger.info("FFmpeg process launched (PID %s)", proc.pid)
        self.started.emit(job_id)

        parser = ProgressStreamParser(duration)
        diag = DiagnosticBuffer()
        with proc:
            self._pump(proc, job_id, parser, diag)
            rc = self._reap(proc)

        for v in parser.flush():
            self.progress.emit(job_id, v)
        for line in diag.flush():
            self._diag_line(job_id, line)

        stderr = diag.text()
        logger.info("FFmpeg exited with status %s", rc)
        if self._cancel.is_set():
            raise UserCancelled(CANCELLED_MESSAGE)
        if rc == 0:
            if err := extract_error(stderr):
                raise RuntimeFailure(err)
            self.progress.emit(job_id, 1.0)
            return
        raise RuntimeFailure(failure_message(stderr, rc))

    def _pump(self, proc: subprocess.Popen, job_id: str, parser: ProgressStreamParser, diag: DiagnosticBuffer) -> None:
        out_fd, err_fd = proc.stdout.fileno(), proc.stderr.fileno()
        open_fds = {out_fd, err_fd}
        killed = False
        while open_fds:
            if not killed and self._kill_if_overdue(proc):
                killed = True
            rl, _, _ = select.select(list(open_fds), [], [], 0.1)
            for fd in rl:
                if not (chunk := os.read(fd, 65536)):
                    open_fds.discard(fd)
                elif fd == out_fd:
                    for v in parser.feed(chunk):
                        self.progress.emit(job_id, v)
                else:
                    for line in diag.feed(chunk):
                        self._diag_line(job_id, line)

    def _kill_if_overdue(self, proc: subprocess.Popen) -> bool:
        """SIGKILL a cancelled process that outlived terminate_timeout."""
        if not self._cancel.is_set() or proc.poll() is not None:
            return False
        if time.monotonic() - self._cancel_at < self.terminate_timeout:
            return False
        logger.warning("FFmpeg ignored SIGTERM for %.1fs; killing PID %s", self.terminate_timeout, proc.pid)
        proc.kill()
        return True

    def _reap(self, proc: subprocess.Popen) -> int:
        # the process may close its pipes long before it exits
        while True:
            try:
                return proc.wait(timeout=0.1)
            except subprocess.TimeoutExpired:
                if self._kill_if_overdue(proc):
                    return proc.wait()

    def _diag_line(self, job_id: str, line: str) -> None:
        if line.strip():
            log_ffmpeg_line(line)
            self.line_out.emit(job_id, line)
