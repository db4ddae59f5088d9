"""Single-flight batch scheduler.

The scheduler is the only owner of the queue. Callers submit intents
(enqueue/remove/clear/cancel/retry/start) and observe immutable
QueueSnapshot objects through `changed`. The runner reports back through
its signals; it never sees the scheduler.

All queue mutation happens under one re-entrant lock, and signals are
emitted only after that lock is released.
"""

import logging
import threading
from pathlib import Path
from typing import Callable, Iterable

from PySide6.QtCore import QObject, Signal, Slot

from ..errors import (
    CANCELLED_MESSAGE, BatchAlreadyRunning, ConversionError, ErrorKind, ExecutableMissing, LaunchFailed,
    OutputDirectoryMissing, RuntimeFailure,
)
from ..models.conversion import ConversionSettings
from ..models.job import Job, JobStatus
from ..models.queue import BatchRun, JobSnapshot, QueueSnapshot
from ..utils.access import FileAccessProvider
from ..utils.ffmpeg_command import build_command as default_build_command
from ..utils.files import compression_summary, file_size as default_file_size
from ..utils.paths import find_ffmpeg, output_path_for
from ..workers.ffmpeg_runner import FFmpegRunner

logger = logging.getLogger(__name__)


class ConversionScheduler(QObject):
    changed = Signal(object)          # QueueSnapshot
    batch_finished = Signal(object)   # QueueSnapshot

    def __init__(
        self,
        runner: FFmpegRunner | None = None,
        access=None,
        locate_ffmpeg: Callable[[], str | None] | None = None,
        build_command: Callable = default_build_command,
        file_size: Callable[[Path], int | None] = default_file_size,
        parent=None,
    ):
        super().__init__(parent)
        self.runner = runner or FFmpegRunner()
        self.access = access or FileAccessProvider()
        self.locate_ffmpeg = locate_ffmpeg or find_ffmpeg
        self.build_command = build_command
        self.file_size = file_size

        self._lock = threading.RLock()
        self._jobs: dict[str, Job] = {}
        self._order: list[str] = []
        self._batch: BatchRun | None = None
        self._runner_job_id: str | None = None

        self.runner.started.connect(self._on_started)
        self.runner.progress.connect(self._on_progress)
        self.runner.finished.connect(self._on_finished)
        self.runner.failed.connect(self._on_failed)

    # ----- read side -------------------------------------------------------

    def snapshot(self) -> QueueSnapshot:
        with self._lock:
            return self._snapshot_locked()

    def is_running(self) -> bool:
        with self._lock:
            return bool(self._batch and self._batch.is_running)

    def _snapshot_locked(self) -> QueueSnapshot:
        b = self._batch
        return QueueSnapshot(
            jobs=tuple(JobSnapshot.of(self._jobs[i]) for i in self._order),
            is_running=bool(b and b.is_running),
            active_job_id=b.active_job_id if b else None,
            output_dir=b.output_dir if b else None,
            summary=b.summary() if b else f"Queue: {len(self._order)} jobs loaded",
        )

    def _emit(self, snap: QueueSnapshot, finished: bool = False) -> None:
        self.changed.emit(snap)
        if finished:
            logger.info("Batch finished: %s", snap.summary)
            self.batch_finished.emit(snap)

    # ----- intents ---------------------------------------------------------

    def enqueue(self, paths: Iterable) -> list[str]:
        with self._lock:
            ids = []
            for p in paths:
                job = Job(Path(p))
                self._jobs[job.id] = job
                self._order.append(job.id)
                ids.append(job.id)
            if self._batch and self._batch.is_running:
                self._batch.total += len(ids)
            finished = self._advance_locked()
            snap = self._snapshot_locked()
        logger.info("Queued %d file(s)", len(ids))
        self._emit(snap, finished)
        return ids

    def remove(self, job_id: str) -> bool:
        with self._lock:
            if (job := self._jobs.get(job_id)) is None:
                return False
            if job.status.is_active:
                self._cancel_active(job)
            elif job.status is JobStatus.PENDING and self._batch and self._batch.is_running:
                self._batch.total -= 1
            job.release_access()
            del self._jobs[job_id]
            self._order.remove(job_id)
            snap = self._snapshot_locked()
        logger.info("Removed %s from queue", job.name)
        self._emit(snap)
        return True

    def clear(self) -> None:
        with self._lock:
            finished = self._cancel_batch_locked()
            for job in self._jobs.values():
                if job.status.is_active:
                    self._cancel_active(job)
                job.release_access()
            self._jobs.clear()
            self._order.clear()
            snap = self._snapshot_locked()
        self._emit(snap, finished)

    def start_batch(self, output_dir, settings: ConversionSettings | dict, overwrite: bool = True) -> None:
        if output_dir is None or not Path(output_dir).is_dir():
            raise OutputDirectoryMissing(f"Output folder not found: {output_dir or '(none chosen)'}")
        if not isinstance(settings, ConversionSettings):
            settings = ConversionSettings.from_dict(settings)

        with self._lock:
            if self._batch and self._batch.is_running:
                raise BatchAlreadyRunning("a batch is already running")
            pending = sum(1 for j in self._jobs.values() if j.status is JobStatus.PENDING)
            self._batch = BatchRun(Path(output_dir), settings, overwrite=overwrite, total=pending)
            logger.info("Starting batch of %d job(s) → %s [%s]", pending, output_dir, settings.describe())
            finished = self._advance_locked()
            snap = self._snapshot_locked()
        self._emit(snap, finished)

    def cancel_batch(self) -> None:
        with self._lock:
            finished = self._cancel_batch_locked()
            snap = self._snapshot_locked()
        self._emit(snap, finished)

    def cancel_job(self, job_id: str) -> bool:
        with self._lock:
            if (job := self._jobs.get(job_id)) is None:
                return False
            if job.status.is_active:
                self._cancel_active(job)
            elif job.status is JobStatus.PENDING:
                job.set_status(JobStatus.CANCELLED, "Cancelled before conversion started.", ErrorKind.USER_CANCELLED)
                job.release_access()
                if self._batch and self._batch.is_running:
                    self._batch.count(JobStatus.CANCELLED)
            else:
                return False
            snap = self._snapshot_locked()
        self._emit(snap)
        return True

    def retry(self, job_id: str) -> bool:
        with self._lock:
            if (job := self._jobs.get(job_id)) is None or not job.status.is_terminal:
                return False
            job.release_access()
            job.set_status(JobStatus.PENDING)
            if self._batch and self._batch.is_running:
                self._batch.total += 1
            finished = self._advance_locked()
            snap = self._snapshot_locked()
        self._emit(snap, finished)
        return True

    # ----- batch internals -------------------------------------------------

    def _cancel_active(self, job: Job) -> None:
        """Cancel the job the runner is working on and mark it right away.

        The runner's own terminal event arrives later and is ignored for
        this job because it is already terminal.
        """
        if self._runner_job_id == job.id:
            self.runner.cancel()
        job.set_status(JobStatus.CANCELLED, CANCELLED_MESSAGE, ErrorKind.USER_CANCELLED)
        job.release_access()
        if (b := self._batch) is not None:
            if b.is_running:
                b.count(JobStatus.CANCELLED)
            if b.active_job_id == job.id:
                b.active_job_id = None

    def _cancel_batch_locked(self) -> bool:
        if (b := self._batch) is None or not b.is_running:
            return False
        for job_id in self._order:
            job = self._jobs[job_id]
            if job.status.is_active:
                self._cancel_active(job)
            elif job.status is JobStatus.PENDING:
                job.set_status(JobStatus.CANCELLED, "Batch cancelled.", ErrorKind.USER_CANCELLED)
                job.release_access()
                b.count(JobStatus.CANCELLED)
        b.is_running = False
        b.active_job_id = None
        logger.info("Batch cancelled")
        return True

    def _release_stale(self) -> None:
        for job in self._jobs.values():
            if job.access_guard is not None and job.status.is_terminal:
                job.release_access()

    def _next_pending(self) -> Job | None:
        return next((self._jobs[i] for i in self._order if self._jobs[i].status is JobStatus.PENDING), None)

    def _advance_locked(self) -> bool:
        """Start the next pending job if possible; True when the batch just finished."""
        while True:
            self._release_stale()
            if (b := self._batch) is None or not b.is_running:
                return False
            if self._runner_job_id is not None:
                return False
            if (job := self._next_pending()) is None:
                b.is_running = False
                b.active_job_id = None
                return True
            if self._launch(job, b):
                return False

    def _launch(self, job: Job, b: BatchRun) -> bool:
        """Prepare `job` and hand it to the runner.

        Returns False when the job ended during setup (failed or skipped);
        the caller then moves on to the next pending job.
        """
        if not b.overwrite:
            try:
                target = output_path_for(job.input_path, b.output_dir, b.settings.output_format)
            except OutputDirectoryMissing:
                target = None
            if target is not None and target.exists():
                job.output_path = target
                job.set_status(JobStatus.SKIPPED)
                b.count(JobStatus.SKIPPED)
                logger.info("Skipping %s: %s exists", job.name, target.name)
                return False

        job.set_status(JobStatus.PREPARING)
        b.active_job_id = job.id
        try:
            if job.access_guard is None:
                job.access_guard = self.access.acquire(job.input_path)
            out = output_path_for(job.input_path, b.output_dir, b.settings.output_format)
            if out.resolve() == job.input_path.resolve():
                raise RuntimeFailure(f"Output would overwrite the input file: {out.name}")
            job.output_path = out
            if not (exe := self.locate_ffmpeg()):
                raise ExecutableMissing("FFmpeg not found. Check Preferences.")
            args = self.build_command(job.input_path, out, b.settings)
            self._runner_job_id = job.id
            self.runner.run(exe, args, job.id, job.input_path)
        except ConversionError as e:
            self._fail_setup(job, b, str(e), e.kind)
            return False
        except (OSError, RuntimeError) as e:
            logger.exception("could not hand %s to the runner", job.name)
            self._fail_setup(job, b, f"Failed to start FFmpeg: {e}", LaunchFailed.kind)
            return False
        return True

    def _fail_setup(self, job: Job, b: BatchRun, message: str, kind: ErrorKind) -> None:
        logger.warning("%s failed during setup: %s", job.name, message)
        if self._runner_job_id == job.id:
            self._runner_job_id = None
        job.set_status(JobStatus.FAILED, message, kind)
        job.release_access()
        b.count(JobStatus.FAILED)
        b.active_job_id = None

    # ----- runner events ---------------------------------------------------

    @Slot(str)
    def _on_started(self, job_id: str) -> None:
        with self._lock:
            if (job := self._jobs.get(job_id)) is None or job.status is not JobStatus.PREPARING:
                return
            job.set_status(JobStatus.CONVERTING)
            snap = self._snapshot_locked()
        self._emit(snap)

    @Slot(str, float)
    def _on_progress(self, job_id: str, value: float) -> None:
        with self._lock:
            if (job := self._jobs.get(job_id)) is None or job.status is not JobStatus.CONVERTING:
                return
            job.set_progress(value)
            snap = self._snapshot_locked()
        self._emit(snap)

    @Slot(str)
    def _on_finished(self, job_id: str) -> None:
        self._on_terminal(job_id, None, None)

    @Slot(str, str, str)
    def _on_failed(self, job_id: str, message: str, kind: str) -> None:
        try:
            error_kind = ErrorKind(kind)
        except ValueError:
            error_kind = ErrorKind.RUNTIME_FAILURE
        self._on_terminal(job_id, message, error_kind)

    def _on_terminal(self, job_id: str, message: str | None, kind: ErrorKind | None) -> None:
        with self._lock:
            if self._runner_job_id == job_id:
                self._runner_job_id = None
            b = self._batch
            if (job := self._jobs.get(job_id)) is not None:
                if job.status.is_active:
                    if kind is None:
                        if job.status is JobStatus.PREPARING:
                            job.set_status(JobStatus.CONVERTING)
                        summary = compression_summary(self.file_size(job.input_path), self.file_size(job.output_path))
                        job.set_status(JobStatus.COMPLETED, summary)
                    elif kind is ErrorKind.USER_CANCELLED:
                        job.set_status(JobStatus.CANCELLED, message, kind)
                    else:
                        job.set_status(JobStatus.FAILED, message, kind)
                    if b is not None and b.is_running:
                        b.count(job.status)
                job.release_access()
            if b is not None and b.active_job_id == job_id:
                b.active_job_id = None
            finished = self._advance_locked()
            snap = self._snapshot_locked()
        self._emit(snap, finished)
