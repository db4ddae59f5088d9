# vconvq/models/queue.py
from dataclasses import dataclass
from pathlib import Path

from ..errors import ErrorKind
from .conversion import ConversionSettings
from .job import Job, JobStatus


@dataclass
class BatchRun:
    output_dir: Path
    settings: ConversionSettings
    overwrite: bool = True
    is_running: bool = True
    active_job_id: str | None = None
    total: int = 0
    completed: int = 0
    failed: int = 0
    cancelled: int = 0
    skipped: int = 0

    @property
    def done(self) -> int:
        return self.completed + self.failed + self.cancelled + self.skipped

    def count(self, status: JobStatus) -> None:
        if status is JobStatus.COMPLETED: self.completed += 1
        elif status is JobStatus.FAILED: self.failed += 1
        elif status is JobStatus.CANCELLED: self.cancelled += 1
        elif status is JobStatus.SKIPPED: self.skipped += 1

    def summary(self) -> str:
        left = max(0, self.total - self.done)
        text = f"Queue: {self.done}/{self.total} done • {left} left"
        if not self.is_running:
            text = f"Finished: {self.completed}/{self.total} converted"
            extras = [f"{n} {label}" for n, label in ((self.failed, "failed"), (self.cancelled, "cancelled"), (self.skipped, "skipped")) if n]
            if extras:
                text += " • " + ", ".join(extras)
        return text


@dataclass(frozen=True)
class JobSnapshot:
    id: str
    input_path: Path
    output_path: Path | None
    status: JobStatus
    progress: float
    error_message: str | None
    success_message: str | None
    error_kind: ErrorKind | None

    @classmethod
    def of(cls, job: Job) -> "JobSnapshot":
        return cls(
            id=job.id,
            input_path=job.input_path,
            output_path=job.output_path,
            status=job.status,
            progress=job.progress,
            error_message=job.error_message,
            success_message=job.success_message,
            error_kind=job.error_kind,
        )

    @property
    def name(self) -> str:
        return self.input_path.name

    @property
    def message(self) -> str:
        return self.error_message or self.success_message or ""


@dataclass(frozen=True)
class QueueSnapshot:
    jobs: tuple[JobSnapshot, ...] = ()
    is_running: bool = False
    active_job_id: str | None = None
    output_dir: Path | None = None
    summary: str = ""

    def get(self, job_id: str) -> JobSnapshot | None:
        return next((j for j in self.jobs if j.id == job_id), None)

    def with_status(self, *statuses: JobStatus) -> list[JobSnapshot]:
        return [j for j in self.jobs if j.status in statuses]

    @property
    def active_job(self) -> JobSnapshot | None:
        return self.get(self.active_job_id) if self.active_job_id else None
