# vconvq/models/job.py
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from ..errors import ErrorKind, InvalidTransition
from ..utils.access import AccessGuard


class JobStatus(str, Enum):
    PENDING = "Pending"
    PREPARING = "Preparing"
    CONVERTING = "Converting"
    COMPLETED = "Completed"
    FAILED = "Failed"
    CANCELLED = "Cancelled"
    SKIPPED = "Skipped"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES

    @property
    def is_active(self) -> bool:
        return self in (JobStatus.PREPARING, JobStatus.CONVERTING)


TERMINAL_STATES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED, JobStatus.SKIPPED})

_TRANSITIONS = {
    JobStatus.PENDING: {JobStatus.PREPARING, JobStatus.CANCELLED, JobStatus.SKIPPED},
    JobStatus.PREPARING: {JobStatus.CONVERTING, JobStatus.FAILED, JobStatus.CANCELLED, JobStatus.SKIPPED},
    JobStatus.CONVERTING: {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED},
    # retry
    JobStatus.COMPLETED: {JobStatus.PENDING},
    JobStatus.FAILED: {JobStatus.PENDING},
    JobStatus.CANCELLED: {JobStatus.PENDING},
    JobStatus.SKIPPED: {JobStatus.PENDING},
}


def _new_id() -> str:
    return uuid.uuid4().hex


@dataclass(eq=False)
class Job:
    input_path: Path
    id: str = field(default_factory=_new_id)
    output_path: Path | None = None
    status: JobStatus = JobStatus.PENDING
    progress: float = 0.0
    error_message: str | None = None
    success_message: str | None = None
    error_kind: ErrorKind | None = None
    access_guard: AccessGuard | None = field(default=None, repr=False)

    def __post_init__(self):
        self.input_path = Path(self.input_path)

    @property
    def name(self) -> str:
        return self.input_path.name

    def can_transition(self, status: JobStatus) -> bool:
        return status in _TRANSITIONS[self.status]

    def set_status(self, status: JobStatus, message: str | None = None, kind: ErrorKind | None = None) -> None:
        """Move to `status`, keeping the message fields consistent with it.

        `message` lands in `error_message` for Failed/Cancelled and in
        `success_message` for Completed; every other status clears both.
        """
        if not self.can_transition(status):
            raise InvalidTransition(f"{self.name}: {self.status.value} -> {status.value}")

        self.status = status
        self.error_message = self.success_message = None
        self.error_kind = None

        if status in (JobStatus.FAILED, JobStatus.CANCELLED):
            self.error_message = message or status.value
            self.error_kind = kind or (ErrorKind.USER_CANCELLED if status is JobStatus.CANCELLED else ErrorKind.RUNTIME_FAILURE)
        elif status is JobStatus.COMPLETED:
            self.success_message = message or "Conversion complete."
            self.progress = 1.0
        elif status is JobStatus.PENDING:
            self.progress = 0.0
            self.output_path = None
        elif status is JobStatus.CONVERTING:
            self.progress = 0.0

    def set_progress(self, value: float) -> None:
        if self.status is JobStatus.CONVERTING:
            self.progress = max(0.0, min(1.0, value))

    def release_access(self) -> None:
        if self.access_guard is not None:
            self.access_guard.release()
            self.access_guard = None
