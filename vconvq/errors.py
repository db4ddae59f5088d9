# vconvq/errors.py
from enum import Enum

CANCELLED_MESSAGE = "Conversion cancelled."


class ErrorKind(str, Enum):
    ACCESS_DENIED = "access_denied"
    DURATION_UNKNOWN = "duration_unknown"
    EXECUTABLE_MISSING = "executable_missing"
    OUTPUT_DIRECTORY_MISSING = "output_directory_missing"
    LAUNCH_FAILED = "launch_failed"
    RUNTIME_FAILURE = "runtime_failure"
    USER_CANCELLED = "user_cancelled"


class ConversionError(Exception):
    """Per-job failure. The scheduler records it on the job and moves on."""
    kind = ErrorKind.RUNTIME_FAILURE


class AccessDenied(ConversionError):
    kind = ErrorKind.ACCESS_DENIED


class DurationUnknown(ConversionError):
    kind = ErrorKind.DURATION_UNKNOWN


class ExecutableMissing(ConversionError):
    kind = ErrorKind.EXECUTABLE_MISSING


class OutputDirectoryMissing(ConversionError):
    kind = ErrorKind.OUTPUT_DIRECTORY_MISSING


class LaunchFailed(ConversionError):
    kind = ErrorKind.LAUNCH_FAILED


class RuntimeFailure(ConversionError):
    kind = ErrorKind.RUNTIME_FAILURE


class UserCancelled(ConversionError):
    kind = ErrorKind.USER_CANCELLED


class InvalidSettings(ValueError):
    def __init__(self, field: str, value):
        super().__init__(f"invalid {field}: {value!r}")
        self.field = field
        self.value = value


class InvalidTransition(RuntimeError):
    pass


class BatchAlreadyRunning(RuntimeError):
    pass
