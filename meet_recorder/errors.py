"""Error taxonomy and process exit codes for the recorder.

Usage:
    from meet_recorder.errors import ExitCode, PipelineInitError, WatchdogTimeout

    try:
        await coordinator.start_google_recording()
    except WatchdogTimeout as e:
        await sequencer.shutdown(e.exit_code, e.exit_reason)
"""

from enum import Enum, IntEnum
from typing import Optional


class ExitCode(IntEnum):
    """Process exit codes."""

    SUCCESS = 0
    FAILURE = 1
    SIGINT = 130
    SIGTERM = 143


class LeaveReason(str, Enum):
    """Why the automatic-leave watchdog ended the session."""

    BOT_STARTUP_ALONE_TIMEOUT = "BOT_STARTUP_ALONE_TIMEOUT"
    BOT_LEFT_ALONE_TIMEOUT = "BOT_LEFT_ALONE_TIMEOUT"


# Nobody ever joined: the session is a failure. Everyone left: normal end.
LEAVE_REASON_EXIT: dict[LeaveReason, tuple[ExitCode, str]] = {
    LeaveReason.BOT_STARTUP_ALONE_TIMEOUT: (ExitCode.FAILURE, "startup_alone_timeout"),
    LeaveReason.BOT_LEFT_ALONE_TIMEOUT: (ExitCode.SUCCESS, "left_alone_timeout"),
}


class MeetRecorderError(Exception):
    """Base class for all recorder errors."""


class ConfigurationError(MeetRecorderError):
    """Raised when the bot configuration is missing or invalid."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__(f"Config validation failed: {'; '.join(errors)}")


class RecordingSetupError(MeetRecorderError):
    """Raised when no usable recording directory could be prepared."""


class PipelineError(MeetRecorderError):
    """Base for errors that name the capture pipeline they came from."""

    action = ""

    def __init__(self, pipeline: str, label: str, cause: BaseException):
        self.pipeline = pipeline
        self.label = label
        self.cause = cause
        super().__init__(f"{label} {self.action} failed: {cause}")


class PipelineInitError(PipelineError):
    """A pipeline failed to initialize; no pipeline was started."""

    action = "initialization"


class PipelineStartError(PipelineError):
    """One or more pipelines failed to start during the concurrent fan-out."""

    action = "start"

    def __init__(
        self,
        pipeline: str,
        label: str,
        cause: BaseException,
        failures: Optional[dict[str, BaseException]] = None,
    ):
        super().__init__(pipeline, label, cause)
        self.failures = failures or {pipeline: cause}


class CaptureSourceError(MeetRecorderError):
    """Raised when no active capture source appears within the configured retries."""


class WatchdogTimeout(MeetRecorderError):
    """The bot was alone for longer than the active threshold.

    This is an expected outcome, not a bug. The reason decides the exit code.
    """

    def __init__(self, reason: LeaveReason, alone_seconds: int = 0):
        self.reason = reason
        self.alone_seconds = alone_seconds
        super().__init__(reason.value)

    @property
    def exit_code(self) -> int:
        return int(LEAVE_REASON_EXIT[self.reason][0])

    @property
    def exit_reason(self) -> str:
        return LEAVE_REASON_EXIT[self.reason][1]


class PlatformLeaveError(MeetRecorderError):
    """The platform-specific leave action failed. Never blocks shutdown."""


class ShutdownStepError(MeetRecorderError):
    """A shutdown step failed. Logged and downgraded."""

    def __init__(self, step: str, cause: BaseException):
        self.step = step
        self.cause = cause
        super().__init__(f"Shutdown step '{step}' failed: {cause}")


class PageClosedError(MeetRecorderError):
    """Raised when a command is sent to a page that is already closed."""


class AdmissionError(MeetRecorderError):
    """The bot could not get into the meeting."""
