"""Tests for meet_recorder/errors.py - error taxonomy and exit mapping."""

import pytest

from meet_recorder.errors import (
    LEAVE_REASON_EXIT,
    ConfigurationError,
    ExitCode,
    LeaveReason,
    MeetRecorderError,
    PipelineInitError,
    PipelineStartError,
    ShutdownStepError,
    WatchdogTimeout,
)


class TestExitCodes:
    def test_values(self):
        assert (ExitCode.SUCCESS, ExitCode.FAILURE, ExitCode.SIGINT, ExitCode.SIGTERM) == (0, 1, 130, 143)

    def test_every_leave_reason_is_mapped(self):
        assert set(LEAVE_REASON_EXIT) == set(LeaveReason)

    @pytest.mark.parametrize(
        "reason, code, exit_reason",
        [
            (LeaveReason.BOT_STARTUP_ALONE_TIMEOUT, 1, "startup_alone_timeout"),
            (LeaveReason.BOT_LEFT_ALONE_TIMEOUT, 0, "left_alone_timeout"),
        ],
    )
    def test_watchdog_timeout_mapping(self, reason, code, exit_reason):
        error = WatchdogTimeout(reason, alone_seconds=12)
        assert error.exit_code == code
        assert error.exit_reason == exit_reason
        assert str(error) == reason.value


class TestPipelineErrors:
    def test_init_message(self):
        error = PipelineInitError("audio", "Audio recording", RuntimeError("no AudioContext"))
        assert str(error) == "Audio recording initialization failed: no AudioContext"
        assert isinstance(error, MeetRecorderError)

    def test_start_defaults_failures_to_itself(self):
        cause = RuntimeError("no display")
        error = PipelineStartError("video", "Video recording", cause)
        assert str(error) == "Video recording start failed: no display"
        assert error.failures == {"video": cause}


def test_configuration_error_lists_problems():
    error = ConfigurationError(["a is missing", "b is wrong"])
    assert error.errors == ["a is missing", "b is wrong"]
    assert str(error) == "Config validation failed: a is missing; b is wrong"


def test_shutdown_step_error_names_step():
    error = ShutdownStepError("close_page", RuntimeError("Target closed"))
    assert error.step == "close_page"
    assert "close_page" in str(error)
