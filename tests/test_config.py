"""Tests for meet_recorder/config.py - loading and validating the bot config."""

import json
import os
from pathlib import Path

import pytest

from meet_recorder.config import (
    CONFIG_ENV_VAR,
    DEFAULT_EVERYONE_LEFT_TIMEOUT_SECONDS,
    DEFAULT_STARTUP_ALONE_TIMEOUT_SECONDS,
    PresenceMode,
    load_config,
    parse_bot_config,
    validate_bot_config,
)
from meet_recorder.errors import ConfigurationError


def raw_config(**overrides):
    data = {
        "platform": "google_meet",
        "meetingUrl": "https://meet.google.com/abc-defg-hij",
        "botName": "Recorder Bot",
        "meeting_id": 42,
    }
    data.update(overrides)
    return data


class TestValidate:
    def test_valid_config_has_no_errors(self):
        assert validate_bot_config(raw_config()) == []

    def test_not_a_mapping(self):
        assert validate_bot_config(["platform"]) == ["Config must be a mapping, got list"]

    def test_collects_every_problem(self):
        errors = validate_bot_config(
            raw_config(platform="webex", meetingUrl="ftp://x", botName="  ", meeting_id="42")
        )
        assert len(errors) == 4
        assert any("platform" in e for e in errors)
        assert any("meetingUrl" in e for e in errors)
        assert any("botName" in e for e in errors)
        assert any("meeting_id" in e for e in errors)

    def test_null_url_allowed(self):
        assert validate_bot_config(raw_config(meetingUrl=None)) == []

    def test_negative_threshold_rejected(self):
        errors = validate_bot_config(raw_config(automaticLeave={"everyoneLeftTimeout": -1}))
        assert errors == ["automaticLeave.everyoneLeftTimeout must be a non-negative integer, got -1"]

    def test_bool_meeting_id_rejected(self):
        assert validate_bot_config(raw_config(meeting_id=True))

    def test_unknown_presence_mode(self):
        errors = validate_bot_config(raw_config(recording={"presence_mode": "vibes"}))
        assert len(errors) == 1

    @pytest.mark.parametrize(
        "recording, field",
        [
            ({"source_retry_attempts": "many"}, "source_retry_attempts"),
            ({"source_retry_attempts": -1}, "source_retry_attempts"),
            ({"source_retry_attempts": 2.5}, "source_retry_attempts"),
            ({"source_retry_delay_seconds": "3s"}, "source_retry_delay_seconds"),
            ({"media_settle_seconds": -0.5}, "media_settle_seconds"),
            ({"media_settle_seconds": True}, "media_settle_seconds"),
            ({"preferred_dir": 123}, "preferred_dir"),
            ({"headless": "false"}, "headless"),
        ],
    )
    def test_bad_recording_values_rejected(self, recording, field):
        errors = validate_bot_config(raw_config(recording=recording))
        assert len(errors) == 1
        assert errors[0].startswith(f"recording.{field} must be")

    def test_recording_numbers_accept_int_and_float(self):
        recording = {"source_retry_attempts": 0, "source_retry_delay_seconds": 1, "media_settle_seconds": 0.5}
        assert validate_bot_config(raw_config(recording=recording)) == []


class TestParse:
    def test_defaults(self):
        config = parse_bot_config(raw_config())
        assert config.platform == "google_meet"
        assert config.meeting_id == 42
        assert config.container_name is None
        assert config.automatic_leave.startup_alone_timeout_seconds == DEFAULT_STARTUP_ALONE_TIMEOUT_SECONDS == 1200
        assert config.automatic_leave.everyone_left_timeout_seconds == DEFAULT_EVERYONE_LEFT_TIMEOUT_SECONDS == 10
        assert config.recording.presence_mode is PresenceMode.TILES
        assert config.recording.headless is False

    def test_snake_case_keys(self):
        config = parse_bot_config(
            {
                "platform": "teams",
                "meeting_url": None,
                "bot_name": " Bot ",
                "meeting_id": 7,
                "container_name": "bot-7",
            }
        )
        assert config.bot_name == "Bot"
        assert config.meeting_url is None
        assert config.container_name == "bot-7"

    def test_millisecond_thresholds_converted(self):
        config = parse_bot_config(
            raw_config(
                automaticLeave={
                    "waitingRoomTimeout": 300000,
                    "noOneJoinedTimeout": 600000,
                    "everyoneLeftTimeout": 30000,
                }
            )
        )
        assert config.automatic_leave.waiting_room_timeout_seconds == 300
        assert config.automatic_leave.startup_alone_timeout_seconds == 600
        assert config.automatic_leave.everyone_left_timeout_seconds == 30

    def test_seconds_win_over_milliseconds(self):
        config = parse_bot_config(
            raw_config(automaticLeave={"everyoneLeftTimeout": 30000, "everyoneLeftTimeoutSeconds": 5})
        )
        assert config.automatic_leave.everyone_left_timeout_seconds == 5

    def test_recording_section(self, tmp_path):
        config = parse_bot_config(
            raw_config(recording={"preferred_dir": str(tmp_path), "presence_mode": "text_scan", "headless": True})
        )
        assert config.recording.preferred_dir == tmp_path
        assert config.recording.presence_mode is PresenceMode.TEXT_SCAN
        assert config.recording.headless is True

    def test_invalid_raises_with_errors(self):
        with pytest.raises(ConfigurationError) as exc_info:
            parse_bot_config(raw_config(platform=None, botName=None))
        assert len(exc_info.value.errors) == 2
        assert str(exc_info.value).startswith("Config validation failed:")

    def test_bad_recording_value_raises_configuration_error(self):
        with pytest.raises(ConfigurationError) as exc_info:
            parse_bot_config(raw_config(recording={"source_retry_attempts": "many", "headless": "false"}))
        assert len(exc_info.value.errors) == 2

    def test_recording_retry_values(self):
        config = parse_bot_config(
            raw_config(
                recording={
                    "sourceRetryAttempts": 3,
                    "source_retry_delay_seconds": 1,
                    "media_settle_seconds": None,
                    "headless": None,
                }
            )
        )
        assert config.recording.source_retry_attempts == 3
        assert config.recording.source_retry_delay_seconds == 1.0
        assert config.recording.media_settle_seconds == 2.0
        assert config.recording.headless is False


class TestLoad:
    def test_from_env_json(self):
        os.environ[CONFIG_ENV_VAR] = json.dumps(raw_config())
        assert load_config().meeting_id == 42

    def test_from_yaml_file(self, tmp_path):
        path = tmp_path / "bot.yaml"
        path.write_text(
            "platform: google_meet\n"
            "meetingUrl: https://meet.google.com/abc-defg-hij\n"
            "botName: Recorder Bot\n"
            "meeting_id: 9\n"
            "automaticLeave:\n"
            "  everyoneLeftTimeoutSeconds: 15\n"
        )
        config = load_config(path)
        assert config.meeting_id == 9
        assert config.automatic_leave.everyone_left_timeout_seconds == 15

    def test_missing_env(self):
        os.environ.pop(CONFIG_ENV_VAR, None)
        with pytest.raises(ConfigurationError, match=CONFIG_ENV_VAR):
            load_config()

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Cannot read config file"):
            load_config(tmp_path / "missing.yaml")

    def test_unparseable(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("platform: [unclosed\n")
        with pytest.raises(ConfigurationError, match="Cannot parse"):
            load_config(Path(path))
