"""
Meet Recorder Configuration.

Loads and validates the bot configuration:
- Platform, meeting URL, display name and numeric meeting id
- Automatic-leave thresholds (seconds, or the legacy millisecond keys)
- Recording output preferences

The configuration comes from a YAML/JSON file (--config) or from the
BOT_CONFIG environment variable. Both camelCase and snake_case keys are
accepted.
"""

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional
from urllib.parse import urlparse

import yaml

from meet_recorder.errors import ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "BOT_CONFIG"

SUPPORTED_PLATFORMS = ("google_meet", "zoom", "teams")

DEFAULT_STARTUP_ALONE_TIMEOUT_SECONDS = 20 * 60
DEFAULT_EVERYONE_LEFT_TIMEOUT_SECONDS = 10
DEFAULT_WAITING_ROOM_TIMEOUT_SECONDS = 5 * 60


class PresenceMode(str, Enum):
    """How the detector decides who is present."""

    TILES = "tiles"  # participant tiles tracked by the speaking-state map
    TEXT_SCAN = "text_scan"  # leaf text under <main>, the legacy heuristic


@dataclass
class AutomaticLeaveConfig:
    """Automatic-leave thresholds, all in seconds."""

    waiting_room_timeout_seconds: int = DEFAULT_WAITING_ROOM_TIMEOUT_SECONDS
    startup_alone_timeout_seconds: int = DEFAULT_STARTUP_ALONE_TIMEOUT_SECONDS
    everyone_left_timeout_seconds: int = DEFAULT_EVERYONE_LEFT_TIMEOUT_SECONDS


@dataclass
class RecordingConfig:
    """Where and how recordings are written."""

    preferred_dir: Path = Path("/home/bot-test")
    presence_mode: PresenceMode = PresenceMode.TILES
    headless: bool = False

    # Capture source discovery (bounded, fixed delay)
    source_retry_attempts: int = 10
    source_retry_delay_seconds: float = 3.0
    # Pause after admission before looking for media elements
    media_settle_seconds: float = 2.0


@dataclass
class BotConfig:
    """Main configuration for one recording session."""

    platform: str
    meeting_url: Optional[str]
    bot_name: str
    meeting_id: int
    container_name: Optional[str] = None
    automatic_leave: AutomaticLeaveConfig = field(default_factory=AutomaticLeaveConfig)
    recording: RecordingConfig = field(default_factory=RecordingConfig)


def _pick(data: dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first non-null value among keys (first match wins)."""
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return default


def _is_non_negative_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def _is_non_negative_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value >= 0


def validate_bot_config(raw: Any) -> list[str]:
    """Validate a raw config mapping.

    Args:
        raw: Parsed YAML/JSON document

    Returns:
        List of validation error messages (empty if valid)
    """
    if not isinstance(raw, dict):
        return [f"Config must be a mapping, got {type(raw).__name__}"]

    errors: list[str] = []

    platform = raw.get("platform")
    if platform not in SUPPORTED_PLATFORMS:
        errors.append(
            f"platform must be one of {', '.join(SUPPORTED_PLATFORMS)}, got {platform!r}"
        )

    url = _pick(raw, "meetingUrl", "meeting_url")
    if url is not None:
        parsed = urlparse(url) if isinstance(url, str) else None
        if not parsed or parsed.scheme not in ("http", "https") or not parsed.netloc:
            errors.append(f"meetingUrl must be an http(s) URL or null, got {url!r}")

    name = _pick(raw, "botName", "bot_name")
    if not isinstance(name, str) or not name.strip():
        errors.append("botName is required and must be a non-empty string")

    meeting_id = _pick(raw, "meeting_id", "meetingId")
    if isinstance(meeting_id, bool) or not isinstance(meeting_id, int):
        errors.append(f"meeting_id is required and must be an integer, got {meeting_id!r}")

    container = _pick(raw, "container_name", "containerName")
    if container is not None and not isinstance(container, str):
        errors.append("container_name must be a string")

    leave = _pick(raw, "automaticLeave", "automatic_leave", default={})
    if not isinstance(leave, dict):
        errors.append("automaticLeave must be a mapping")
    else:
        for key, value in leave.items():
            if not _is_non_negative_int(value):
                errors.append(f"automaticLeave.{key} must be a non-negative integer, got {value!r}")

    recording = raw.get("recording", {})
    if not isinstance(recording, dict):
        errors.append("recording must be a mapping")
    else:
        mode = _pick(recording, "presence_mode", "presenceMode")
        if mode is not None and mode not in [m.value for m in PresenceMode]:
            errors.append(f"recording.presence_mode must be 'tiles' or 'text_scan', got {mode!r}")

        preferred = _pick(recording, "preferred_dir", "preferredDir")
        if preferred is not None and not isinstance(preferred, str):
            errors.append(f"recording.preferred_dir must be a path string, got {preferred!r}")

        headless = recording.get("headless")
        if headless is not None and not isinstance(headless, bool):
            errors.append(f"recording.headless must be true or false, got {headless!r}")

        attempts = _pick(recording, "source_retry_attempts", "sourceRetryAttempts")
        if attempts is not None and not _is_non_negative_int(attempts):
            errors.append(
                f"recording.source_retry_attempts must be a non-negative integer, got {attempts!r}"
            )

        for key, alias in (
            ("source_retry_delay_seconds", "sourceRetryDelaySeconds"),
            ("media_settle_seconds", "mediaSettleSeconds"),
        ):
            value = _pick(recording, key, alias)
            if value is not None and not _is_non_negative_number(value):
                errors.append(f"recording.{key} must be a non-negative number, got {value!r}")

    return errors


def _ms_to_seconds(value: Optional[int]) -> Optional[int]:
    if value is None:
        return None
    return value // 1000


def _build_automatic_leave(leave: dict[str, Any]) -> AutomaticLeaveConfig:
    # Explicit seconds win over the legacy millisecond keys
    startup = _pick(leave, "startupAloneTimeoutSeconds", "startup_alone_timeout_seconds")
    if startup is None:
        startup = _ms_to_seconds(_pick(leave, "noOneJoinedTimeout", "no_one_joined_timeout_ms"))

    everyone_left = _pick(leave, "everyoneLeftTimeoutSeconds", "everyone_left_timeout_seconds")
    if everyone_left is None:
        everyone_left = _ms_to_seconds(_pick(leave, "everyoneLeftTimeout", "everyone_left_timeout_ms"))

    waiting_room = _pick(leave, "waitingRoomTimeoutSeconds", "waiting_room_timeout_seconds")
    if waiting_room is None:
        waiting_room = _ms_to_seconds(_pick(leave, "waitingRoomTimeout", "waiting_room_timeout_ms"))

    defaults = AutomaticLeaveConfig()
    return AutomaticLeaveConfig(
        waiting_room_timeout_seconds=(
            waiting_room if waiting_room is not None else defaults.waiting_room_timeout_seconds
        ),
        startup_alone_timeout_seconds=(
            startup if startup is not None else defaults.startup_alone_timeout_seconds
        ),
        everyone_left_timeout_seconds=(
            everyone_left if everyone_left is not None else defaults.everyone_left_timeout_seconds
        ),
    )


def _build_recording(recording: dict[str, Any]) -> RecordingConfig:
    defaults = RecordingConfig()
    preferred = _pick(recording, "preferred_dir", "preferredDir")
    mode = _pick(recording, "presence_mode", "presenceMode")
    return RecordingConfig(
        preferred_dir=Path(preferred).expanduser() if preferred else defaults.preferred_dir,
        presence_mode=PresenceMode(mode) if mode else defaults.presence_mode,
        headless=_pick(recording, "headless", default=defaults.headless),
        source_retry_attempts=_pick(
            recording, "source_retry_attempts", "sourceRetryAttempts",
            default=defaults.source_retry_attempts,
        ),
        source_retry_delay_seconds=float(
            _pick(
                recording, "source_retry_delay_seconds", "sourceRetryDelaySeconds",
                default=defaults.source_retry_delay_seconds,
            )
        ),
        media_settle_seconds=float(
            _pick(
                recording, "media_settle_seconds", "mediaSettleSeconds",
                default=defaults.media_settle_seconds,
            )
        ),
    )


def parse_bot_config(raw: Any) -> BotConfig:
    """Validate and convert a raw mapping into a BotConfig.

    Raises:
        ConfigurationError: listing every problem found
    """
    errors = validate_bot_config(raw)
    if errors:
        raise ConfigurationError(errors)

    return BotConfig(
        platform=raw["platform"],
        meeting_url=_pick(raw, "meetingUrl", "meeting_url"),
        bot_name=_pick(raw, "botName", "bot_name").strip(),
        meeting_id=_pick(raw, "meeting_id", "meetingId"),
        container_name=_pick(raw, "container_name", "containerName"),
        automatic_leave=_build_automatic_leave(
            _pick(raw, "automaticLeave", "automatic_leave", default={})
        ),
        recording=_build_recording(raw.get("recording", {})),
    )


def load_config(path: Optional[Path] = None) -> BotConfig:
    """Load the bot configuration from a file or the BOT_CONFIG variable.

    Args:
        path: YAML or JSON file. When None, BOT_CONFIG is read instead.

    Raises:
        ConfigurationError: if nothing is configured or the document is invalid
    """
    if path is not None:
        try:
            text = Path(path).read_text()
        except OSError as e:
            raise ConfigurationError([f"Cannot read config file {path}: {e}"]) from e
        source = str(path)
    else:
        text = os.environ.get(CONFIG_ENV_VAR)
        if not text:
            raise ConfigurationError([f"{CONFIG_ENV_VAR} environment variable is not set"])
        source = CONFIG_ENV_VAR

    try:
        # JSON is a subset of YAML, so one parser covers both
        raw = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigurationError([f"Cannot parse {source}: {e}"]) from e

    config = parse_bot_config(raw)
    logger.info(
        f"Loaded config from {source}: platform={config.platform}, "
        f"meeting_id={config.meeting_id}, bot_name={config.bot_name}"
    )
    logger.debug(
        f"Automatic leave: waiting_room={config.automatic_leave.waiting_room_timeout_seconds}s, "
        f"startup_alone={config.automatic_leave.startup_alone_timeout_seconds}s, "
        f"everyone_left={config.automatic_leave.everyone_left_timeout_seconds}s"
    )
    return config
