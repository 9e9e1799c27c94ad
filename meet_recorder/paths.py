"""Recording output locations.

Picks a writable recordings root from a prioritized candidate list and builds
the session-unique recording directory beneath it.

Usage:
    from meet_recorder.paths import select_recordings_root, prepare_recording_dir

    root = select_recordings_root(Path("/home/bot-test"))
    recording_dir = prepare_recording_dir(root, build_recording_id(meeting_id))
"""

import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from meet_recorder.errors import RecordingSetupError

logger = logging.getLogger(__name__)

FALLBACK_TMP_DIR = Path("/tmp/bot-recordings")
WRITE_TEST_FILE = ".write-test"

AUDIO_FILENAME = "audio.webm"
VIDEO_FILENAME = "video.webm"
SPEAKER_EVENTS_FILENAME = "speaker-events.json"


def is_writable(path: Path) -> bool:
    """Create the directory if needed and prove it accepts a throwaway write."""
    try:
        path.mkdir(parents=True, exist_ok=True)
        probe = path / WRITE_TEST_FILE
        probe.write_text("test")
        probe.unlink()
        return True
    except OSError:
        return False


def recording_root_candidates(preferred: Optional[Path] = None) -> list[Path]:
    """Candidate roots in priority order.

    Resolution order (first writable wins):
      1. preferred directory from config
      2. /tmp/bot-recordings
      3. ./recordings under the working directory
      4. the system temp directory (last resort)
    """
    candidates = []
    if preferred is not None:
        candidates.append(Path(preferred))
    candidates.append(FALLBACK_TMP_DIR)
    candidates.append(Path(os.getcwd()) / "recordings")
    return candidates


def select_recordings_root(preferred: Optional[Path] = None) -> Path:
    """Return the first writable candidate root."""
    for candidate in recording_root_candidates(preferred):
        if is_writable(candidate):
            if preferred is not None and candidate != Path(preferred):
                logger.warning(f"{preferred} is not writable, using fallback directory: {candidate}")
            else:
                logger.info(f"{candidate} is writable")
            return candidate

    last_resort = Path(tempfile.gettempdir())
    logger.warning(f"Using {last_resort} as last resort (recordings may be cleaned up on reboot)")
    return last_resort


def build_recording_id(meeting_id: int, now: Optional[datetime] = None) -> str:
    """Session-unique id from the meeting id and an ISO timestamp."""
    now = now or datetime.now(timezone.utc)
    stamp = now.isoformat(timespec="milliseconds").replace("+00:00", "Z")
    stamp = stamp.replace(":", "-").replace(".", "-")
    return f"meeting-{meeting_id}-{stamp}"


def prepare_recording_dir(root: Path, recording_id: str) -> Path:
    """Create the recording directory and verify it is writable.

    Raises:
        RecordingSetupError: if the directory cannot be created or written
    """
    recording_dir = root / recording_id
    try:
        recording_dir.mkdir(parents=True, exist_ok=True)
        probe = recording_dir / WRITE_TEST_FILE
        probe.write_text("test")
        probe.unlink()
    except OSError as e:
        raise RecordingSetupError(f"Failed to create recording directories: {e}") from e

    logger.info(f"[Recording Setup] Verified write permissions for {recording_dir}")
    return recording_dir


def describe_directory(directory: Path) -> list[tuple[str, int]]:
    """List (name, size in bytes) for each file in a directory, sorted by name."""
    entries = []
    for entry in sorted(directory.iterdir()):
        if entry.is_file():
            entries.append((entry.name, entry.stat().st_size))
    return entries
