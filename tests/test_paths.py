"""Tests for meet_recorder/paths.py - recording output locations."""

import tempfile
from datetime import datetime, timezone
from pathlib import Path

import pytest

from meet_recorder import paths
from meet_recorder.errors import RecordingSetupError
from meet_recorder.paths import (
    WRITE_TEST_FILE,
    build_recording_id,
    describe_directory,
    is_writable,
    prepare_recording_dir,
    recording_root_candidates,
    select_recordings_root,
)


@pytest.fixture
def blocked(tmp_path) -> Path:
    """A path that can never become a directory (its parent is a file)."""
    blocker = tmp_path / "blocker"
    blocker.write_text("x")
    return blocker / "sub"


class TestIsWritable:
    def test_creates_and_checks_writable(self, tmp_path):
        target = tmp_path / "a" / "b"
        assert is_writable(target) is True
        assert target.is_dir()
        assert not (target / WRITE_TEST_FILE).exists()

    def test_blocked_path(self, blocked):
        assert is_writable(blocked) is False


class TestSelectRoot:
    def test_candidate_order(self, tmp_path):
        candidates = recording_root_candidates(tmp_path)
        assert candidates[0] == tmp_path
        assert candidates[1] == paths.FALLBACK_TMP_DIR
        assert candidates[2] == Path.cwd() / "recordings"

    def test_preferred_when_writable(self, tmp_path):
        assert select_recordings_root(tmp_path / "rec") == tmp_path / "rec"

    def test_falls_back_when_preferred_blocked(self, blocked, tmp_path, monkeypatch):
        monkeypatch.setattr(paths, "FALLBACK_TMP_DIR", tmp_path / "fallback")
        assert select_recordings_root(blocked) == tmp_path / "fallback"

    def test_last_resort_is_system_temp(self, monkeypatch):
        monkeypatch.setattr(paths, "is_writable", lambda path: False)
        assert select_recordings_root(Path("/nope")) == Path(tempfile.gettempdir())


class TestRecordingId:
    def test_format(self):
        now = datetime(2024, 1, 2, 3, 4, 5, 678000, tzinfo=timezone.utc)
        assert build_recording_id(42, now) == "meeting-42-2024-01-02T03-04-05-678Z"

    def test_no_separators_left(self):
        recording_id = build_recording_id(7)
        assert recording_id.startswith("meeting-7-")
        assert ":" not in recording_id
        assert "." not in recording_id


class TestPrepareRecordingDir:
    def test_creates_directory(self, tmp_path):
        recording_dir = prepare_recording_dir(tmp_path, "meeting-1-x")
        assert recording_dir == tmp_path / "meeting-1-x"
        assert recording_dir.is_dir()
        assert list(recording_dir.iterdir()) == []

    def test_failure_raises(self, blocked):
        with pytest.raises(RecordingSetupError, match="Failed to create recording directories"):
            prepare_recording_dir(blocked, "meeting-1-x")


def test_describe_directory(tmp_path):
    (tmp_path / "video.webm").write_bytes(b"12345")
    (tmp_path / "audio.webm").write_bytes(b"12")
    (tmp_path / "nested").mkdir()
    assert describe_directory(tmp_path) == [("audio.webm", 2), ("video.webm", 5)]
