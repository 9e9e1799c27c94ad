"""
Data model for a recording session.

Fixed record shapes for participants, speaker events, session state and
persisted artifacts. Serialization of the speaker-event log lives here so the
writer and reader always agree on the on-disk field names.
"""

import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)


class SpeakingState(str, Enum):
    SPEAKING = "speaking"
    SILENT = "silent"


class SpeakerEventType(str, Enum):
    START = "SPEAKER_START"
    END = "SPEAKER_END"


class ArtifactKind(str, Enum):
    AUDIO = "audio"
    VIDEO = "video"
    EVENT_LOG = "eventLog"


@dataclass
class ParticipantSnapshot:
    """What the page reported about one participant representation.

    Produced by the page-side observer on every scan or class mutation. All
    fields are optional because the markup differs between meeting layouts.
    """

    participant_id_attr: Optional[str] = None
    stable_child_id: Optional[str] = None
    generated_id: Optional[str] = None
    short_label: Optional[str] = None
    label_candidates: list[Optional[str]] = field(default_factory=list)
    self_name: Optional[str] = None
    indicator_visible: bool = False
    class_tokens: list[str] = field(default_factory=list)
    descendant_tokens: list[str] = field(default_factory=list)
    # Classes of the descendant whose mutation produced this snapshot
    mutated_tokens: list[str] = field(default_factory=list)

    @classmethod
    def from_page(cls, data: dict[str, Any]) -> "ParticipantSnapshot":
        return cls(
            participant_id_attr=data.get("participantIdAttr"),
            stable_child_id=data.get("stableChildId"),
            generated_id=data.get("generatedId"),
            short_label=data.get("shortLabel"),
            label_candidates=list(data.get("labelCandidates") or []),
            self_name=data.get("selfName"),
            indicator_visible=bool(data.get("indicatorVisible")),
            class_tokens=list(data.get("classTokens") or []),
            descendant_tokens=list(data.get("descendantTokens") or []),
            mutated_tokens=list(data.get("mutatedTokens") or []),
        )


@dataclass
class ParticipantRecord:
    """One distinct participant representation seen on the page."""

    id: str
    display_name: str
    speaking_state: SpeakingState = SpeakingState.SILENT

    @property
    def is_speaking(self) -> bool:
        return self.speaking_state is SpeakingState.SPEAKING


@dataclass(frozen=True)
class SpeakerEvent:
    """A START or END transition, timestamped relative to session start."""

    type: SpeakerEventType
    participant_id: str
    participant_name: str
    relative_timestamp_ms: int

    def __post_init__(self):
        if self.relative_timestamp_ms < 0:
            raise ValueError(
                f"relative_timestamp_ms must be >= 0, got {self.relative_timestamp_ms}"
            )

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON shape written to speaker-events.json."""
        return {
            "type": self.type.value,
            "participantId": self.participant_id,
            "participantName": self.participant_name,
            "relativeTimestampMs": self.relative_timestamp_ms,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SpeakerEvent":
        return cls(
            type=SpeakerEventType(data["type"]),
            participant_id=str(data["participantId"]),
            participant_name=str(data["participantName"]),
            relative_timestamp_ms=int(data["relativeTimestampMs"]),
        )


@dataclass
class SessionState:
    """Mutable state shared by the watchdog, coordinator and sequencer."""

    start_time_epoch_ms: int = field(default_factory=lambda: int(time.time() * 1000))
    alone_duration_seconds: int = 0
    speakers_ever_identified: bool = False
    shutdown_in_progress: bool = False

    def mark_speakers_identified(self) -> bool:
        """Set the monotonic speakers flag. Returns True on the first call only."""
        if self.speakers_ever_identified:
            return False
        self.speakers_ever_identified = True
        return True

    def begin_shutdown(self) -> bool:
        """Flip the shutdown guard. Returns True only for the caller that flipped it.

        Must not await between the check and the set.
        """
        if self.shutdown_in_progress:
            return False
        self.shutdown_in_progress = True
        return True


@dataclass(frozen=True)
class RecordingArtifact:
    """A file written when the session is persisted."""

    kind: ArtifactKind
    path: Path
    size_bytes: int


def save_speaker_events(events: list[SpeakerEvent], path: Path) -> RecordingArtifact:
    """Write the speaker event log as a JSON array, in detection order."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps([e.to_dict() for e in events], indent=2))
    size = path.stat().st_size
    logger.info(f"Saved {len(events)} speaker events to {path} ({size} bytes)")
    return RecordingArtifact(kind=ArtifactKind.EVENT_LOG, path=path, size_bytes=size)


def load_speaker_events(path: Path) -> list[SpeakerEvent]:
    """Read back a log written by save_speaker_events()."""
    data = json.loads(path.read_text())
    return [SpeakerEvent.from_dict(item) for item in data]
