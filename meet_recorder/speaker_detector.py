"""
Google Meet Speaker Activity Detection.

Tracks who is speaking over time:
- Injects a page-side observer that finds participant tiles (first matching
  selector strategy wins) and reports snapshots of them
- Re-evaluates on class mutations inside each known tile (pushed through the
  page channel) and on a 500 ms poll (catches late arrivals and markup changes
  the mutation filter misses)
- Derives speaking state from a visible speaking indicator first, then from
  style-state tokens as fallback
- Emits SPEAKER_START / SPEAKER_END only when the logical state changes

All state decisions are made here, on the control side. The page only reports
what it sees.
"""

import asyncio
import hashlib
import logging
import time
from typing import Callable, Optional

from meet_recorder.channel import PageChannel
from meet_recorder.config import PresenceMode
from meet_recorder.models import (
    ParticipantRecord,
    ParticipantSnapshot,
    SpeakerEvent,
    SpeakerEventType,
    SpeakingState,
)
from meet_recorder.selectors import DetectorSelectors, first_match

logger = logging.getLogger(__name__)

MUTATION_EVENT = "participant_mutation"

MIN_NAME_LENGTH = 2
MAX_NAME_LENGTH = 49

# Installs window.__meetRecorderSpeaker. Returns true when newly installed.
OBSERVER_SCRIPT = """
(cfg) => {
    if (window.__meetRecorderSpeaker) return false;

    const emit = (kind, payload) => {
        if (typeof window.__meetRecorderEmit === 'function') {
            window.__meetRecorderEmit(kind, payload);
        }
    };
    const observers = [];

    function isVisible(el) {
        const cs = getComputedStyle(el);
        const rect = el.getBoundingClientRect();
        return rect.width > 0 && rect.height > 0 &&
            cs.display !== 'none' && cs.visibility !== 'hidden' &&
            cs.opacity !== '0' && el.getAttribute('aria-hidden') !== 'true';
    }

    function findTiles() {
        for (const sel of cfg.participantSelectors) {
            const found = document.querySelectorAll(sel);
            if (found.length > 0) return Array.from(found);
        }
        return [];
    }

    function labelOf(node) {
        if (!node) return null;
        return (node.textContent || '').trim() ||
            node.getAttribute('data-self-name') ||
            node.getAttribute('aria-label') || null;
    }

    function snapshot(el, mutatedClassList) {
        const idAttr = el.getAttribute('data-participant-id');
        const child = el.querySelector('[jsinstance]');
        const childId = child ? child.getAttribute('jsinstance') : null;
        if (!idAttr && !childId && !el.dataset.meetRecorderId) {
            el.dataset.meetRecorderId = 'gm-id-' + Math.random().toString(36).slice(2, 11);
        }
        const shortLabel = el.querySelector(cfg.shortLabel);
        return {
            participantIdAttr: idAttr,
            stableChildId: childId,
            generatedId: el.dataset.meetRecorderId || null,
            shortLabel: shortLabel ? (shortLabel.textContent || '').trim() : null,
            labelCandidates: cfg.nameSelectors.map(sel => labelOf(el.querySelector(sel))),
            selfName: el.getAttribute('data-self-name'),
            indicatorVisible: cfg.speakingIndicators.some(sel => {
                const ind = el.querySelector(sel);
                return !!ind && isVisible(ind);
            }),
            classTokens: Array.from(el.classList),
            mutatedTokens: mutatedClassList ? Array.from(mutatedClassList) : [],
            descendantTokens: cfg.speakingClasses.filter(
                cls => el.querySelector('.' + CSS.escape(cls)) !== null),
        };
    }

    function observe(el) {
        if (el.dataset.meetRecorderObserved) return;
        el.dataset.meetRecorderObserved = 'true';
        const observer = new MutationObserver((mutations) => {
            for (const m of mutations) {
                if (m.type === 'attributes' && m.attributeName === 'class') {
                    emit('participant_mutation', snapshot(el, m.target === el ? null : m.target.classList));
                }
            }
        });
        observer.observe(el, { attributes: true, attributeFilter: ['class'], subtree: true });
        observers.push({ el, observer });
    }

    window.__meetRecorderSpeaker = {
        openPeoplePanel() {
            for (const sel of cfg.peopleButtonSelectors) {
                const btn = document.querySelector(sel);
                if (btn && isVisible(btn)) { btn.click(); return true; }
            }
            return false;
        },
        scan() {
            const tiles = findTiles();
            tiles.forEach(observe);
            return tiles.map(el => snapshot(el, null));
        },
        textScan(botName) {
            const names = [];
            const accept = (t) => t && ((t.length > 1 && t.length < 50) || (botName && t === botName));
            const main = document.querySelector('main');
            if (main) {
                main.querySelectorAll('*').forEach(el => {
                    const t = (el.textContent || '').trim();
                    if (el.children.length === 0 && accept(t)) names.push(t);
                });
            }
            document.querySelectorAll('main [role="tooltip"]').forEach(el => {
                const t = (el.textContent || '').trim();
                if (accept(t)) names.push(t);
            });
            return Array.from(new Set(names));
        },
        disconnect() {
            observers.forEach(({ el, observer }) => {
                observer.disconnect();
                delete el.dataset.meetRecorderObserved;
            });
            observers.length = 0;
        },
    };
    console.log('[MeetRecorder] Speaker observer installed');
    return true;
}
"""


def hash_name(name: str) -> str:
    """Short non-reversible tag for logging names without PII."""
    return hashlib.sha1(name.encode("utf-8")).hexdigest()[:8]


def _usable_label(text: Optional[str]) -> Optional[str]:
    if not text:
        return None
    text = text.strip()
    if MIN_NAME_LENGTH <= len(text) <= MAX_NAME_LENGTH:
        return text
    return None


def resolve_participant_id(snapshot: ParticipantSnapshot) -> str:
    """Stable attribute, then nested stable child, then the generated id."""
    resolved = first_match(
        [snapshot.participant_id_attr, snapshot.stable_child_id, snapshot.generated_id],
        lambda value: value,
    )
    if resolved is None:
        raise ValueError("Participant snapshot carries no usable id")
    return resolved


def resolve_participant_name(snapshot: ParticipantSnapshot, participant_id: str) -> str:
    """Short label, configured label selectors, self-declared name, synthesized label."""
    name = _usable_label(snapshot.short_label)
    if name:
        return name
    name = first_match(snapshot.label_candidates, _usable_label)
    if name:
        return name
    if snapshot.self_name and snapshot.self_name.strip():
        return snapshot.self_name.strip()
    return f"Participant ({participant_id})"


def infer_speaking(snapshot: ParticipantSnapshot, selectors: DetectorSelectors) -> bool:
    """Speaking indicator is authoritative; style tokens are the fallback."""
    if snapshot.indicator_visible:
        return True
    tokens = set(snapshot.class_tokens) | set(snapshot.mutated_tokens)
    if any(cls in tokens for cls in selectors.speaking_classes):
        return True
    if any(cls in selectors.speaking_classes for cls in snapshot.descendant_tokens):
        return True
    # Silence tokens and "no signal at all" both mean silent
    return False


class SpeakerActivityDetector:
    """Observes participant tiles and logs speaker transitions.

    Args:
        channel: Bridge to the meeting page
        bot_name: The bot's own display name (used by the text-scan presence mode)
        presence_mode: How get_active_participants() decides who is present
        selectors: Ordered selector strategies
        clock: Monotonic clock in seconds (injectable for tests)
        on_event: Optional callback for each emitted SpeakerEvent
    """

    POLL_INTERVAL_SECONDS = 0.5

    def __init__(
        self,
        channel: PageChannel,
        bot_name: str = "",
        presence_mode: PresenceMode = PresenceMode.TILES,
        selectors: Optional[DetectorSelectors] = None,
        clock: Callable[[], float] = time.monotonic,
        on_event: Optional[Callable[[SpeakerEvent], None]] = None,
    ):
        self.channel = channel
        self.bot_name = bot_name
        self.presence_mode = presence_mode
        self.selectors = selectors or DetectorSelectors()
        self._clock = clock
        self._on_event = on_event

        self.records: dict[str, ParticipantRecord] = {}
        self.events: list[SpeakerEvent] = []
        self._present_ids: list[str] = []
        self._session_start: Optional[float] = None
        self._poll_task: Optional[asyncio.Task] = None
        self._installed = False
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def install(self) -> None:
        """Inject the page-side observer and subscribe to its mutation events."""
        if self._installed:
            return
        await self.channel.open()
        await self.channel.call(OBSERVER_SCRIPT, self.selectors.to_page_args())
        self.channel.subscribe(MUTATION_EVENT, self._on_mutation)
        self._installed = True
        logger.info("Speaker detection initialized")

    async def start(self) -> None:
        """Begin observation: initial scan plus the periodic poll."""
        if self._running:
            return
        await self.install()
        self._session_start = self._clock()
        self._running = True

        try:
            if await self.channel.call("() => window.__meetRecorderSpeaker.openPeoplePanel()"):
                logger.debug("Opened People panel")
        except Exception as e:
            logger.debug(f"Suppressed error opening People panel: {e}")

        await self.poll_once()
        self._poll_task = asyncio.create_task(self._poll_loop())
        logger.info("Speaker detection started")

    async def stop(self) -> None:
        """Halt observation. Records and the event log are kept for persistence."""
        if not self._running:
            return
        self._running = False
        if self._poll_task and not self._poll_task.done():
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
        self._poll_task = None
        self.channel.unsubscribe(MUTATION_EVENT, self._on_mutation)
        self._installed = False
        try:
            await self.channel.call("() => window.__meetRecorderSpeaker && window.__meetRecorderSpeaker.disconnect()")
        except Exception as e:
            logger.debug(f"Suppressed error disconnecting page observers: {e}")
        logger.info(f"Speaker detection stopped ({len(self.events)} events)")

    # ==================== Transition logic ====================

    def _relative_ms(self) -> int:
        if self._session_start is None:
            self._session_start = self._clock()
        return max(0, int((self._clock() - self._session_start) * 1000))

    def _emit(self, event_type: SpeakerEventType, record: ParticipantRecord) -> SpeakerEvent:
        event = SpeakerEvent(
            type=event_type,
            participant_id=record.id,
            participant_name=record.display_name,
            relative_timestamp_ms=self._relative_ms(),
        )
        self.events.append(event)
        logger.info(f"{event_type.value}: {hash_name(record.display_name)} (ID: {record.id})")
        if self._on_event:
            try:
                self._on_event(event)
            except Exception as e:
                logger.error(f"Speaker event callback failed: {e}")
        return event

    def observe(self, snapshot: ParticipantSnapshot) -> Optional[SpeakerEvent]:
        """Apply one snapshot. Returns the emitted event, or None if nothing changed."""
        participant_id = resolve_participant_id(snapshot)
        name = resolve_participant_name(snapshot, participant_id)
        speaking = infer_speaking(snapshot, self.selectors)

        record = self.records.get(participant_id)
        if record is None:
            record = ParticipantRecord(id=participant_id, display_name=name)
            self.records[participant_id] = record
            logger.debug(f"New participant {hash_name(name)} (ID: {participant_id})")
        else:
            record.display_name = name

        if speaking and not record.is_speaking:
            record.speaking_state = SpeakingState.SPEAKING
            return self._emit(SpeakerEventType.START, record)
        if not speaking and record.is_speaking:
            record.speaking_state = SpeakingState.SILENT
            return self._emit(SpeakerEventType.END, record)
        return None

    def apply_scan(self, snapshots: list[ParticipantSnapshot]) -> list[SpeakerEvent]:
        """Apply a full scan; tiles missing from it are discarded.

        A discarded tile that was speaking gets an END first, so a tile that
        comes back cannot produce two STARTs in a row.
        """
        emitted = []
        present: list[str] = []
        for snapshot in snapshots:
            try:
                event = self.observe(snapshot)
            except ValueError as e:
                logger.debug(f"Skipping participant snapshot: {e}")
                continue
            if event:
                emitted.append(event)
            present.append(resolve_participant_id(snapshot))

        for participant_id in list(self.records):
            if participant_id in present:
                continue
            record = self.records.pop(participant_id)
            if record.is_speaking:
                record.speaking_state = SpeakingState.SILENT
                emitted.append(self._emit(SpeakerEventType.END, record))
            logger.debug(f"Participant {participant_id} left the page")

        self._present_ids = present
        return emitted

    def _on_mutation(self, payload: dict) -> None:
        if not self._running:
            return
        try:
            self.observe(ParticipantSnapshot.from_page(payload))
        except ValueError as e:
            logger.debug(f"Ignoring mutation snapshot: {e}")

    async def poll_once(self) -> list[SpeakerEvent]:
        raw = await self.channel.call("() => window.__meetRecorderSpeaker.scan()")
        return self.apply_scan([ParticipantSnapshot.from_page(item) for item in raw or []])

    async def _poll_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.POLL_INTERVAL_SECONDS)
            if not self._running:
                break
            try:
                await self.poll_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.debug(f"Speaker poll failed: {e}")

    # ==================== Presence ====================

    async def get_active_participants(self) -> list[str]:
        """De-duplicated display names of everyone currently present."""
        if self.presence_mode is PresenceMode.TEXT_SCAN:
            names = await self.channel.call(
                "(botName) => window.__meetRecorderSpeaker.textScan(botName)",
                self.bot_name,
            )
            names = list(dict.fromkeys(names or []))
        else:
            names = list(
                dict.fromkeys(
                    self.records[pid].display_name
                    for pid in self._present_ids
                    if pid in self.records
                )
            )
        logger.debug(f"Active participants: {[hash_name(n) for n in names]}")
        return names

    async def get_active_participants_count(self) -> int:
        return len(await self.get_active_participants())
