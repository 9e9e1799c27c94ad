"""
Automatic-leave watchdog.

Decides when an unattended session should end, once per second:
- STARTUP_ALONE: nobody else has ever been seen; the long startup grace applies
- ACTIVE: more than one participant has been seen at least once (permanent)
- ALONE_POST_SPEAKERS: back to one or zero participants after ACTIVE; the
  short "everyone left" grace applies

A count of 0 and a count of 1 are both "alone" (the bot's own tile counts).
"""

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Optional

from meet_recorder.errors import LeaveReason, WatchdogTimeout
from meet_recorder.models import SessionState

logger = logging.getLogger(__name__)


class WatchdogRegime(str, Enum):
    STARTUP_ALONE = "startup_alone"
    ACTIVE = "active"
    ALONE_POST_SPEAKERS = "alone_post_speakers"


class AutomaticLeaveWatchdog:
    """Two-regime alone-timeout policy.

    Args:
        count_provider: Async callable returning the current participant count
        state: Session state shared with the coordinator and sequencer
        startup_alone_timeout_seconds: Threshold before anyone was ever seen
        everyone_left_timeout_seconds: Threshold after speakers were identified
        tick_interval: Seconds between ticks
    """

    TICK_INTERVAL_SECONDS = 1.0
    PROGRESS_LOG_EVERY = 10

    def __init__(
        self,
        count_provider: Callable[[], Awaitable[int]],
        state: SessionState,
        startup_alone_timeout_seconds: int,
        everyone_left_timeout_seconds: int,
        tick_interval: float = TICK_INTERVAL_SECONDS,
    ):
        self._count_provider = count_provider
        self.state = state
        self.startup_alone_timeout_seconds = startup_alone_timeout_seconds
        self.everyone_left_timeout_seconds = everyone_left_timeout_seconds
        self.tick_interval = tick_interval
        self.ticks = 0
        self.fired: Optional[LeaveReason] = None
        self._last_count: Optional[int] = None
        self._stopped = False
        self._alone = True

    @property
    def regime(self) -> WatchdogRegime:
        if not self.state.speakers_ever_identified:
            return WatchdogRegime.STARTUP_ALONE
        if self._alone:
            return WatchdogRegime.ALONE_POST_SPEAKERS
        return WatchdogRegime.ACTIVE

    @property
    def active_timeout_seconds(self) -> int:
        if self.state.speakers_ever_identified:
            return self.everyone_left_timeout_seconds
        return self.startup_alone_timeout_seconds

    def stop(self) -> None:
        """Stop ticking without firing."""
        self._stopped = True

    def tick(self, count: int) -> Optional[LeaveReason]:
        """Advance one tick with the observed participant count.

        Returns:
            The terminal reason when the active threshold is reached, else None.
            Once fired (or stopped), further ticks are ignored.
        """
        if self.fired is not None or self._stopped:
            return None
        self.ticks += 1

        if count != self._last_count:
            logger.info(f"[Watchdog] Participant check: found {count} unique participants")
            self._last_count = count

        if count > 1:
            self._alone = False
            self.state.alone_duration_seconds = 0
            if self.state.mark_speakers_identified():
                logger.info("[Watchdog] Speakers identified - switching to post-speaker monitoring mode")
            return None

        self._alone = True
        self.state.alone_duration_seconds += 1
        alone = self.state.alone_duration_seconds
        threshold = self.active_timeout_seconds

        if alone >= threshold:
            self._stopped = True
            if self.state.speakers_ever_identified:
                self.fired = LeaveReason.BOT_LEFT_ALONE_TIMEOUT
                logger.info(
                    f"[Watchdog] Alone for {alone}s after speakers were identified "
                    f"(limit {threshold}s). Stopping recorder..."
                )
            else:
                self.fired = LeaveReason.BOT_STARTUP_ALONE_TIMEOUT
                logger.info(
                    f"[Watchdog] Alone for {alone}s during startup with no other participants "
                    f"(limit {threshold}s). Stopping recorder..."
                )
            return self.fired

        if alone % self.PROGRESS_LOG_EVERY == 0:
            remaining = threshold - alone
            if self.state.speakers_ever_identified:
                logger.info(
                    f"[Watchdog] Alone for {alone}s (post-speaker mode). Leaving in {remaining}s."
                )
            else:
                logger.info(
                    f"[Watchdog] Alone for {alone}s during startup. "
                    f"Leaving in {remaining // 60}m {remaining % 60}s."
                )
        return None

    async def _read_count(self) -> int:
        try:
            return int(await self._count_provider())
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"[Watchdog] Participant count unavailable, treating as 0: {e}")
            return 0

    async def run(self) -> None:
        """Tick until the threshold is reached or stop() is called.

        Raises:
            WatchdogTimeout: when a regime threshold is reached
        """
        logger.info(
            f"[Watchdog] Started (startup limit {self.startup_alone_timeout_seconds}s, "
            f"post-speaker limit {self.everyone_left_timeout_seconds}s)"
        )
        while not self._stopped:
            await asyncio.sleep(self.tick_interval)
            if self._stopped:
                break
            reason = self.tick(await self._read_count())
            if reason is not None:
                raise WatchdogTimeout(reason, self.state.alone_duration_seconds)
