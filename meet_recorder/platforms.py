"""
Platform handlers.

Each meeting platform provides a join-and-record routine and a leave action.
Only Google Meet is implemented; Zoom and Teams are registered so they can be
rejected with a clear reason instead of as an unknown tag.
"""

import asyncio
import logging
from typing import Optional

from meet_recorder.errors import AdmissionError, PlatformLeaveError
from meet_recorder.models import RecordingArtifact
from meet_recorder.recording import start_google_recording
from meet_recorder.selectors import (
    JOIN_BUTTON_SELECTOR,
    LEAVE_BUTTON_SELECTOR,
    NAME_INPUT_SELECTOR,
)
from meet_recorder.session import SessionContext

logger = logging.getLogger(__name__)


class PlatformHandler:
    """Join/record/leave for one platform."""

    name = ""
    implemented = False

    async def run(self, session: SessionContext) -> list[RecordingArtifact]:
        raise NotImplementedError(f"Platform '{self.name}' is not implemented")

    async def leave(self, page) -> bool:
        return False


class GoogleMeetHandler(PlatformHandler):
    name = "google_meet"
    implemented = True

    NAVIGATION_TIMEOUT_MS = 30000
    CONTROL_TIMEOUT_MS = 5000
    SETTLE_SECONDS = 2.0

    async def join(self, session: SessionContext) -> None:
        """Open the meeting, enter the bot name and wait to be admitted.

        Raises:
            AdmissionError: the pre-join screen never appeared, or the bot was
                not admitted within the waiting room timeout
        """
        page = session.page
        config = session.config
        logger.info(f"[JOIN] Navigating to {config.meeting_url}...")
        try:
            await page.goto(
                config.meeting_url,
                wait_until="domcontentloaded",
                timeout=self.NAVIGATION_TIMEOUT_MS,
            )
        except Exception as e:
            raise AdmissionError(f"Navigation failed: {e}") from e
        await asyncio.sleep(self.SETTLE_SECONDS)

        try:
            name_input = await page.wait_for_selector(NAME_INPUT_SELECTOR, timeout=self.CONTROL_TIMEOUT_MS)
            if name_input:
                await name_input.fill(config.bot_name)
                logger.info("[JOIN] Entered bot name")
        except Exception as e:
            logger.debug(f"[JOIN] No name input ({e}), continuing")

        try:
            join_button = await page.wait_for_selector(JOIN_BUTTON_SELECTOR, timeout=self.NAVIGATION_TIMEOUT_MS)
        except Exception as e:
            raise AdmissionError(f"Join button not found: {e}") from e
        await join_button.click()
        logger.info("[JOIN] Clicked join, waiting to be admitted...")

        waiting_room_ms = config.automatic_leave.waiting_room_timeout_seconds * 1000
        try:
            await page.wait_for_selector(LEAVE_BUTTON_SELECTOR, timeout=waiting_room_ms)
        except Exception as e:
            raise AdmissionError(
                f"Not admitted within {config.automatic_leave.waiting_room_timeout_seconds}s: {e}"
            ) from e
        logger.info("[JOIN] Admitted to the meeting")

    async def run(self, session: SessionContext) -> list[RecordingArtifact]:
        await self.join(session)
        return await start_google_recording(session)

    async def leave(self, page) -> bool:
        """Click the in-meeting leave control.

        Raises:
            PlatformLeaveError: the leave button was missing or the click failed
        """
        try:
            button = await page.wait_for_selector(LEAVE_BUTTON_SELECTOR, timeout=self.CONTROL_TIMEOUT_MS)
        except Exception as e:
            raise PlatformLeaveError(f"Leave button not found: {e}") from e
        if not button:
            raise PlatformLeaveError("Leave button not found")

        try:
            await button.click()
        except Exception as e:
            raise PlatformLeaveError(f"Failed to click leave button: {e}") from e
        logger.info("Left meeting")
        return True


class ZoomHandler(PlatformHandler):
    name = "zoom"


class TeamsHandler(PlatformHandler):
    name = "teams"


PLATFORM_HANDLERS: dict[str, PlatformHandler] = {
    handler.name: handler for handler in (GoogleMeetHandler(), ZoomHandler(), TeamsHandler())
}


def get_platform_handler(platform: str) -> Optional[PlatformHandler]:
    """Handler for a platform tag, or None when the tag is unknown."""
    return PLATFORM_HANDLERS.get(platform)


def leave_handlers() -> dict:
    """Platform tag -> leave(page), for the implemented platforms."""
    return {name: h.leave for name, h in PLATFORM_HANDLERS.items() if h.implemented}
