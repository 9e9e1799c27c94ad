"""
Graceful shutdown.

The single exit path for the process. Every terminal trigger (signals, the
watchdog, the in-page leave bridge, pipeline failures, normal completion)
calls GracefulShutdownSequencer.shutdown(). Only the first call runs the
sequence; the rest are logged and ignored.

Sequence, each step fault tolerant:
1. Finalize the recording (stop pipelines, persist artifacts)
2. Platform leave, if the page is still open
3. Close the page
4. Close the browser
5. Terminate with the exit code of the first caller
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from meet_recorder.errors import PlatformLeaveError, ShutdownStepError
from meet_recorder.session import SessionContext

logger = logging.getLogger(__name__)

LeaveHandler = Callable[[object], Awaitable[bool]]


class GracefulShutdownSequencer:
    """Runs the shutdown sequence exactly once per process.

    Args:
        session: Shared session context (page, browser, state)
        leave_handlers: Platform tag -> async leave(page) returning success
        terminate: Called once with the exit code; defaults to recording it
            for wait_for_exit()
        sleep: Awaitable sleep (injectable for tests)
    """

    LEAVE_GRACE_SECONDS = 2.0

    def __init__(
        self,
        session: SessionContext,
        leave_handlers: Optional[dict[str, LeaveHandler]] = None,
        terminate: Optional[Callable[[int], None]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.session = session
        self.leave_handlers = leave_handlers if leave_handlers is not None else {}
        self._terminate = terminate or self._record_exit
        self._sleep = sleep
        self.exit_code: Optional[int] = None
        self.reason: Optional[str] = None
        self.failed_steps: list[ShutdownStepError] = []
        self._exited = asyncio.Event()

    def _record_exit(self, code: int) -> None:
        self.exit_code = code
        self._exited.set()

    @property
    def in_progress(self) -> bool:
        return self.session.state.shutdown_in_progress

    async def wait_for_exit(self) -> int:
        """Block until terminate() ran. Returns the exit code."""
        await self._exited.wait()
        return int(self.exit_code if self.exit_code is not None else 1)

    # ==================== Steps ====================

    async def _step(self, name: str, action: Callable[[], Awaitable[None]]) -> None:
        try:
            await action()
        except Exception as e:
            error = ShutdownStepError(name, e)
            self.failed_steps.append(error)
            logger.error(f"[Graceful Leave] {error}")

    async def _finalize_recording(self) -> None:
        coordinator = self.session.coordinator
        if coordinator is None:
            return
        logger.info("[Graceful Leave] Finalizing recording...")
        await coordinator.finalize()

    async def _platform_leave(self) -> None:
        if not self.session.page_is_live:
            logger.info("[Graceful Leave] Page already closed, skipping platform leave")
            return

        handler = self.leave_handlers.get(self.session.platform)
        if handler is None:
            logger.info(
                f"[Graceful Leave] No platform leave for '{self.session.platform}', treating as handled"
            )
            return

        logger.info(f"[Graceful Leave] Attempting platform leave for {self.session.platform}...")
        try:
            left = await handler(self.session.page)
        except PlatformLeaveError as e:
            logger.warning(f"[Graceful Leave] Platform leave failed, continuing shutdown: {e}")
            return
        except Exception as e:
            logger.error(f"[Graceful Leave] Error during platform leave: {e}")
            return

        if left:
            logger.info("[Graceful Leave] Platform leave succeeded, waiting for it to settle...")
            await self._sleep(self.LEAVE_GRACE_SECONDS)
        else:
            logger.warning("[Graceful Leave] Platform leave reported failure, continuing shutdown")

    async def _close_page(self) -> None:
        if not self.session.page_is_live:
            return
        logger.info("[Graceful Leave] Closing page...")
        channel = self.session.channel
        if channel is not None:
            await channel.close()
        await self.session.page.close()

    async def _close_browser(self) -> None:
        if self.session.browser_is_connected:
            logger.info("[Graceful Leave] Closing browser...")
            await self.session.browser.close()
        if self.session.playwright is not None:
            playwright, self.session.playwright = self.session.playwright, None
            await playwright.stop()

    # ==================== Entry point ====================

    async def shutdown(self, exit_code: int = 1, reason: str = "self_initiated_leave") -> bool:
        """Run the shutdown sequence.

        Returns:
            True for the call that ran the sequence, False for ignored repeats
        """
        if not self.session.state.begin_shutdown():
            logger.info(f"[Graceful Leave] Shutdown already in progress, ignoring '{reason}'")
            return False

        self.reason = reason
        logger.info(f"[Graceful Leave] Initiating graceful shutdown. Reason: {reason}, exit code: {exit_code}")

        await self._step("finalize_recording", self._finalize_recording)
        await self._step("platform_leave", self._platform_leave)
        await self._step("close_page", self._close_page)
        await self._step("close_browser", self._close_browser)

        logger.info(f"[Graceful Leave] Exiting process with code {exit_code} (Reason: {reason})")
        self._terminate(exit_code)
        return True
