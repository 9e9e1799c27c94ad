"""
Recorder bot entry point.

Wires one session together:
- Launch the browser and open the page channel
- Route SIGINT/SIGTERM and the in-page leave bridge to the shutdown sequencer
- Dispatch to the platform handler and map its outcome to an exit code
"""

import asyncio
import logging
import signal

from meet_recorder.browser import launch_browser
from meet_recorder.channel import PageChannel
from meet_recorder.config import BotConfig
from meet_recorder.errors import AdmissionError, ExitCode, WatchdogTimeout
from meet_recorder.platforms import get_platform_handler, leave_handlers
from meet_recorder.session import SessionContext
from meet_recorder.shutdown import GracefulShutdownSequencer

logger = logging.getLogger(__name__)

LEAVE_BRIDGE_NAME = "triggerGracefulLeave"

SIGNAL_EXITS = {
    signal.SIGINT: (ExitCode.SIGINT, "signal_sigint"),
    signal.SIGTERM: (ExitCode.SIGTERM, "signal_sigterm"),
}


class RecorderBot:
    """Owns the session and the sequencer for one process run."""

    def __init__(self, config: BotConfig, handle_signals: bool = True):
        self.config = config
        self.session = SessionContext(config=config)
        self.sequencer = GracefulShutdownSequencer(self.session, leave_handlers=leave_handlers())
        self.handle_signals = handle_signals
        self._tasks: set[asyncio.Task] = set()

    def _spawn_shutdown(self, exit_code: int, reason: str) -> asyncio.Task:
        task = asyncio.create_task(self.sequencer.shutdown(exit_code, reason))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # ==================== Triggers ====================

    def _on_signal(self, sig: signal.Signals) -> None:
        code, reason = SIGNAL_EXITS[sig]
        logger.info(f"Received signal {sig.name}")
        self._spawn_shutdown(int(code), reason)

    def _setup_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in SIGNAL_EXITS:
            loop.add_signal_handler(sig, self._on_signal, sig)

    def _remove_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in SIGNAL_EXITS:
            loop.remove_signal_handler(sig)

    def _on_leave_request(self, *args) -> bool:
        """Host side of the in-page leave bridge."""
        logger.info("[Graceful Leave] Leave requested from the page")
        self._spawn_shutdown(int(ExitCode.SUCCESS), "self_initiated_leave_from_browser")
        return True

    # ==================== Session ====================

    async def _prepare_page(self) -> None:
        await launch_browser(self.config, self.session)
        self.session.channel = PageChannel(self.session.page)
        await self.session.channel.open()
        await self.session.channel.expose_function(LEAVE_BRIDGE_NAME, self._on_leave_request)

    async def _run_platform(self) -> None:
        """Run the session and request shutdown with its outcome."""
        platform = self.config.platform
        handler = get_platform_handler(platform)
        if handler is None:
            logger.error(f"Unknown platform: {platform}")
            await self.sequencer.shutdown(int(ExitCode.FAILURE), "unknown_platform")
            return
        if not handler.implemented:
            logger.error(f"Platform '{platform}' is not implemented")
            await self.sequencer.shutdown(int(ExitCode.FAILURE), "platform_not_implemented")
            return

        try:
            await self._prepare_page()
            await handler.run(self.session)
        except WatchdogTimeout as e:
            logger.info(f"Automatic leave: {e.reason.value} after {e.alone_seconds}s alone")
            await self.sequencer.shutdown(e.exit_code, e.exit_reason)
            return
        except AdmissionError as e:
            logger.error(f"Failed to join meeting: {e}")
            await self.sequencer.shutdown(int(ExitCode.FAILURE), "join_failed")
            return
        except Exception as e:
            logger.error(f"Error running {platform} session: {e}", exc_info=True)
            await self.sequencer.shutdown(int(ExitCode.FAILURE), "platform_handler_exception")
            return

        await self.sequencer.shutdown(int(ExitCode.SUCCESS), "normal_completion")

    async def run(self) -> int:
        """Run until the sequencer terminates. Returns the exit code."""
        if self.handle_signals:
            self._setup_signal_handlers()
        run_task = asyncio.create_task(self._run_platform())
        try:
            code = await self.sequencer.wait_for_exit()
        finally:
            if not run_task.done():
                run_task.cancel()
            await asyncio.gather(run_task, *self._tasks, return_exceptions=True)
            if self.handle_signals:
                self._remove_signal_handlers()
        return code


async def run_bot(config: BotConfig, handle_signals: bool = True) -> int:
    """Run one recording session. Returns the process exit code."""
    logger.info(f"Starting recorder bot for meeting {config.meeting_id} on {config.platform}")
    return await RecorderBot(config, handle_signals=handle_signals).run()

