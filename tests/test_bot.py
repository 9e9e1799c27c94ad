"""Tests for meet_recorder/bot.py - outcome routing and exit codes."""

import asyncio
import signal
from unittest.mock import AsyncMock, patch

import pytest
from conftest import FakePage, make_browser

from meet_recorder.bot import LEAVE_BRIDGE_NAME, RecorderBot, run_bot
from meet_recorder.errors import (
    AdmissionError,
    ExitCode,
    LeaveReason,
    PipelineInitError,
    WatchdogTimeout,
)
from meet_recorder.platforms import PLATFORM_HANDLERS
from meet_recorder.shutdown import GracefulShutdownSequencer


@pytest.fixture
def page():
    return FakePage()


@pytest.fixture
def launch(page):
    """Patch browser launch to hand out the fake page and browser."""

    async def fake_launch(config, session):
        session.page = page
        session.browser = make_browser()

    with patch("meet_recorder.bot.launch_browser", side_effect=fake_launch) as mock:
        yield mock


@pytest.fixture(autouse=True)
def no_leave_grace():
    with patch.object(GracefulShutdownSequencer, "LEAVE_GRACE_SECONDS", 0):
        yield


def meet_run(**kwargs):
    return patch.object(PLATFORM_HANDLERS["google_meet"], "run", new=AsyncMock(**kwargs))


async def run(bot_config):
    bot = RecorderBot(bot_config, handle_signals=False)
    code = await bot.run()
    return bot, code


class TestPlatformDispatch:
    @pytest.mark.asyncio
    async def test_unknown_platform(self, bot_config, launch):
        bot_config.platform = "webex"
        bot, code = await run(bot_config)

        assert code == ExitCode.FAILURE
        assert bot.sequencer.reason == "unknown_platform"
        launch.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("platform", ["zoom", "teams"])
    async def test_unimplemented_platform(self, bot_config, launch, platform):
        bot_config.platform = platform
        bot, code = await run(bot_config)

        assert code == ExitCode.FAILURE
        assert bot.sequencer.reason == "platform_not_implemented"
        launch.assert_not_called()


class TestOutcomes:
    @pytest.mark.asyncio
    async def test_normal_completion(self, bot_config, launch, page):
        with meet_run(return_value=[]) as handler_run:
            bot, code = await run(bot_config)

        assert code == ExitCode.SUCCESS
        assert bot.sequencer.reason == "normal_completion"
        handler_run.assert_awaited_once_with(bot.session)
        assert LEAVE_BRIDGE_NAME in page.exposed
        assert page.close_calls == 1
        bot.session.browser.close.assert_awaited_once()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "reason, expected_code, expected_reason",
        [
            (LeaveReason.BOT_STARTUP_ALONE_TIMEOUT, 1, "startup_alone_timeout"),
            (LeaveReason.BOT_LEFT_ALONE_TIMEOUT, 0, "left_alone_timeout"),
        ],
    )
    async def test_watchdog_timeouts(self, bot_config, launch, reason, expected_code, expected_reason):
        with meet_run(side_effect=WatchdogTimeout(reason, 10)):
            bot, code = await run(bot_config)

        assert code == expected_code
        assert bot.sequencer.reason == expected_reason

    @pytest.mark.asyncio
    async def test_join_failure(self, bot_config, launch):
        with meet_run(side_effect=AdmissionError("not admitted")):
            bot, code = await run(bot_config)

        assert code == ExitCode.FAILURE
        assert bot.sequencer.reason == "join_failed"

    @pytest.mark.asyncio
    async def test_pipeline_failure(self, bot_config, launch):
        error = PipelineInitError("audio", "Audio recording", RuntimeError("no AudioContext"))
        with meet_run(side_effect=error):
            bot, code = await run(bot_config)

        assert code == ExitCode.FAILURE
        assert bot.sequencer.reason == "platform_handler_exception"

    @pytest.mark.asyncio
    async def test_browser_launch_failure(self, bot_config):
        with patch("meet_recorder.bot.launch_browser", side_effect=RuntimeError("no display")):
            bot, code = await run(bot_config)

        assert code == ExitCode.FAILURE
        assert bot.sequencer.reason == "platform_handler_exception"


class TestTriggers:
    @pytest.mark.asyncio
    async def test_leave_bridge_from_page(self, bot_config, launch, page):
        async def record_forever(session):
            page.exposed[LEAVE_BRIDGE_NAME]()
            await asyncio.Event().wait()

        with meet_run(side_effect=record_forever):
            bot, code = await run(bot_config)

        assert code == ExitCode.SUCCESS
        assert bot.sequencer.reason == "self_initiated_leave_from_browser"

    @pytest.mark.asyncio
    async def test_sigterm(self, bot_config, launch):
        bot = RecorderBot(bot_config, handle_signals=False)

        async def record_forever(session):
            bot._on_signal(signal.SIGTERM)
            await asyncio.Event().wait()

        with meet_run(side_effect=record_forever):
            code = await bot.run()

        assert code == ExitCode.SIGTERM
        assert bot.sequencer.reason == "signal_sigterm"

    @pytest.mark.asyncio
    async def test_sigint_then_watchdog_keeps_first_code(self, bot_config, launch):
        bot = RecorderBot(bot_config, handle_signals=False)

        async def interrupted(session):
            bot._on_signal(signal.SIGINT)
            await asyncio.sleep(0)
            raise WatchdogTimeout(LeaveReason.BOT_LEFT_ALONE_TIMEOUT, 10)

        with meet_run(side_effect=interrupted):
            code = await bot.run()

        assert code == ExitCode.SIGINT
        assert bot.sequencer.reason == "signal_sigint"


@pytest.mark.asyncio
async def test_run_bot_returns_exit_code(bot_config, launch):
    with meet_run(return_value=[]):
        assert await run_bot(bot_config, handle_signals=False) == 0
