"""Pytest configuration and shared fixtures."""

import asyncio
import inspect
import os
import sys
from collections import defaultdict
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add project root
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from meet_recorder.channel import PageChannel
from meet_recorder.config import AutomaticLeaveConfig, BotConfig, RecordingConfig
from meet_recorder.session import SessionContext


@pytest.fixture(autouse=True)
def setup_env():
    """Set up environment variables for testing."""
    original_env = dict(os.environ)
    os.environ.setdefault("TESTING", "1")

    yield

    os.environ.clear()
    os.environ.update(original_env)


# ============================================================================
# Fake Playwright surface
# ============================================================================


class FakeElement:
    """Stands in for a Playwright ElementHandle."""

    def __init__(self):
        self.click = AsyncMock()
        self.fill = AsyncMock()


class FakePage:
    """Minimal async Page: scripted evaluate(), bindings, events, close."""

    def __init__(self):
        self.scripts: dict[str, object] = {}
        self.evaluated: list[tuple[str, object]] = []
        self.exposed: dict[str, object] = {}
        self.handlers = defaultdict(list)
        self.selector_results: dict[str, object] = {}
        self.goto = AsyncMock()
        self.close_calls = 0
        self._closed = False

    def on_script(self, marker: str, result) -> None:
        """Answer any evaluated script containing marker with result.

        result may be a value, an exception (raised), or a callable taking the
        evaluate() argument.
        """
        self.scripts[marker] = result

    def was_evaluated(self, marker: str) -> bool:
        return any(marker in script for script, _ in self.evaluated)

    async def evaluate(self, script: str, arg=None):
        self.evaluated.append((script, arg))
        for marker, result in self.scripts.items():
            if marker not in script:
                continue
            if isinstance(result, BaseException):
                raise result
            if callable(result):
                result = result(arg)
            if inspect.isawaitable(result):
                result = await result
            return result
        return None

    async def expose_function(self, name: str, callback) -> None:
        self.exposed[name] = callback

    def on(self, event: str, handler) -> None:
        self.handlers[event].append(handler)

    def console(self, text: str) -> None:
        message = MagicMock()
        message.text = text
        for handler in self.handlers["console"]:
            handler(message)

    async def wait_for_selector(self, selector: str, timeout=None):
        result = self.selector_results.get(selector)
        if isinstance(result, BaseException):
            raise result
        return result if result is not None else FakeElement()

    def is_closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        self.close_calls += 1
        self._closed = True
        for handler in self.handlers["close"]:
            handler(self)


def make_browser(connected: bool = True) -> MagicMock:
    browser = MagicMock()
    browser.is_connected.return_value = connected
    browser.close = AsyncMock()
    return browser


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Yield to the loop until predicate() holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def fake_page():
    return FakePage()


@pytest.fixture
def fake_browser():
    return make_browser()


@pytest.fixture
def bot_config(tmp_path) -> BotConfig:
    """A google_meet config writing into tmp_path with short timeouts."""
    return BotConfig(
        platform="google_meet",
        meeting_url="https://meet.google.com/abc-defg-hij",
        bot_name="Recorder Bot",
        meeting_id=42,
        automatic_leave=AutomaticLeaveConfig(
            waiting_room_timeout_seconds=5,
            startup_alone_timeout_seconds=3,
            everyone_left_timeout_seconds=2,
        ),
        recording=RecordingConfig(
            preferred_dir=tmp_path / "recordings",
            source_retry_attempts=2,
            source_retry_delay_seconds=0,
            media_settle_seconds=0,
        ),
    )


@pytest.fixture
def session(bot_config, fake_page, fake_browser) -> SessionContext:
    """Session with a live fake page and a channel bound to it."""
    return SessionContext(
        config=bot_config,
        browser=fake_browser,
        page=fake_page,
        channel=PageChannel(fake_page),
    )

