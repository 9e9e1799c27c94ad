"""Per-process session context.

Holds the page handle, browser, active platform and shutdown flag for one
run. One instance is created by run_bot() and passed by reference to the
coordinator, watchdog, detector and sequencer.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional

from meet_recorder.config import BotConfig
from meet_recorder.models import SessionState

if TYPE_CHECKING:
    from meet_recorder.channel import PageChannel
    from meet_recorder.recording import RecordingPipelineCoordinator


@dataclass
class SessionContext:
    """Everything one recording session owns."""

    config: BotConfig
    state: SessionState = field(default_factory=SessionState)
    playwright: Any = None
    browser: Any = None
    page: Any = None
    channel: Optional["PageChannel"] = None
    coordinator: Optional["RecordingPipelineCoordinator"] = None

    @property
    def platform(self) -> str:
        return self.config.platform

    @property
    def page_is_live(self) -> bool:
        return self.page is not None and not self.page.is_closed()

    @property
    def browser_is_connected(self) -> bool:
        return self.browser is not None and self.browser.is_connected()
