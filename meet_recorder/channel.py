"""
Command/event channel between the control loop and the meeting page.

The capture pipelines and the speaker observer run inside the page's own
script context. The control side never shares memory with them:
- Commands go in through call(), which evaluates a script in the page
- Page-originated events come out through a single exposed binding into a
  bounded queue, and are dispatched to subscribers by kind
- Page console lines tagged with PAGE_LOG_PREFIX are forwarded to logging
"""

import asyncio
import inspect
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Optional, Union

from meet_recorder.errors import PageClosedError

logger = logging.getLogger(__name__)
page_logger = logging.getLogger("meet_recorder.page")

EMIT_BINDING = "__meetRecorderEmit"
PAGE_LOG_PREFIX = "[MeetRecorder]"

EventHandler = Callable[[Any], Union[None, Awaitable[None]]]


class PageChannel:
    """Bounded, asynchronous bridge to one Playwright page.

    Args:
        page: Playwright Page (or anything with the same async surface)
        max_pending_events: Events buffered before new ones are dropped
        max_inflight_commands: Concurrent page evaluations allowed
    """

    def __init__(
        self,
        page,
        max_pending_events: int = 1000,
        max_inflight_commands: int = 8,
    ):
        self.page = page
        self._events: asyncio.Queue = asyncio.Queue(maxsize=max_pending_events)
        self._commands = asyncio.Semaphore(max_inflight_commands)
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)
        self._dispatch_task: Optional[asyncio.Task] = None
        self._opened = False
        self.dropped_events = 0

    @property
    def closed(self) -> bool:
        return self.page is None or self.page.is_closed()

    async def open(self) -> None:
        """Expose the event binding and start dispatching. Safe to call twice."""
        if self._opened:
            return
        self._opened = True
        await self.page.expose_function(EMIT_BINDING, self._on_page_event)
        self.page.on("console", self._on_console)
        self._dispatch_task = asyncio.create_task(self._dispatch_loop())
        logger.debug("Page channel open")

    async def close(self) -> None:
        """Stop dispatching. Pending events are discarded."""
        if self._dispatch_task and not self._dispatch_task.done():
            self._dispatch_task.cancel()
            try:
                await self._dispatch_task
            except asyncio.CancelledError:
                pass
        self._dispatch_task = None

    async def call(self, script: str, arg: Any = None) -> Any:
        """Evaluate a script in the page and return its (JSON) result.

        Raises:
            PageClosedError: if the page is already closed
        """
        if self.closed:
            raise PageClosedError("Page is closed")
        async with self._commands:
            if arg is None:
                return await self.page.evaluate(script)
            return await self.page.evaluate(script, arg)

    async def expose_function(self, name: str, callback: Callable[..., Any]) -> None:
        """Expose a one-shot style host function callable from the page."""
        await self.page.expose_function(name, callback)

    def subscribe(self, kind: str, handler: EventHandler) -> None:
        """Register a handler for page events of the given kind."""
        self._handlers[kind].append(handler)

    def unsubscribe(self, kind: str, handler: EventHandler) -> None:
        if handler in self._handlers.get(kind, []):
            self._handlers[kind].remove(handler)

    def _on_page_event(self, kind: str, payload: Any = None) -> None:
        try:
            self._events.put_nowait((kind, payload))
        except asyncio.QueueFull:
            self.dropped_events += 1
            if self.dropped_events == 1 or self.dropped_events % 100 == 0:
                logger.warning(f"Page event queue full, dropped {self.dropped_events} event(s)")

    def _on_console(self, message) -> None:
        text = message.text
        if text.startswith(PAGE_LOG_PREFIX):
            page_logger.info(text[len(PAGE_LOG_PREFIX):].strip())

    async def _dispatch_loop(self) -> None:
        while True:
            kind, payload = await self._events.get()
            for handler in list(self._handlers.get(kind, [])):
                try:
                    result = handler(payload)
                    if inspect.isawaitable(result):
                        await result
                except Exception as e:
                    logger.error(f"Handler for page event '{kind}' failed: {e}")
            self._events.task_done()

    async def drain(self) -> None:
        """Wait until every queued event has been dispatched."""
        await self._events.join()
