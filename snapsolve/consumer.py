"""Consumer layer contract and the in-process event stream implementation.

The orchestrator only talks to the consumer through ``ProcessingConsumer``.
``EventStreamConsumer`` keeps the view/language state for the HTTP host and
fans lifecycle events out to SSE subscribers.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Literal, Protocol

from snapsolve.schemas import LifecycleEvent, ProcessingEvent

logger = logging.getLogger(__name__)

View = Literal["queue", "solutions"]


class ProcessingConsumer(Protocol):
    def emit(self, event: LifecycleEvent, payload: Any = None) -> None: ...

    def get_current_view(self) -> View: ...

    def set_view(self, view: View) -> None: ...

    async def is_initialized(self) -> bool: ...

    async def get_selected_language(self) -> Any: ...

    def set_has_debugged(self, value: bool) -> None: ...


class EventStreamConsumer:
    """Records events and pushes them to every subscribed queue."""

    def __init__(self, view: View = "queue", language: str | None = None) -> None:
        self.view: View = view
        self.language = language
        self.initialized = language is not None
        self.has_debugged = False
        self.history: list[ProcessingEvent] = []
        self._subscribers: set[asyncio.Queue[ProcessingEvent]] = set()

    # -- ProcessingConsumer -------------------------------------------------

    def emit(self, event: LifecycleEvent, payload: Any = None) -> None:
        message = ProcessingEvent(event=event, payload=payload)
        self.history.append(message)
        logger.debug(f"Event: {event.value}")
        for queue in self._subscribers:
            queue.put_nowait(message)

    def get_current_view(self) -> View:
        return self.view

    def set_view(self, view: View) -> None:
        self.view = view

    async def is_initialized(self) -> bool:
        return self.initialized

    async def get_selected_language(self) -> Any:
        return self.language

    def set_has_debugged(self, value: bool) -> None:
        self.has_debugged = value

    # -- host helpers -------------------------------------------------------

    def select_language(self, language: str) -> None:
        """Record the user's language; the first call marks the consumer ready."""
        self.language = language
        self.initialized = True

    def events(self) -> list[LifecycleEvent]:
        return [message.event for message in self.history]

    def subscribe(self) -> asyncio.Queue[ProcessingEvent]:
        queue: asyncio.Queue[ProcessingEvent] = asyncio.Queue()
        self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[ProcessingEvent]) -> None:
        self._subscribers.discard(queue)
