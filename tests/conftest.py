"""Shared fixtures: scripted chat model, screenshot files, orchestrator factory."""

from __future__ import annotations

import asyncio

import pytest
from langchain_core.messages import AIMessage

from snapsolve.config import SolverConfig
from snapsolve.consumer import EventStreamConsumer
from snapsolve.gateway import CompletionGateway
from snapsolve.orchestrator import ProcessingOrchestrator
from snapsolve.screenshots import ScreenshotStore

HANG = object()

SOLUTION_JSON = (
    '{"short_answer": "1", "code": "x=1", "thoughts": ["assign"], '
    '"time_complexity": "O(1)", "space_complexity": "O(1)"}'
)


class ScriptedChatModel:
    """Replies with scripted values in order.

    A string becomes an AIMessage, an exception is raised, ``HANG`` blocks
    until the caller cancels the request.
    """

    def __init__(self, *replies) -> None:
        self.replies = list(replies)
        self.calls: list[list] = []

    async def ainvoke(self, messages, **kwargs):
        self.calls.append(list(messages))
        reply = self.replies.pop(0)
        if reply is HANG:
            await asyncio.Event().wait()
        if isinstance(reply, BaseException):
            raise reply
        return AIMessage(content=reply)

    async def wait_for_calls(self, count: int, timeout: float = 2.0) -> None:
        async def poll():
            while len(self.calls) < count:
                await asyncio.sleep(0.005)

        await asyncio.wait_for(poll(), timeout)


@pytest.fixture
def config() -> SolverConfig:
    return SolverConfig(
        api_key="test-key",
        response_language="English",
        readiness_poll_interval=0.001,
        readiness_max_attempts=3,
    )


@pytest.fixture
def shot_dir(tmp_path):
    directory = tmp_path / "screenshots"
    directory.mkdir()
    return directory


@pytest.fixture
def make_shot(shot_dir):
    counter = iter(range(1000))

    def _make(content: bytes = b"\x89PNG fake image") -> str:
        path = shot_dir / f"shot_{next(counter)}.png"
        path.write_bytes(content)
        return str(path)

    return _make


@pytest.fixture
def store(shot_dir) -> ScreenshotStore:
    return ScreenshotStore(shot_dir, max_queue_size=5)


@pytest.fixture
def consumer() -> EventStreamConsumer:
    return EventStreamConsumer(language="python")


@pytest.fixture
def make_orchestrator(config, store, consumer):
    def _make(chat_model: ScriptedChatModel) -> ProcessingOrchestrator:
        gateway = CompletionGateway(config, llm_factory=lambda model, max_tokens: chat_model)
        return ProcessingOrchestrator(config, store, consumer, gateway=gateway)

    return _make
