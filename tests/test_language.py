"""Tests for the language resolver."""

import pytest

from snapsolve.errors import InitializationTimeout
from snapsolve.language import LanguageResolver


class FakeConsumer:
    def __init__(self, language="python", ready_after=0, fail=False):
        self.language = language
        self.ready_after = ready_after
        self.fail = fail
        self.polls = 0

    async def is_initialized(self):
        if self.fail:
            raise ConnectionError("window gone")
        self.polls += 1
        return self.polls > self.ready_after

    async def get_selected_language(self):
        return self.language


def _resolver(consumer, attempts=5):
    return LanguageResolver(
        lambda: consumer, fallback="python", poll_interval=0.001, max_attempts=attempts
    )


@pytest.mark.asyncio
async def test_returns_selected_language():
    assert await _resolver(FakeConsumer("golang")).resolve() == "golang"


@pytest.mark.asyncio
async def test_waits_for_readiness():
    consumer = FakeConsumer("java", ready_after=2)
    assert await _resolver(consumer).resolve() == "java"
    assert consumer.polls == 3


@pytest.mark.asyncio
async def test_timeout_falls_back():
    consumer = FakeConsumer("java", ready_after=100)
    assert await _resolver(consumer, attempts=4).resolve() == "python"
    assert consumer.polls == 4


@pytest.mark.asyncio
async def test_wait_for_initialization_raises_on_timeout():
    consumer = FakeConsumer(ready_after=100)
    with pytest.raises(InitializationTimeout):
        await _resolver(consumer, attempts=2).wait_for_initialization(consumer)
    assert consumer.polls == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("language", [None, 42])
async def test_invalid_language_falls_back(language):
    assert await _resolver(FakeConsumer(language)).resolve() == "python"


@pytest.mark.asyncio
async def test_unreachable_consumer_falls_back():
    assert await _resolver(FakeConsumer(fail=True)).resolve() == "python"


@pytest.mark.asyncio
async def test_missing_consumer_falls_back():
    resolver = LanguageResolver(lambda: None, fallback="cpp")
    assert await resolver.resolve() == "cpp"


@pytest.mark.asyncio
async def test_empty_language_is_passed_through():
    assert await _resolver(FakeConsumer("")).resolve() == ""
