"""Language resolver — reads the user's target programming language.

Waits for the consumer layer to report readiness, then reads the selected
language. Every failure path degrades to the fallback language.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from snapsolve.errors import InitializationTimeout

if TYPE_CHECKING:
    from collections.abc import Callable

    from snapsolve.consumer import ProcessingConsumer

logger = logging.getLogger(__name__)


class LanguageResolver:
    def __init__(
        self,
        get_consumer: Callable[[], ProcessingConsumer | None],
        fallback: str = "python",
        poll_interval: float = 0.1,
        max_attempts: int = 50,
    ) -> None:
        self._get_consumer = get_consumer
        self.fallback = fallback
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts

    async def wait_for_initialization(self, consumer: ProcessingConsumer) -> None:
        """Poll the readiness flag; raise ``InitializationTimeout`` when out of attempts."""
        for _ in range(self.max_attempts):
            if await consumer.is_initialized():
                return
            await asyncio.sleep(self.poll_interval)
        raise InitializationTimeout(
            f"App failed to initialize after {self.max_attempts * self.poll_interval:g} seconds"
        )

    async def resolve(self) -> str:
        consumer = self._get_consumer()
        if consumer is None:
            return self.fallback

        try:
            await self.wait_for_initialization(consumer)
            language = await consumer.get_selected_language()
        except Exception as e:
            logger.error(f"Error getting language: {e}")
            return self.fallback

        if not isinstance(language, str):
            logger.warning("Language not properly initialized")
            return self.fallback
        return language
