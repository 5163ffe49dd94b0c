"""Cancellation tokens for in-flight branches.

At most one live token exists per operation class ("main" for the
extraction → generation branch, "extra" for debugging). Starting a new
operation overwrites the slot; cancelling signals the token and clears it.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from collections.abc import Callable

    from snapsolve.pipeline.state import SessionState

logger = logging.getLogger(__name__)

OperationClass = Literal["main", "extra"]
OPERATION_CLASSES: tuple[OperationClass, ...] = ("main", "extra")


class OperationToken:
    """Single-use cancellation handle bound to one branch execution."""

    def __init__(self, operation: OperationClass) -> None:
        self.operation = operation
        self._event = asyncio.Event()
        self._finished = False

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def finished(self) -> bool:
        return self._finished

    def cancel(self) -> None:
        self._event.set()

    def finish(self) -> None:
        self._finished = True

    async def wait(self) -> None:
        """Suspend until the token is cancelled."""
        await self._event.wait()

    def __repr__(self) -> str:
        state = "cancelled" if self.cancelled else "finished" if self.finished else "live"
        return f"<OperationToken {self.operation} {state}>"


class CancellationController:
    """Owns the token slots and the full cancellation sweep."""

    def __init__(
        self,
        session: SessionState,
        on_sweep: Callable[[bool], None] | None = None,
    ) -> None:
        self._session = session
        self._on_sweep = on_sweep
        self._tokens: dict[str, OperationToken | None] = {op: None for op in OPERATION_CLASSES}

    def active(self, operation: OperationClass) -> OperationToken | None:
        return self._tokens[operation]

    def begin(self, operation: OperationClass) -> OperationToken:
        """Issue a fresh token for ``operation``, replacing any stale reference."""
        token = OperationToken(operation)
        self._tokens[operation] = token
        logger.debug(f"Began {operation} operation")
        return token

    def release(self, operation: OperationClass, token: OperationToken) -> None:
        """Mark ``token`` finished and free its slot if it still holds it."""
        token.finish()
        if self._tokens[operation] is token:
            self._tokens[operation] = None

    def cancel(self, operation: OperationClass) -> bool:
        """Signal the live token for ``operation``. Returns whether one existed."""
        token = self._tokens[operation]
        if token is None:
            return False
        token.cancel()
        self._tokens[operation] = None
        logger.info(f"Cancelled {operation} operation")
        return True

    def cancel_all(self) -> bool:
        """Cancel both classes and reset the session.

        ``on_sweep`` is called with whether anything was actually cancelled.
        """
        was_cancelled = False
        for operation in OPERATION_CLASSES:
            was_cancelled = self.cancel(operation) or was_cancelled

        self._session.reset()

        if self._on_sweep is not None:
            self._on_sweep(was_cancelled)
        return was_cancelled
