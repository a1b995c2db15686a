"""
core/cancellation.py -- Cooperative cancellation for request-scoped work.

A CancellationToken is handed to every async service operation. Before each
suspension point (store round-trip, bcrypt) the service awaits checkpoint(),
which raises OperationCancelled once the token is cancelled -- either
explicitly via cancel() or because its probe reports the client went away.

The API layer builds tokens whose probe is Request.is_disconnected, so a
dropped connection stops the remaining steps of an in-flight operation. Work
already running in a worker thread is not interrupted; the next checkpoint is.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Optional


class OperationCancelled(Exception):
    """Raised at a checkpoint after the owning request was abandoned."""


class CancellationToken:
    def __init__(self, probe: Optional[Callable[[], Awaitable[bool]]] = None) -> None:
        self._cancelled = False
        self._probe = probe

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    async def checkpoint(self) -> None:
        if not self._cancelled and self._probe is not None and await self._probe():
            self._cancelled = True
        if self._cancelled:
            raise OperationCancelled()


async def checkpoint(token: Optional[CancellationToken]) -> None:
    """Await token.checkpoint() when a token was supplied; no-op otherwise."""
    if token is not None:
        await token.checkpoint()
