"""Cooperative cancellation signal for a provisioning run.

The runner checks the token between steps and the retry policy checks it
before every attempt and after every backoff wait. An operator interrupt
sets the token; the run then rolls back and reports ``cancelled``.
"""

from __future__ import annotations

import asyncio

from ..errors import RunCancelledError


class CancellationToken:
    """One-shot cancellation flag shared by a run and its steps."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = 'cancelled by operator') -> None:
        if self._event.is_set():
            return
        self.reason = reason
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RunCancelledError(self.reason or 'cancelled')
