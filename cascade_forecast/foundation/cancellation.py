"""Cooperative cancellation for long-running computations.

Core loops poll a CancellationToken at regular intervals and return
whatever they have when it is set.  The token never interrupts a
computation by itself.
"""

from __future__ import annotations

import threading


class CancellationToken:
    """Thread-safe flag shared between a computation and its owner."""

    __slots__ = ("_event",)

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.cancelled})"


def is_cancelled(token: CancellationToken | None) -> bool:
    """True if *token* exists and has been cancelled."""
    return token is not None and token.cancelled
