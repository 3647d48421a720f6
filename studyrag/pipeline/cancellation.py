"""Cooperative cancellation shared across one ingestion run.

A :class:`CancellationToken` is passed by reference into every component
that can stop early (content extractor, quality reviewer, embed loop).
Components *check* it at safe points; nothing is ever interrupted
mid-call, and pending writes are flushed before a component honours it.
"""

from __future__ import annotations

import asyncio


class CancellationToken:
    """A one-way cancelled flag with an awaitable event."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: str | None = None

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    async def wait(self) -> None:
        """Block until :meth:`cancel` is called."""
        await self._event.wait()


def is_cancelled(token: CancellationToken | None) -> bool:
    """``True`` when *token* exists and has been cancelled."""
    return token is not None and token.is_cancelled
