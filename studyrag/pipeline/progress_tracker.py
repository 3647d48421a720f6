"""Ingestion progress tracking with callback-based listener notification.

The orchestrator reports every :class:`ProgressEvent` here, keyed by the
run's ``session_id``.  The tracker keeps a status snapshot per session for
polling and forwards each event to the listeners registered for that
session (the SSE stream, the CLI printer, tests).

    IngestionOrchestrator ──emit()──→ ProgressTracker ──callback()──→ EventStream queue
                                                      ──callback()──→ CLI printer

Listener errors are caught and logged so one broken listener cannot stall
the pipeline or starve the other listeners.  Both sync and async
callbacks are supported.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field

import structlog

from studyrag.models.events import EventName, ProgressEvent
from studyrag.utils.logging import get_logger


@dataclass
class _SessionStatus:
    """Internal snapshot of one session's progress (never serialized directly)."""

    stage: str = "created"
    message: str = ""
    document_id: str | None = None
    current: int = 0
    total: int = 0
    chunk_ids: list[str] = field(default_factory=list)
    error: dict | None = None
    finished: bool = False
    # time.monotonic() when the terminal event arrived.
    finished_at: float | None = None


class ProgressTracker:
    """Records and broadcasts ingestion progress events per session."""

    def __init__(self, retention_seconds: float = 600.0) -> None:
        # Finished sessions stay pollable this long, then are dropped.
        self._retention_seconds = retention_seconds
        self._statuses: dict[str, _SessionStatus] = {}
        self._listeners: dict[str, list[Callable]] = {}
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def emit(self, session_id: str, event: ProgressEvent) -> None:
        """Record *event* in the session snapshot and notify listeners."""
        self._prune_finished()
        status = self._statuses.setdefault(session_id, _SessionStatus())
        self._apply(status, event)

        self._logger.debug(
            "progress_event",
            session_id=session_id,
            event_name=event.name.value,
            stage=status.stage,
        )
        await self._notify_listeners(session_id, event)

    def register_listener(self, session_id: str, callback: Callable) -> None:
        """Register a ``callback(session_id, event)`` for a session."""
        listeners = self._listeners.setdefault(session_id, [])
        if callback not in listeners:
            listeners.append(callback)
            self._logger.debug(
                "listener_registered",
                session_id=session_id,
                total_listeners=len(listeners),
            )

    def unregister_listener(self, session_id: str, callback: Callable) -> None:
        listeners = self._listeners.get(session_id, [])
        if callback in listeners:
            listeners.remove(callback)
            self._logger.debug(
                "listener_unregistered",
                session_id=session_id,
                remaining_listeners=len(listeners),
            )
        if not listeners:
            self._listeners.pop(session_id, None)

    def get_status(self, session_id: str) -> dict | None:
        """Return the session snapshot, or ``None`` for an unknown session.

        Keys: ``stage``, ``message``, ``document_id``, ``current``,
        ``total``, ``chunk_ids``, ``error``, ``finished``.
        """
        self._prune_finished()
        status = self._statuses.get(session_id)
        if status is None:
            return None
        return {
            "stage": status.stage,
            "message": status.message,
            "document_id": status.document_id,
            "current": status.current,
            "total": status.total,
            "chunk_ids": list(status.chunk_ids),
            "error": status.error,
            "finished": status.finished,
        }

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _apply(status: _SessionStatus, event: ProgressEvent) -> None:
        data = event.data
        if event.name == EventName.DOCUMENT_CREATED:
            status.document_id = data.get("documentId")
        elif event.name == EventName.STATUS:
            status.stage = data.get("stage", status.stage)
            status.message = data.get("message", "")
        elif event.name == EventName.PROGRESS:
            status.current = data.get("current", status.current)
            status.total = data.get("total", status.total)
        elif event.name == EventName.BATCH_SAVED:
            status.chunk_ids.extend(data.get("chunkIds", []))
        elif event.name == EventName.ERROR:
            status.stage = "error"
            status.error = dict(data)
            status.message = data.get("message", "")
        if event.is_terminal and not status.finished:
            status.finished = True
            status.finished_at = time.monotonic()

    async def _notify_listeners(self, session_id: str, event: ProgressEvent) -> None:
        for callback in list(self._listeners.get(session_id, [])):
            try:
                result = callback(session_id, event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as exc:
                self._logger.warning(
                    "listener_callback_error",
                    session_id=session_id,
                    error=str(exc),
                    callback=getattr(callback, "__name__", repr(callback)),
                )

    def _prune_finished(self) -> None:
        cutoff = time.monotonic() - self._retention_seconds
        expired = [
            session_id
            for session_id, status in self._statuses.items()
            if status.finished_at is not None and status.finished_at <= cutoff
        ]
        for session_id in expired:
            del self._statuses[session_id]
        if expired:
            self._logger.debug("finished_sessions_pruned", count=len(expired))
