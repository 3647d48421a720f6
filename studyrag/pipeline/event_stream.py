"""Server-sent-event framing for ingestion progress.

:class:`EventStream` runs one ingestion coroutine in a background task,
listens to its session on the :class:`ProgressTracker`, and yields each
event as an SSE frame::

    event: batch_saved
    data: {"chunkIds": ["..."], "batchIndex": 0}

The stream ends after a terminal event (``error``, or a ``status`` with
stage ``complete``/``cancelled``) or when the task finishes, whichever
comes first.  If the consumer goes away before that, the run's
cancellation token is cancelled; the task keeps running until it has
flushed its pending batch.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

import structlog

from studyrag.models.events import ProgressEvent
from studyrag.pipeline.cancellation import CancellationToken
from studyrag.pipeline.progress_tracker import ProgressTracker

logger = structlog.get_logger(logger_name=__name__)

# Strong references to runs whose stream was abandoned.
_background_runs: set[asyncio.Task] = set()


def format_sse(event: ProgressEvent) -> str:
    """Serialize *event* as one SSE frame (name line, data line, blank line)."""
    payload = json.dumps(event.data, default=str, ensure_ascii=False)
    return f"event: {event.name.value}\ndata: {payload}\n\n"


class EventStream:
    """Bridges one ingestion run to an async iterator of SSE frames."""

    def __init__(
        self,
        tracker: ProgressTracker,
        session_id: str,
        token: CancellationToken,
    ) -> None:
        self._tracker = tracker
        self._session_id = session_id
        self._token = token

    async def stream(self, run: Callable[[], Awaitable[Any]]) -> AsyncIterator[str]:
        """Start *run* and yield its progress events as SSE frames."""
        queue: asyncio.Queue[ProgressEvent | None] = asyncio.Queue()

        async def _enqueue(_session_id: str, event: ProgressEvent) -> None:
            await queue.put(event)

        self._tracker.register_listener(self._session_id, _enqueue)
        task = asyncio.create_task(run())
        _background_runs.add(task)
        task.add_done_callback(self._on_run_done)
        task.add_done_callback(lambda _t: queue.put_nowait(None))

        finished = False
        try:
            while True:
                event = await queue.get()
                if event is None:
                    finished = True
                    break
                yield format_sse(event)
                if event.is_terminal:
                    finished = True
                    break
        finally:
            self._tracker.unregister_listener(self._session_id, _enqueue)
            if not finished and not task.done():
                logger.info("event_stream_abandoned", session_id=self._session_id)
                self._token.cancel("client_disconnected")

    def _on_run_done(self, task: asyncio.Task) -> None:
        _background_runs.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("ingestion_task_crashed", session_id=self._session_id, error=str(exc))
