"""Progress event stream for pipeline runs.

The orchestrator publishes ProgressEvents here; subscribers observe. A
subscriber that raises is logged and skipped. Async subscribers run as
background tasks so a slow one never delays a stage.
"""

import asyncio
import inspect
from typing import Awaitable, Callable, Union

import structlog

from proof_pipeline.data_management.schemas.proof_schema import ProgressEvent

ProgressCallback = Callable[[ProgressEvent], Union[None, Awaitable[None]]]


class ProgressEmitter:
    def __init__(self) -> None:
        self._subscribers: list[ProgressCallback] = []
        self._tasks: set[asyncio.Task] = set()
        self._logger = structlog.get_logger().bind(component="ProgressEmitter")

    def subscribe(self, callback: ProgressCallback) -> Callable[[], None]:
        """Register a callback. Returns a function that unsubscribes it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def emit(self, event: ProgressEvent) -> None:
        for callback in list(self._subscribers):
            try:
                result = callback(event)
                if inspect.isawaitable(result):
                    task = asyncio.ensure_future(result)
                    self._tasks.add(task)
                    task.add_done_callback(self._on_task_done)
            except Exception:
                self._logger.exception(
                    "progress_subscriber_failed",
                    submission_id=event.submission_id,
                    stage=event.stage.value,
                )

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._logger.error(
                "progress_subscriber_failed",
                error=str(exc),
                error_type=type(exc).__name__,
            )

    async def wait_idle(self) -> None:
        """Wait for in-flight async subscribers to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
