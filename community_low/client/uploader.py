"""Client-side batching of report-worthy observations.

The uploader is owned by one asyncio event loop: ``enqueue`` and ``flush``
run on the loop thread, so queue and timer changes never interleave. Its
state moves ``IDLE -> ARMED -> FLUSHING -> IDLE``; a flush drains up to
``max_batch`` items synchronously and sends them in a background task.
Delivery is at-most-once: a failed batch is logged and dropped.
"""

import asyncio
import enum
import logging
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Set

from community_low import metrics
from community_low.client.config import ClientConfig

logger = logging.getLogger(__name__)

SendBatch = Callable[[List[Dict[str, Any]]], Awaitable[Any]]


class UploaderState(enum.Enum):
    IDLE = "idle"
    ARMED = "armed"
    FLUSHING = "flushing"


class BatchedReportUploader:
    """Debounced, size-bounded report queue."""

    def __init__(self, config: ClientConfig, send_batch: SendBatch):
        self.config = config
        self.max_batch = max(1, config.max_batch)
        self._send_batch = send_batch
        self._queue: Deque[Dict[str, Any]] = deque()
        self._timer: Optional[asyncio.TimerHandle] = None
        self._in_flight: Set[asyncio.Task] = set()
        self.state = UploaderState.IDLE

    @property
    def pending(self) -> int:
        return len(self._queue)

    def enqueue(self, report: Dict[str, Any]) -> None:
        """
        Queue a report. Never blocks on delivery.

        Flushes immediately once ``max_batch`` items are queued, otherwise
        arms the debounce timer if it is not already armed.
        """
        if not self.config.reporting_enabled:
            logger.debug("Community reporting disabled, dropping report")
            metrics.report_batches_total.labels(status="dropped").inc()
            return

        self._queue.append(report)
        if len(self._queue) >= self.max_batch:
            self.flush()
            return
        if self._timer is None:
            self._arm()

    def flush(self) -> Optional[asyncio.Task]:
        """
        Drain up to ``max_batch`` items and send them as one batch.

        Returns:
            The send task, or None if there was nothing to send
        """
        self._cancel_timer()
        if not self._queue:
            self._settle()
            return None

        count = min(len(self._queue), self.max_batch)
        batch = [self._queue.popleft() for _ in range(count)]

        task = asyncio.get_running_loop().create_task(self._send(batch))
        self._in_flight.add(task)
        task.add_done_callback(self._on_sent)
        self.state = UploaderState.FLUSHING

        # Leftovers must not wait for the next enqueue.
        if self._queue:
            self._arm()
        return task

    async def aclose(self) -> None:
        """Flush everything still queued and wait for in-flight sends."""
        while self._queue:
            self.flush()
        self._cancel_timer()
        if self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)
        self.state = UploaderState.IDLE

    async def _send(self, batch: List[Dict[str, Any]]) -> None:
        try:
            await self._send_batch(batch)
        except Exception as e:
            logger.warning(f"Dropping batch of {len(batch)} report(s): {e}")
            metrics.report_batches_total.labels(status="failed").inc()
            return
        metrics.report_batches_total.labels(status="sent").inc()

    def _arm(self) -> None:
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.config.flush_interval_seconds, self._on_timer)
        if self.state is not UploaderState.FLUSHING:
            self.state = UploaderState.ARMED

    def _on_timer(self) -> None:
        self._timer = None
        self.flush()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_sent(self, task: asyncio.Task) -> None:
        self._in_flight.discard(task)
        self._settle()

    def _settle(self) -> None:
        if self._in_flight:
            self.state = UploaderState.FLUSHING
        elif self._timer is not None:
            self.state = UploaderState.ARMED
        else:
            self.state = UploaderState.IDLE
