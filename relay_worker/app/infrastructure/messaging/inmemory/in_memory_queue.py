"""In-memory queue transport for local mode and tests.

Mirrors what the broker provides: items become visible again after their requeue
delay, and anything a batch left unresolved is put straight back.
"""
from __future__ import annotations

import asyncio
import time
from typing import Any, Callable

from loguru import logger

from relay_worker.app.core import SERVICE_NAME
from relay_worker.app.domain.models import DeadLetterRecord
from relay_worker.app.ports.message_consumer import BatchHandler


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class InMemoryQueuedItem:
    """Implements relay_worker.app.ports.queued_item.QueuedItem."""

    def __init__(self, queue: "InMemoryQueue", payload: Any, attempt_count: int = 0) -> None:
        self._queue = queue
        self._payload = payload
        self._attempt_count = attempt_count
        self.acked = False
        self.requeued_with: tuple[float, int] | None = None

    @property
    def payload(self) -> Any:
        return self._payload

    @property
    def attempt_count(self) -> int:
        return self._attempt_count

    @property
    def processed(self) -> bool:
        return self.acked or self.requeued_with is not None

    async def ack(self) -> None:
        self.acked = True

    async def requeue_with_delay(self, delay_seconds: float, *, attempt_count: int) -> None:
        self.requeued_with = (delay_seconds, attempt_count)
        self._queue.put(self._payload, attempt_count=attempt_count, delay_seconds=delay_seconds)


class InMemoryQueue:
    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: list[tuple[float, Any, int]] = []

    def put(self, payload: Any, *, attempt_count: int = 0, delay_seconds: float = 0.0) -> None:
        self._entries.append((self._clock() + delay_seconds, payload, attempt_count))

    def __len__(self) -> int:
        return len(self._entries)

    def take_ready(self, max_items: int) -> list[InMemoryQueuedItem]:
        """Remove and return up to max_items visible entries, oldest first."""
        now = self._clock()
        taken: list[InMemoryQueuedItem] = []
        remaining: list[tuple[float, Any, int]] = []
        for entry in self._entries:
            ready_at, payload, attempt_count = entry
            if ready_at <= now and len(taken) < max_items:
                taken.append(InMemoryQueuedItem(self, payload, attempt_count))
            else:
                remaining.append(entry)
        self._entries = remaining
        return taken


class InMemoryConsumer:
    """MessageConsumer over an InMemoryQueue. Polls for visible items and hands them over in batches."""

    def __init__(
        self,
        queue: InMemoryQueue | None = None,
        *,
        batch_max_size: int = 100,
        poll_interval_seconds: float = 0.1,
    ) -> None:
        self.queue = queue or InMemoryQueue()
        self._batch_max_size = batch_max_size
        self._poll_interval_seconds = poll_interval_seconds
        self._task: asyncio.Task[None] | None = None

    async def connect(self) -> None:
        return

    async def drain_once(self, handler: BatchHandler) -> int:
        batch = self.queue.take_ready(self._batch_max_size)
        if not batch:
            return 0
        try:
            await handler(batch)
        finally:
            for item in batch:
                if not item.processed:
                    self.queue.put(item.payload, attempt_count=item.attempt_count)
        return len(batch)

    async def _run(self, handler: BatchHandler) -> None:
        while True:
            try:
                handled = await self.drain_once(handler)
            except Exception as e:
                logger.exception("batch handling failed: {}", e)
                handled = 0
            if not handled:
                await asyncio.sleep(self._poll_interval_seconds)

    async def start_consuming(self, handler: BatchHandler) -> str:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run(handler))
        _log("inmemory_consumer_started")
        return "inmemory"

    async def cancel(self, consumer_tag: str) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None

    async def close(self) -> None:
        await self.cancel("inmemory")


class InMemoryDeadLetterSink:
    """DeadLetterSink that keeps records in a list. Not durable; local mode and tests only."""

    def __init__(self) -> None:
        self.records: list[DeadLetterRecord] = []

    async def send(self, record: DeadLetterRecord) -> None:
        self.records.append(record)

    async def close(self) -> None:
        return
