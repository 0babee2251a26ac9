"""Adapter: wrap aio_pika.IncomingMessage to implement ports.QueuedItem."""
from __future__ import annotations

import json
from typing import Any, Awaitable, Callable

from aio_pika.abc import AbstractIncomingMessage

from relay_worker.app.constants import ATTEMPT_COUNT_HEADER
from relay_worker.app.domain.member import InvalidPayloadError

DelayedRequeue = Callable[[AbstractIncomingMessage, float, int], Awaitable[None]]


def attempt_count_from_headers(headers: dict[str, Any] | None) -> int:
    raw = (headers or {}).get(ATTEMPT_COUNT_HEADER, 0)
    try:
        return max(0, int(raw))
    except (TypeError, ValueError):
        return 0


class AioPikaQueuedItem:
    """Implements relay_worker.app.ports.queued_item.QueuedItem for aio_pika.

    The attempt count travels in the x-attempt-count header; the body is passed
    through untouched on requeue.
    """

    def __init__(self, message: AbstractIncomingMessage, requeue: DelayedRequeue) -> None:
        self._message = message
        self._requeue = requeue
        self._payload: Any = None
        self._decoded = False

    @property
    def message(self) -> AbstractIncomingMessage:
        return self._message

    @property
    def payload(self) -> Any:
        if not self._decoded:
            try:
                self._payload = json.loads(self._message.body.decode())
            except (UnicodeDecodeError, json.JSONDecodeError) as exc:
                raise InvalidPayloadError(f"message body is not valid JSON: {exc}") from exc
            self._decoded = True
        return self._payload

    @property
    def attempt_count(self) -> int:
        return attempt_count_from_headers(self._message.headers)

    async def ack(self) -> None:
        await self._message.ack()

    async def requeue_with_delay(self, delay_seconds: float, *, attempt_count: int) -> None:
        # Copy is confirmed by the broker before the original is acked.
        await self._requeue(self._message, delay_seconds, attempt_count)
        await self._message.ack()
