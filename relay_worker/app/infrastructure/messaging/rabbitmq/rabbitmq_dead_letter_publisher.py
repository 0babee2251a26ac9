"""
RabbitMQ dead-letter publisher: DeadLetterSink that publishes records to a durable queue.

Lifecycle:
  DISCONNECTED -> CONNECTING (backoff) -> CONNECTED -> CONFIRM_ENABLED ->
  QUEUE_DECLARED -> READY. On close(): CLOSING -> close channel/connection -> CLOSED.

send() returns only after the broker confirmed the publish, so the caller may ack
the original message afterwards.
"""
from __future__ import annotations

import asyncio
import json
from typing import Any

import aio_pika
from aio_pika import DeliveryMode, Message
from loguru import logger

from relay_worker.app.config.settings import Settings
from relay_worker.app.core import SERVICE_NAME
from relay_worker.app.core.backoff import exponential_backoff
from relay_worker.app.domain.models import DeadLetterRecord
from relay_worker.app.infrastructure.messaging.rabbitmq.constants import (
    PUBLISH_TIMEOUT_SECONDS,
    PublisherState,
)
from relay_worker.app.infrastructure.messaging.rabbitmq.rabbitmq_consumer import build_amqp_url


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def serialize_dead_letter(record: DeadLetterRecord) -> bytes:
    payload = record.to_dict()
    payload["failed_at"] = record.failed_at.isoformat()
    return json.dumps(payload).encode()


class RabbitMQDeadLetterPublisher:
    """DeadLetterSink implementation"""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._queue_name = settings.resolved_dead_letter_queue_name
        self._state = PublisherState.DISCONNECTED
        self._connection: aio_pika.RobustConnection | None = None
        self._channel: aio_pika.abc.AbstractChannel | None = None
        self._lock = asyncio.Lock()

    @property
    def ready(self) -> bool:
        return self._state == PublisherState.READY

    def _set_state(self, state: PublisherState) -> None:
        self._state = state

    async def connect(self) -> None:
        self._set_state(PublisherState.CONNECTING)
        attempt = 0
        async for delay in exponential_backoff(
            self._settings.initial_backoff_seconds,
            self._settings.max_backoff_seconds,
            self._settings.backoff_multiplier,
            self._settings.max_connection_attempts,
        ):
            attempt += 1
            _log("dlq_connect_attempt", attempt=attempt, delay=delay)
            try:
                self._connection = await aio_pika.connect_robust(build_amqp_url(self._settings))
                break
            except Exception as e:
                logger.warning("dlq connect failed: {}", e)
                if attempt >= self._settings.max_connection_attempts:
                    _log("dlq_connect_failed", attempt=attempt)
                    self._set_state(PublisherState.DISCONNECTED)
                    raise
        self._set_state(PublisherState.CONNECTED)
        self._channel = await self._connection.channel(publisher_confirms=True)
        self._set_state(PublisherState.CONFIRM_ENABLED)
        await self._channel.declare_queue(self._queue_name, durable=True)
        self._set_state(PublisherState.QUEUE_DECLARED)
        self._set_state(PublisherState.READY)
        _log("dlq_ready", queue_name=self._queue_name)

    async def send(self, record: DeadLetterRecord) -> None:
        if self._state != PublisherState.READY:
            raise RuntimeError("dead_letter_publisher_not_ready")
        async with self._lock:
            if self._channel is None:
                raise RuntimeError("connection_lost")
            await self._channel.default_exchange.publish(
                Message(
                    serialize_dead_letter(record),
                    content_type="application/json",
                    delivery_mode=DeliveryMode.PERSISTENT,
                ),
                routing_key=self._queue_name,
                timeout=PUBLISH_TIMEOUT_SECONDS,
            )
        _log("dead_letter_published", queue_name=self._queue_name, attempts=record.attempts)

    async def close(self) -> None:
        self._set_state(PublisherState.CLOSING)
        async with self._lock:
            if self._channel is not None:
                try:
                    await self._channel.close()
                except Exception as e:
                    logger.warning("dlq channel close failed: {}", e)
                self._channel = None
            if self._connection is not None:
                try:
                    await self._connection.close()
                except Exception as e:
                    logger.warning("dlq connection close failed: {}", e)
                self._connection = None
        self._set_state(PublisherState.CLOSED)
