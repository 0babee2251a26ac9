"""
RabbitMQ consumer: connection lifecycle, queue declaration, batch collection and delayed requeue.

Lifecycle:
  DISCONNECTED -> CONNECTING (backoff) -> CONNECTED -> CHANNEL_OPEN ->
  QUEUE_DECLARED -> READY.
  On broker disconnect: READY -> RECONNECTING (backoff) -> CONNECTED -> ... -> READY
  (re-subscribes with the stored callback).
  On shutdown: READY/RECONNECTING -> CLOSING -> cancel consumer and batch loop,
  close channel/connection -> CLOSED.

Batching:
  Deliveries are buffered and handed to the batch handler once batch_max_size
  messages arrived or batch_max_wait_seconds passed since the first one. Keep
  prefetch_count >= batch_max_size or batches never fill. Any message the handler
  leaves unresolved is nacked with requeue.

Delayed requeue:
  A retried message is republished to "<queue>.retry.<ms>", a queue whose TTL
  dead-letters it back into the main queue. One queue per delay keeps expiry
  FIFO within each queue. Retry queues are quorum queues with at-least-once
  dead-lettering: if the bounded main queue rejects the expired copy, the copy
  stays in the retry queue and the broker retries the hop.
"""
from __future__ import annotations

import asyncio
from typing import Any

import aio_pika
from aio_pika import DeliveryMode, Message
from aio_pika.abc import AbstractIncomingMessage
from loguru import logger

from relay_worker.app.config.settings import Settings
from relay_worker.app.constants import ATTEMPT_COUNT_HEADER
from relay_worker.app.core import SERVICE_NAME
from relay_worker.app.core.backoff import exponential_backoff
from relay_worker.app.infrastructure.messaging.rabbitmq.aio_pika_item_adapter import AioPikaQueuedItem
from relay_worker.app.infrastructure.messaging.rabbitmq.constants import (
    PUBLISH_TIMEOUT_SECONDS,
    RETRY_QUEUE_SUFFIX,
    ConsumerState,
)
from relay_worker.app.ports.message_consumer import BatchHandler


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def build_amqp_url(settings: Settings) -> str:
    return (
        f"amqp://{settings.broker_user}:{settings.broker_password}"
        f"@{settings.broker_host}:{settings.broker_port}/"
    )


def retry_queue_name(queue_name: str, delay_ms: int) -> str:
    return f"{queue_name}.{RETRY_QUEUE_SUFFIX}.{delay_ms}"


def retry_queue_arguments(queue_name: str, delay_ms: int) -> dict[str, Any]:
    # at-least-once dead-lettering requires a quorum source queue with reject-publish.
    return {
        "x-queue-type": "quorum",
        "x-message-ttl": delay_ms,
        "x-overflow": "reject-publish",
        "x-dead-letter-exchange": "",
        "x-dead-letter-routing-key": queue_name,
        "x-dead-letter-strategy": "at-least-once",
    }


class RabbitMQConsumer:
    """MessageConsumer implementation"""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._state = ConsumerState.DISCONNECTED
        self._connection: aio_pika.RobustConnection | None = None
        self._channel: aio_pika.abc.AbstractChannel | None = None
        self._queue: aio_pika.abc.AbstractQueue | None = None
        self._lock = asyncio.Lock()
        self._reconnect_task: asyncio.Task[None] | None = None
        self._batch_task: asyncio.Task[None] | None = None
        self._closing = False
        self._loop: asyncio.AbstractEventLoop | None = None
        self._handler: BatchHandler | None = None
        self._consumer_tag: str | None = None
        self._buffer: asyncio.Queue[AbstractIncomingMessage] = asyncio.Queue()
        self._retry_queues: set[int] = set()

    @property
    def state(self) -> ConsumerState:
        return self._state

    def _set_state(self, state: ConsumerState) -> None:
        self._state = state

    def _register_close_callback(self, connection: aio_pika.RobustConnection) -> None:
        conn = getattr(connection, "connection", connection)
        if callable(getattr(conn, "add_close_callback", None)):
            conn.add_close_callback(self._on_connection_closed)

    def _on_connection_closed(self, *args: Any, **kwargs: Any) -> None:
        if self._closing:
            return
        self._set_state(ConsumerState.RECONNECTING)
        _log("broker_disconnect_detected")
        if (self._reconnect_task is None or self._reconnect_task.done()) and self._loop:
            def schedule() -> None:
                self._reconnect_task = asyncio.create_task(self._reconnect_loop())
            self._loop.call_soon_threadsafe(schedule)

    async def _open_channel_and_declare(self) -> None:
        if not self._connection:
            return
        self._set_state(ConsumerState.CHANNEL_OPEN)
        self._channel = await self._connection.channel(publisher_confirms=True)
        await self._channel.set_qos(prefetch_count=self._settings.prefetch_count)
        self._queue = await self._channel.declare_queue(
            self._settings.queue_name,
            durable=True,
            arguments={
                "x-max-length": self._settings.queue_max_length,
                "x-overflow": "reject-publish",
            },
        )
        self._retry_queues.clear()
        self._set_state(ConsumerState.QUEUE_DECLARED)
        self._set_state(ConsumerState.READY)

    async def _close_channel_and_connection(self) -> None:
        self._queue = None
        self._consumer_tag = None
        if self._channel:
            try:
                await self._channel.close()
            except Exception as e:
                logger.warning("channel close failed (continuing to close connection): {}", e)
            self._channel = None
        if self._connection:
            try:
                await self._connection.close()
            except Exception as e:
                logger.warning("connection close failed: {}", e)
            self._connection = None

    async def connect(self) -> None:
        self._set_state(ConsumerState.CONNECTING)
        _log("rmq_connecting")
        attempt = 0
        async for delay in exponential_backoff(
            self._settings.initial_backoff_seconds,
            self._settings.max_backoff_seconds,
            self._settings.backoff_multiplier,
            self._settings.max_connection_attempts,
        ):
            attempt += 1
            _log("rmq_connect_attempt", attempt=attempt, delay=delay)
            try:
                self._connection = await aio_pika.connect_robust(build_amqp_url(self._settings))
                self._loop = asyncio.get_running_loop()
                self._register_close_callback(self._connection)
                break
            except Exception as e:
                logger.warning("rmq connect failed: {}", e)
                if attempt >= self._settings.max_connection_attempts:
                    _log("rmq_connect_failed", attempt=attempt)
                    self._set_state(ConsumerState.DISCONNECTED)
                    raise
        self._set_state(ConsumerState.CONNECTED)
        _log("rmq_connected")
        await self._open_channel_and_declare()

    async def start_consuming(self, handler: BatchHandler) -> str:
        if self._queue is None:
            raise RuntimeError("consumer not connected")
        async with self._lock:
            if self._queue is None:
                raise RuntimeError("consumer not connected")
            self._handler = handler
            if self._batch_task is None or self._batch_task.done():
                self._batch_task = asyncio.create_task(self._batch_loop())
            self._consumer_tag = await self._queue.consume(self._on_message, no_ack=False)
            return self._consumer_tag

    async def cancel(self, consumer_tag: str) -> None:
        async with self._lock:
            if self._queue is not None and self._consumer_tag is not None:
                await self._queue.cancel(self._consumer_tag)
                self._consumer_tag = None

    async def _on_message(self, message: AbstractIncomingMessage) -> None:
        await self._buffer.put(message)

    async def _collect_batch(self) -> list[AbstractIncomingMessage]:
        batch = [await self._buffer.get()]
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._settings.batch_max_wait_seconds
        while len(batch) < self._settings.batch_max_size:
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            try:
                batch.append(await asyncio.wait_for(self._buffer.get(), timeout=remaining))
            except asyncio.TimeoutError:
                break
        return batch

    async def _batch_loop(self) -> None:
        while True:
            batch = await self._collect_batch()
            _log("batch_collected", batch_size=len(batch))
            items = [AioPikaQueuedItem(message, self._requeue_with_delay) for message in batch]
            try:
                if self._handler is not None:
                    await self._handler(items)
            except Exception as e:
                logger.exception("batch handling failed: {}", e)
            finally:
                await self._release_unresolved(batch)

    async def _release_unresolved(self, batch: list[AbstractIncomingMessage]) -> None:
        for message in batch:
            if message.processed:
                continue
            try:
                await message.nack(requeue=True)
            except Exception as e:
                logger.warning("nack of unresolved message failed: {}", e)

    async def _ensure_retry_queue(self, delay_ms: int) -> str:
        name = retry_queue_name(self._settings.queue_name, delay_ms)
        if delay_ms in self._retry_queues:
            return name
        if self._channel is None:
            raise RuntimeError("consumer not connected")
        await self._channel.declare_queue(
            name,
            durable=True,
            arguments=retry_queue_arguments(self._settings.queue_name, delay_ms),
        )
        self._retry_queues.add(delay_ms)
        return name

    async def _requeue_with_delay(
        self,
        message: AbstractIncomingMessage,
        delay_seconds: float,
        attempt_count: int,
    ) -> None:
        if self._channel is None:
            raise RuntimeError("consumer not connected")
        delay_ms = max(0, int(round(delay_seconds * 1000)))
        routing_key = await self._ensure_retry_queue(delay_ms)
        headers = dict(message.headers or {})
        headers[ATTEMPT_COUNT_HEADER] = int(attempt_count)
        await self._channel.default_exchange.publish(
            Message(
                message.body,
                headers=headers,
                content_type=message.content_type,
                delivery_mode=DeliveryMode.PERSISTENT,
            ),
            routing_key=routing_key,
            timeout=PUBLISH_TIMEOUT_SECONDS,
        )
        _log("message_requeued", routing_key=routing_key, attempt_count=attempt_count)

    async def _reconnect_loop(self) -> None:
        self._set_state(ConsumerState.RECONNECTING)
        attempt = 0
        async for delay in exponential_backoff(
            self._settings.initial_backoff_seconds,
            self._settings.max_backoff_seconds,
            self._settings.backoff_multiplier,
            self._settings.max_connection_attempts,
        ):
            if self._closing:
                return
            attempt += 1
            _log("rmq_reconnect_attempt", attempt=attempt, delay=delay)
            try:
                self._connection = await aio_pika.connect_robust(build_amqp_url(self._settings))
                if self._loop is None:
                    self._loop = asyncio.get_running_loop()
                self._register_close_callback(self._connection)
                self._set_state(ConsumerState.CONNECTED)
                await self._open_channel_and_declare()
                async with self._lock:
                    if self._closing:
                        return
                    if self._handler is not None and self._queue is not None:
                        self._consumer_tag = await self._queue.consume(self._on_message, no_ack=False)
                _log("rmq_reconnected")
                return
            except Exception as e:
                logger.warning("reconnect failed: {}", e)
        _log("rmq_reconnect_exhausted", max_attempts=self._settings.max_connection_attempts)
        self._set_state(ConsumerState.DISCONNECTED)

    async def close(self) -> None:
        self._closing = True
        self._set_state(ConsumerState.CLOSING)
        _log("consumer_shutdown")
        for task in (self._reconnect_task, self._batch_task):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        async with self._lock:
            await self._close_channel_and_connection()
        self._set_state(ConsumerState.CLOSED)
