"""
RabbitMQ publisher: connection lifecycle and publish with confirm into the inbound subscriber queue.

Lifecycle:
  DISCONNECTED -> CONNECTING (backoff) -> CONNECTED -> CHANNEL_OPEN ->
  CONFIRM_ENABLED -> QUEUE_DECLARED -> READY.
  On broker disconnect or publish error: READY -> RECONNECTING (backoff) -> ... -> READY.
  On shutdown: CLOSING -> close channel/connection -> CLOSED.

The queue is declared with the same arguments as the worker's declaration;
RabbitMQ refuses a redeclare with different arguments.
"""
from __future__ import annotations

import asyncio
import json
import time
from typing import Any

import aio_pika
from aio_pika import DeliveryMode, Message
from loguru import logger

from relay_api.app.config.settings import Settings
from relay_api.app.constants import ATTEMPT_COUNT_HEADER
from relay_api.app.core import SERVICE_NAME
from relay_api.app.core.backoff import exponential_backoff
from relay_api.app.infrastructure.messaging.rabbitmq.constants import PublisherState


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def build_message(message: dict[str, Any]) -> Message:
    """Persistent JSON message keyed by request_id with a zero attempt count."""
    return Message(
        json.dumps(message).encode(),
        content_type="application/json",
        delivery_mode=DeliveryMode.PERSISTENT,
        message_id=message.get("request_id") or None,
        headers={ATTEMPT_COUNT_HEADER: 0},
    )


class RabbitMQPublisher:
    """MessagePublisher implementation"""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._state = PublisherState.DISCONNECTED
        self._connection: aio_pika.RobustConnection | None = None
        self._channel: aio_pika.abc.AbstractChannel | None = None
        self._lock = asyncio.Lock()
        self._reconnect_task: asyncio.Task[None] | None = None
        self._closing = False

    @property
    def state(self) -> PublisherState:
        return self._state

    @property
    def ready(self) -> bool:
        return self._state == PublisherState.READY

    def _set_state(self, state: PublisherState) -> None:
        self._state = state

    def _amqp_url(self) -> str:
        return (
            f"amqp://{self._settings.broker_user}:{self._settings.broker_password}"
            f"@{self._settings.broker_host}:{self._settings.broker_port}/"
        )

    async def _connect_once(self) -> None:
        self._connection = await aio_pika.connect_robust(self._amqp_url())
        self._set_state(PublisherState.CONNECTED)
        self._set_state(PublisherState.CHANNEL_OPEN)
        self._channel = await self._connection.channel(publisher_confirms=True)
        self._set_state(PublisherState.CONFIRM_ENABLED)
        await self._channel.declare_queue(
            self._settings.queue_name,
            durable=True,
            arguments={
                "x-max-length": self._settings.queue_max_length,
                "x-overflow": "reject-publish",
            },
        )
        self._set_state(PublisherState.QUEUE_DECLARED)
        self._set_state(PublisherState.READY)

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
            _log("rmq_connect_attempt", attempt=attempt, delay=delay)
            try:
                await self._connect_once()
                _log("rmq_connected")
                return
            except Exception as e:
                logger.warning("rmq connect failed: {}", e)
                await self._close_channel_and_connection()
                if attempt >= self._settings.max_connection_attempts:
                    _log("rmq_connect_failed", attempt=attempt)
                    self._set_state(PublisherState.DISCONNECTED)
                    raise

    async def _close_channel_and_connection(self) -> None:
        if self._channel:
            try:
                await self._channel.close()
            except Exception as e:
                logger.warning("channel close failed: {}", e)
            self._channel = None
        if self._connection:
            try:
                await self._connection.close()
            except Exception as e:
                logger.warning("connection close failed: {}", e)
            self._connection = None

    async def publish(self, message: dict[str, Any]) -> None:
        if self._state != PublisherState.READY:
            _log("publish_rejected", reason="publisher_not_ready")
            raise RuntimeError("publisher_not_ready")
        start = time.perf_counter()
        async with self._lock:
            if not self._channel:
                _log("publish_failed", reason="connection_lost")
                raise RuntimeError("connection_lost")
            try:
                await self._channel.default_exchange.publish(
                    build_message(message),
                    routing_key=self._settings.queue_name,
                    timeout=self._settings.publish_timeout_seconds,
                )
            except aio_pika.exceptions.DeliveryError as e:
                _log("publish_failed", reason="queue_rejected")
                raise RuntimeError("queue_rejected") from e
            except Exception:
                _log("publish_failed", reason="connection_lost")
                self._set_state(PublisherState.RECONNECTING)
                if self._reconnect_task is None or self._reconnect_task.done():
                    self._reconnect_task = asyncio.create_task(self._reconnect_loop())
                raise
        latency_ms = (time.perf_counter() - start) * 1000
        _log("publish_success", request_id=message.get("request_id", ""), latency_ms=round(latency_ms, 2))

    async def _reconnect_loop(self) -> None:
        async with self._lock:
            await self._close_channel_and_connection()
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
                async with self._lock:
                    await self._connect_once()
                _log("rmq_reconnected")
                return
            except Exception as e:
                logger.warning("reconnect failed: {}", e)
                async with self._lock:
                    await self._close_channel_and_connection()
        self._set_state(PublisherState.DISCONNECTED)

    async def close(self) -> None:
        self._closing = True
        self._set_state(PublisherState.CLOSING)
        _log("publisher_shutdown")
        if self._reconnect_task and not self._reconnect_task.done():
            self._reconnect_task.cancel()
            try:
                await self._reconnect_task
            except asyncio.CancelledError:
                pass
        async with self._lock:
            await self._close_channel_and_connection()
        self._set_state(PublisherState.CLOSED)
