"""Worker composition root: build and lifecycle-manage concrete dependencies.

Composition may: import concrete classes, call factories, store interface types,
manage high-level lifecycle.
"""
from __future__ import annotations

from loguru import logger

from relay_worker.app.application.delivery_controller import DeliveryController
from relay_worker.app.application.group_dispatcher import GroupDispatcher
from relay_worker.app.config.settings import Settings
from relay_worker.app.domain.models import DeliveryPolicy
from relay_worker.app.infrastructure.http.factory import create_upstream_client
from relay_worker.app.infrastructure.messaging.factory import create_message_consumer
from relay_worker.app.infrastructure.persistence.factory import create_dead_letter_sink
from relay_worker.app.ports.dead_letter_sink import DeadLetterSink
from relay_worker.app.ports.message_consumer import MessageConsumer
from relay_worker.app.ports.upstream_client import UpstreamClient


def delivery_policy_from_settings(settings: Settings) -> DeliveryPolicy:
    return DeliveryPolicy(
        group_size=settings.group_size,
        inter_group_pause_seconds=settings.inter_group_pause_ms / 1000.0,
        max_attempts=settings.max_attempts_before_dead_letter,
        backoff_base_seconds=settings.retry_backoff_base_seconds,
        backoff_max_seconds=settings.retry_backoff_max_seconds,
    )


class WorkerDependencies:
    """Holds wired worker dependencies and their lifecycle."""

    def __init__(self, *, settings: Settings) -> None:
        self._settings = settings
        self._dead_letter_sink: DeadLetterSink | None = None
        self._message_consumer: MessageConsumer | None = None
        self._upstream_client: UpstreamClient | None = None
        self._dispatcher: GroupDispatcher | None = None

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def message_consumer(self) -> MessageConsumer:
        if self._message_consumer is None:
            raise RuntimeError("message_consumer is not initialized")
        return self._message_consumer

    @property
    def dispatcher(self) -> GroupDispatcher:
        if self._dispatcher is None:
            raise RuntimeError("dispatcher is not initialized")
        return self._dispatcher

    async def connect(self) -> None:
        policy = delivery_policy_from_settings(self._settings)

        # Fail at startup rather than on the first batch.
        self._upstream_client = create_upstream_client(self._settings)
        self._upstream_client.verify_configuration()

        self._dead_letter_sink = await create_dead_letter_sink(self._settings)

        self._message_consumer = create_message_consumer(self._settings)
        await self._message_consumer.connect()

        controller = DeliveryController(self._upstream_client, self._dead_letter_sink, policy)
        self._dispatcher = GroupDispatcher(controller)

    async def close(self) -> None:
        if self._message_consumer is not None:
            try:
                await self._message_consumer.close()
            except Exception as exc:
                logger.warning("message consumer close failed: {}", exc)
            self._message_consumer = None

        if self._upstream_client is not None:
            try:
                await self._upstream_client.close()
            except Exception as exc:
                logger.warning("upstream client close failed: {}", exc)
            self._upstream_client = None

        if self._dead_letter_sink is not None:
            try:
                await self._dead_letter_sink.close()
            except Exception as exc:
                logger.warning("dead-letter sink close failed: {}", exc)

        self._dead_letter_sink = None
        self._dispatcher = None


def create_worker_dependencies(settings: Settings | None = None) -> WorkerDependencies:
    return WorkerDependencies(settings=settings or Settings())
