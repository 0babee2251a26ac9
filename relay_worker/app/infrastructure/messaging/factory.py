"""Message consumer factory: selects implementation from config. Only place that imports concrete consumers."""
from __future__ import annotations

from relay_worker.app.config.settings import Settings
from relay_worker.app.infrastructure.messaging.inmemory.in_memory_queue import InMemoryConsumer
from relay_worker.app.infrastructure.messaging.rabbitmq.rabbitmq_consumer import RabbitMQConsumer
from relay_worker.app.ports.message_consumer import MessageConsumer


def create_message_consumer(settings: Settings) -> MessageConsumer:
    backend = settings.consumer_backend.strip().lower()

    if backend == "rabbitmq":
        return RabbitMQConsumer(settings)

    if backend == "inmemory":
        return InMemoryConsumer(batch_max_size=settings.batch_max_size)

    raise ValueError(f"Unsupported consumer backend: {backend}")
