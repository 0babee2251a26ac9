"""Dead-letter sink factory: selects and assembles the sink adapter."""
from __future__ import annotations

from relay_worker.app.config.settings import Settings
from relay_worker.app.infrastructure.messaging.inmemory.in_memory_queue import InMemoryDeadLetterSink
from relay_worker.app.infrastructure.messaging.rabbitmq.rabbitmq_dead_letter_publisher import (
    RabbitMQDeadLetterPublisher,
)
from relay_worker.app.infrastructure.persistence.mongo.mongo_dead_letter_store import MongoDeadLetterStore
from relay_worker.app.ports.dead_letter_sink import DeadLetterSink


async def create_dead_letter_sink(settings: Settings) -> DeadLetterSink:
    """Select sink adapter from configuration, connect it and return port type."""
    backend = settings.dead_letter_backend.strip().lower()

    if backend == "mongo":
        store = await MongoDeadLetterStore.connect(settings)
        await store.ensure_indexes()
        return store

    if backend == "rabbitmq":
        publisher = RabbitMQDeadLetterPublisher(settings)
        await publisher.connect()
        return publisher

    if backend == "inmemory":
        return InMemoryDeadLetterSink()

    raise ValueError(f"Unsupported dead-letter backend: {backend}")
