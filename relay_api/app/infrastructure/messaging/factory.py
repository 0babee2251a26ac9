"""Publisher factory: selects implementation from config."""
from __future__ import annotations

from relay_api.app.config.settings import Settings
from relay_api.app.infrastructure.messaging.inmemory.in_memory_publisher import InMemoryPublisher
from relay_api.app.infrastructure.messaging.rabbitmq.rabbitmq_publisher import RabbitMQPublisher
from relay_api.app.ports.message_publisher import MessagePublisher


def create_publisher(settings: Settings) -> MessagePublisher:
    backend = settings.publisher_backend.strip().lower()

    if backend == "rabbitmq":
        return RabbitMQPublisher(settings)

    if backend == "inmemory":
        return InMemoryPublisher(max_length=settings.queue_max_length)

    raise ValueError(f"Unsupported publisher backend: {backend}")
