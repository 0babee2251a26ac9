"""In-memory publisher for tests and local mode. Messages are collected, never consumed."""
from __future__ import annotations

from typing import Any


class InMemoryPublisher:
    """MessagePublisher that keeps messages in a list.

    With max_length set it refuses publishes once full, the way the bounded
    broker queue does with reject-publish.
    """

    def __init__(self, max_length: int | None = None) -> None:
        self.messages: list[dict[str, Any]] = []
        self._max_length = max_length

    async def connect(self) -> None:
        return

    @property
    def ready(self) -> bool:
        return True

    async def publish(self, message: dict[str, Any]) -> None:
        if self._max_length is not None and len(self.messages) >= self._max_length:
            raise RuntimeError("queue_rejected")
        self.messages.append(dict(message))

    async def close(self) -> None:
        return
