"""Port: publishing subscriber records to the worker's inbound queue."""
from __future__ import annotations

from typing import Any, Protocol


class MessagePublisher(Protocol):
    """Publishes JSON objects to the inbound queue.

    publish() raises RuntimeError("queue_rejected") when the bounded queue is
    full and RuntimeError for any other failure; routers map both to 503.
    """

    @property
    def ready(self) -> bool: ...

    async def connect(self) -> None: ...

    async def publish(self, message: dict[str, Any]) -> None: ...

    async def close(self) -> None: ...
