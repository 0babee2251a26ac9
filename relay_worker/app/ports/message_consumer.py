"""Port: batch message consumer for the inbound queue. Implementations live in infrastructure."""
from __future__ import annotations

from typing import Awaitable, Callable, Protocol, Sequence

from relay_worker.app.ports.queued_item import QueuedItem

BatchHandler = Callable[[Sequence[QueuedItem]], Awaitable[None]]


class MessageConsumer(Protocol):
    async def connect(self) -> None: ...

    async def start_consuming(self, handler: BatchHandler) -> str:
        """Start consuming; call handler for each batch. Returns consumer tag for cancellation."""
        ...

    async def cancel(self, consumer_tag: str) -> None: ...

    async def close(self) -> None: ...
