"""Port: one message of an inbound batch. Implementations live in infrastructure."""
from __future__ import annotations

from typing import Any, Protocol


class QueuedItem(Protocol):
    """Transport-agnostic queued message.

    attempt_count is the number of delivery attempts already made, read from
    transport metadata. The payload itself is never rewritten to carry it.
    """

    @property
    def payload(self) -> Any: ...

    @property
    def attempt_count(self) -> int: ...

    async def ack(self) -> None: ...

    async def requeue_with_delay(self, delay_seconds: float, *, attempt_count: int) -> None:
        """Return the message for redelivery after delay_seconds, carrying attempt_count."""
        ...
