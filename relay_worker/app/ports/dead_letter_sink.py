"""Port: durable destination for dead-letter records."""
from __future__ import annotations

from typing import Protocol

from relay_worker.app.domain.models import DeadLetterRecord


class DeadLetterSink(Protocol):
    async def send(self, record: DeadLetterRecord) -> None:
        """Durably store or forward the record. Must complete before the item is acked."""
        ...

    async def close(self) -> None:
        """Release resources. No-op allowed if nothing to close."""
        ...
