"""Port: read and replay-marking access to stored dead-letter records."""
from __future__ import annotations

from typing import Any, Protocol


class DeadLetterRepository(Protocol):
    async def list_records(self, *, status: str | None, limit: int) -> list[dict[str, Any]]:
        """Most recent first."""
        ...

    async def get_by_id(self, record_id: str) -> dict[str, Any] | None: ...

    async def mark_replayed(self, record_id: str) -> bool:
        """Flip a PENDING_REVIEW record to REPLAYED. False if it was not pending."""
        ...
