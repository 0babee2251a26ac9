"""Port: database connection used by readiness checks and the dead-letter repository."""
from __future__ import annotations

from typing import Protocol


class DatabaseConnection(Protocol):
    @property
    def ready(self) -> bool: ...

    async def connect(self) -> None: ...

    async def ping(self) -> bool:
        """True when the database answers; never raises."""
        ...

    async def close(self) -> None: ...
