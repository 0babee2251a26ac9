from datetime import datetime
from typing import Any

from pydantic import BaseModel


class DeadLetterResponse(BaseModel):
    id: str
    status: str
    original: dict[str, Any]
    error: str
    failed_at: datetime | None = None
    attempts: int
    replayed_at: datetime | None = None

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "DeadLetterResponse":
        return cls(
            id=str(record.get("_id", "")),
            status=str(record.get("status", "")),
            original=dict(record.get("original") or {}),
            error=str(record.get("error", "")),
            failed_at=record.get("failed_at"),
            attempts=int(record.get("attempts", 0)),
            replayed_at=record.get("replayed_at"),
        )


class DeadLetterListResponse(BaseModel):
    items: list[DeadLetterResponse]
    count: int
