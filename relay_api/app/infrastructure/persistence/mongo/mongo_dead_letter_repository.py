"""MongoDB implementation of DeadLetterRepository."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import DESCENDING

from relay_api.app.constants import DeadLetterStatus
from relay_api.app.infrastructure.persistence.mongo.mongo_connection import MongoConnection


def _object_id(record_id: str) -> ObjectId | None:
    try:
        return ObjectId(record_id)
    except (InvalidId, TypeError):
        return None


class MongoDeadLetterRepository:
    def __init__(self, database: MongoConnection) -> None:
        self._database = database

    async def list_records(self, *, status: str | None, limit: int) -> list[dict[str, Any]]:
        query: dict[str, Any] = {"status": status} if status else {}
        cursor = self._database.dead_letter_collection.find(query).sort("failed_at", DESCENDING).limit(limit)
        return await cursor.to_list(length=limit)

    async def get_by_id(self, record_id: str) -> dict[str, Any] | None:
        oid = _object_id(record_id)
        if oid is None:
            return None
        return await self._database.dead_letter_collection.find_one({"_id": oid})

    async def mark_replayed(self, record_id: str) -> bool:
        oid = _object_id(record_id)
        if oid is None:
            return False
        result = await self._database.dead_letter_collection.update_one(
            {"_id": oid, "status": DeadLetterStatus.PENDING_REVIEW},
            {
                "$set": {
                    "status": DeadLetterStatus.REPLAYED,
                    "replayed_at": datetime.now(timezone.utc),
                }
            },
        )
        return result.modified_count == 1
