"""Mongo dead-letter adapters against an in-process collection fake."""
from __future__ import annotations

import asyncio
from types import SimpleNamespace
from typing import Any

from bson import ObjectId

from relay_api.app.infrastructure.persistence.mongo.mongo_dead_letter_repository import (
    MongoDeadLetterRepository,
)
from relay_worker.app.domain.models import DeadLetterRecord
from relay_worker.app.infrastructure.persistence.mongo.mongo_dead_letter_store import MongoDeadLetterStore
from tests.conftest import FIXED_NOW, subscriber


class _Cursor:
    def __init__(self, collection: "_Collection", query: dict[str, Any]) -> None:
        self._collection = collection
        self._query = query
        self.sort_spec: tuple[str, int] | None = None
        self.limit_value: int | None = None

    def sort(self, key: str, direction: int) -> "_Cursor":
        self.sort_spec = (key, direction)
        return self

    def limit(self, n: int) -> "_Cursor":
        self.limit_value = n
        return self

    async def to_list(self, length: int) -> list[dict[str, Any]]:
        self._collection.cursors.append(self)
        return [d for d in self._collection.docs if _matches(d, self._query)][:length]


def _matches(doc: dict[str, Any], query: dict[str, Any]) -> bool:
    return all(doc.get(k) == v for k, v in query.items())


class _Collection:
    def __init__(self) -> None:
        self.docs: list[dict[str, Any]] = []
        self.indexes: list[str] = []
        self.cursors: list[_Cursor] = []

    async def create_index(self, key: str, name: str) -> str:
        self.indexes.append(key)
        return name

    async def insert_one(self, doc: dict[str, Any]) -> None:
        self.docs.append({"_id": ObjectId(), **doc})

    def find(self, query: dict[str, Any]) -> _Cursor:
        return _Cursor(self, query)

    async def find_one(self, query: dict[str, Any]) -> dict[str, Any] | None:
        return next((d for d in self.docs if _matches(d, query)), None)

    async def update_one(self, query: dict[str, Any], update: dict[str, Any]) -> SimpleNamespace:
        doc = await self.find_one(query)
        if doc is None:
            return SimpleNamespace(modified_count=0)
        doc.update(update["$set"])
        return SimpleNamespace(modified_count=1)


def _record() -> DeadLetterRecord:
    return DeadLetterRecord(original=subscriber(1), error="retryable 503", failed_at=FIXED_NOW, attempts=5)


def test_store_inserts_pending_record_and_creates_indexes():
    collection = _Collection()
    store = MongoDeadLetterStore(collection)

    async def run():
        await store.ensure_indexes()
        await store.send(_record())
        await store.close()

    asyncio.run(run())

    assert collection.indexes == ["failed_at", "status"]
    doc = collection.docs[0]
    assert doc["original"] == subscriber(1)
    assert doc["attempts"] == 5
    assert doc["failed_at"] == FIXED_NOW
    assert doc["status"] == "PENDING_REVIEW"
    assert doc["replayed_at"] is None


def test_repository_reads_and_marks_records():
    collection = _Collection()
    repo = MongoDeadLetterRepository(SimpleNamespace(dead_letter_collection=collection))

    async def run():
        await MongoDeadLetterStore(collection).send(_record())
        record_id = str(collection.docs[0]["_id"])
        listed = await repo.list_records(status="PENDING_REVIEW", limit=10)
        fetched = await repo.get_by_id(record_id)
        first = await repo.mark_replayed(record_id)
        second = await repo.mark_replayed(record_id)
        return listed, fetched, first, second

    listed, fetched, first, second = asyncio.run(run())

    assert len(listed) == 1
    assert collection.cursors[0].sort_spec == ("failed_at", -1)
    assert collection.cursors[0].limit_value == 10
    assert fetched["error"] == "retryable 503"
    assert (first, second) == (True, False)
    assert collection.docs[0]["status"] == "REPLAYED"
    assert collection.docs[0]["replayed_at"] is not None


def test_repository_treats_malformed_ids_as_missing():
    repo = MongoDeadLetterRepository(SimpleNamespace(dead_letter_collection=_Collection()))

    assert asyncio.run(repo.get_by_id("not-an-object-id")) is None
    assert asyncio.run(repo.mark_replayed("not-an-object-id")) is False
