"""MongoDB implementation of DeadLetterSink."""
from __future__ import annotations

import inspect
from typing import Any

from loguru import logger
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection

from relay_worker.app.config.settings import Settings
from relay_worker.app.constants import DEAD_LETTER_STATUS
from relay_worker.app.core import SERVICE_NAME
from relay_worker.app.core.backoff import exponential_backoff
from relay_worker.app.domain.models import DeadLetterRecord


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def mongo_uri(settings: Settings) -> str:
    credentials = ""
    if settings.database_user and settings.database_password:
        credentials = f"{settings.database_user}:{settings.database_password}@"
    return f"mongodb://{credentials}{settings.database_host}:{settings.database_port}"


async def _close_client(client: Any) -> None:
    res = client.close()
    if inspect.isawaitable(res):
        await res


class MongoDeadLetterStore:
    """Concrete DeadLetterSink. One document per escalated message; inserts are acknowledged writes."""

    def __init__(self, collection: AsyncIOMotorCollection, *, client: Any | None = None) -> None:
        self._collection = collection
        self._client = client

    @classmethod
    async def connect(cls, settings: Settings) -> "MongoDeadLetterStore":
        """Open a client with backoff, verify it with a ping and bind the dead-letter collection."""
        attempt = 0
        async for delay in exponential_backoff(
            settings.initial_backoff_seconds,
            settings.max_backoff_seconds,
            settings.backoff_multiplier,
            settings.max_connection_attempts,
        ):
            attempt += 1
            _log("dead_letter_store_connect_attempt", attempt=attempt, delay=delay)
            client = AsyncIOMotorClient(
                mongo_uri(settings),
                serverSelectionTimeoutMS=settings.database_connection_timeout_ms,
            )
            try:
                await client.admin.command("ping")
            except Exception as exc:
                logger.warning("dead-letter store connect failed: {}", exc)
                await _close_client(client)
                if attempt >= settings.max_connection_attempts:
                    raise
                continue
            collection = client[settings.database_name][settings.dead_letter_collection]
            _log("dead_letter_store_connected", collection=settings.dead_letter_collection)
            return cls(collection, client=client)
        raise RuntimeError("dead-letter store connect failed")

    async def ensure_indexes(self) -> None:
        """Infrastructure bootstrap: create indexes. Not part of the port."""
        await self._collection.create_index("failed_at", name="idx_dead_letter_failed_at")
        await self._collection.create_index("status", name="idx_dead_letter_status")

    async def send(self, record: DeadLetterRecord) -> None:
        document: dict[str, Any] = record.to_dict()
        document["status"] = DEAD_LETTER_STATUS.PENDING_REVIEW
        document["replayed_at"] = None
        await self._collection.insert_one(document)

    async def close(self) -> None:
        """Close the Mongo client when this store opened it."""
        if self._client is not None:
            await _close_client(self._client)
            self._client = None
