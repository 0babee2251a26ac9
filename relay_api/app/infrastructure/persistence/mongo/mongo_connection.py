"""
Mongo connection shared by readiness checks and the dead-letter repository.

The worker owns writes to the dead-letter collection; this side only reads and
flips record status, so no indexes are created here.
"""
import inspect
from typing import Any

from loguru import logger
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection

from relay_api.app.config.settings import Settings
from relay_api.app.core import SERVICE_NAME
from relay_api.app.core.backoff import exponential_backoff
from relay_api.app.infrastructure.persistence.mongo.constants import ConnectionState


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def mongo_uri(settings: Settings) -> str:
    credentials = ""
    if settings.database_user and settings.database_password:
        credentials = f"{settings.database_user}:{settings.database_password}@"
    return f"mongodb://{credentials}{settings.database_host}:{settings.database_port}"


class MongoConnection:
    """DatabaseConnection implementation using MongoDB."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._state = ConnectionState.DISCONNECTED
        self._client: AsyncIOMotorClient | None = None

    @property
    def ready(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    @property
    def dead_letter_collection(self) -> AsyncIOMotorCollection:
        if self._client is None:
            raise RuntimeError("db_not_connected")
        return self._client[self._settings.database_name][self._settings.dead_letter_collection]

    async def _open_client(self) -> AsyncIOMotorClient:
        client = AsyncIOMotorClient(
            mongo_uri(self._settings),
            serverSelectionTimeoutMS=self._settings.database_connection_timeout_ms,
        )
        try:
            await client.admin.command("ping")
        except Exception:
            await self._dispose(client)
            raise
        return client

    async def connect(self) -> None:
        self._state = ConnectionState.CONNECTING
        attempt = 0
        async for delay in exponential_backoff(
            self._settings.initial_backoff_seconds,
            self._settings.max_backoff_seconds,
            self._settings.backoff_multiplier,
            self._settings.max_connection_attempts,
        ):
            attempt += 1
            _log("db_connect_attempt", attempt=attempt, delay=delay)
            try:
                self._client = await self._open_client()
            except Exception as e:
                logger.warning("db connect failed: {}", e)
                if attempt >= self._settings.max_connection_attempts:
                    self._state = ConnectionState.DISCONNECTED
                    _log("db_connect_failed", attempt=attempt)
                    raise
                continue
            self._state = ConnectionState.CONNECTED
            _log("db_connected", collection=self._settings.dead_letter_collection)
            return

    async def ping(self) -> bool:
        if self._client is None:
            return False
        try:
            await self._client.admin.command("ping")
        except Exception as e:
            logger.warning("db ping failed: {}", e)
            return False
        return True

    @staticmethod
    async def _dispose(client: AsyncIOMotorClient) -> None:
        res = client.close()
        if inspect.isawaitable(res):
            await res

    async def close(self) -> None:
        if self._client is not None:
            await self._dispose(self._client)
            self._client = None
        self._state = ConnectionState.DISCONNECTED
