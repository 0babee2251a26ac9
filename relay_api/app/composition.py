"""
Composition root: single place where concrete implementations are wired.

Builds the publisher, the database connection and the dead-letter repository
from settings. Components are connected in order and closed in reverse order;
a failed connect closes whatever already came up.
"""
from __future__ import annotations

from loguru import logger

from relay_api.app.config.settings import Settings
from relay_api.app.infrastructure.messaging.factory import create_publisher
from relay_api.app.infrastructure.persistence.factory import (
    create_database_connection,
    create_dead_letter_repository,
)
from relay_api.app.ports.database_connection import DatabaseConnection
from relay_api.app.ports.dead_letter_repository import DeadLetterRepository
from relay_api.app.ports.message_publisher import MessagePublisher


class AppDependencies:
    def __init__(
        self,
        *,
        settings: Settings,
        publisher: MessagePublisher,
        database: DatabaseConnection,
        dead_letter_repository: DeadLetterRepository,
    ) -> None:
        self.settings = settings
        self.publisher = publisher
        self.database = database
        self.dead_letter_repository = dead_letter_repository
        self._connected: list[MessagePublisher | DatabaseConnection] = []

    async def connect(self) -> None:
        for component in (self.publisher, self.database):
            try:
                await component.connect()
            except Exception:
                await self.close()
                raise
            self._connected.append(component)

    async def close(self) -> None:
        while self._connected:
            component = self._connected.pop()
            try:
                await component.close()
            except Exception as e:
                logger.warning("{} close failed: {}", type(component).__name__, e)


def create_app_dependencies(settings: Settings | None = None) -> AppDependencies:
    """Caller owns lifecycle (connect/close). Backends are selected from settings."""
    settings = settings or Settings()
    database = create_database_connection(settings)
    return AppDependencies(
        settings=settings,
        publisher=create_publisher(settings),
        database=database,
        dead_letter_repository=create_dead_letter_repository(settings, database),
    )
