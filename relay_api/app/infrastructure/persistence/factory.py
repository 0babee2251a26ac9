"""Database connection factory: selects implementation from config. Only place that imports concrete connections."""
from __future__ import annotations

from relay_api.app.config.settings import Settings
from relay_api.app.infrastructure.persistence.mongo.mongo_connection import MongoConnection
from relay_api.app.infrastructure.persistence.mongo.mongo_dead_letter_repository import (
    MongoDeadLetterRepository,
)
from relay_api.app.ports.database_connection import DatabaseConnection
from relay_api.app.ports.dead_letter_repository import DeadLetterRepository


def create_database_connection(settings: Settings) -> DatabaseConnection:
    backend = settings.database_backend.strip().lower()

    if backend == "mongo":
        return MongoConnection(settings)

    raise ValueError(f"Unsupported database backend: {backend}")


def create_dead_letter_repository(settings: Settings, database: DatabaseConnection) -> DeadLetterRepository:
    """Repository shares the same connection as readiness."""
    backend = settings.database_backend.strip().lower()

    if backend == "mongo":
        if not isinstance(database, MongoConnection):
            raise ValueError(
                f"Dead-letter repository for backend 'mongo' requires MongoConnection, got {type(database).__name__}"
            )
        return MongoDeadLetterRepository(database)

    raise ValueError(f"Unsupported database backend for dead-letter repository: {backend}")
