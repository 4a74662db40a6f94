"""
Database connection manager module.

Owns the Motor client for one application instance and binds the Beanie
document models to it. Constructed explicitly at startup and passed to
whatever needs it; there is no process-wide instance.
"""

from __future__ import annotations

import logging
import os
from typing import Final

from beanie import init_beanie
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from db.models import ALL_DOCUMENT_MODELS

logger = logging.getLogger(__name__)

DEFAULT_MONGO_URI: Final[str] = "mongodb://mongo:27017"
DEFAULT_DATABASE_NAME: Final[str] = "broadband_coverage"


def _get_mongo_uri() -> str:
    return os.getenv("MONGODB_URI", "").strip() or DEFAULT_MONGO_URI


def _get_database_name() -> str:
    return os.getenv("MONGODB_DATABASE", "").strip() or DEFAULT_DATABASE_NAME


class DatabaseManager:
    """
    Manage the MongoDB client and Beanie initialization.

    Environment Variables:
        MONGODB_URI: MongoDB URI (default: mongodb://mongo:27017)
        MONGODB_DATABASE: Database name (default: broadband_coverage)
        MONGODB_MAX_POOL_SIZE: Connection pool size (default: 50)
        MONGODB_SERVER_SELECTION_TIMEOUT_MS: Server selection timeout (default: 10000)
    """

    def __init__(
        self,
        uri: str | None = None,
        database_name: str | None = None,
    ) -> None:
        self._uri = uri or _get_mongo_uri()
        self._database_name = database_name or _get_database_name()
        self._client: AsyncIOMotorClient | None = None
        self._db: AsyncIOMotorDatabase | None = None
        self._beanie_initialized = False

    @property
    def client(self) -> AsyncIOMotorClient:
        if self._client is None:
            self._client = AsyncIOMotorClient(
                self._uri,
                maxPoolSize=int(os.getenv("MONGODB_MAX_POOL_SIZE", "50")),
                serverSelectionTimeoutMS=int(
                    os.getenv("MONGODB_SERVER_SELECTION_TIMEOUT_MS", "10000"),
                ),
                tz_aware=True,
            )
            logger.info("MongoDB client created for database %s", self._database_name)
        return self._client

    @property
    def db(self) -> AsyncIOMotorDatabase:
        if self._db is None:
            self._db = self.client[self._database_name]
        return self._db

    async def init_beanie(self) -> None:
        """Bind every document model to the database; safe to call twice."""
        if self._beanie_initialized:
            logger.debug("Beanie already initialized, skipping")
            return
        await init_beanie(database=self.db, document_models=ALL_DOCUMENT_MODELS)
        self._beanie_initialized = True
        logger.info("Beanie initialized with %d models", len(ALL_DOCUMENT_MODELS))

    async def cleanup_connections(self) -> None:
        if self._client is not None:
            self._client.close()
            logger.info("MongoDB client closed")
        self._client = None
        self._db = None
        self._beanie_initialized = False
