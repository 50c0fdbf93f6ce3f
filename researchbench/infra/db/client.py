"""MongoDB connection shared by the job and report repositories."""

from __future__ import annotations

import logging

import motor.motor_asyncio
from pymongo.errors import PyMongoError

logger = logging.getLogger(__name__)


class MongoClient:
    """Owns the Motor client and hands out the research database."""

    def __init__(
        self,
        uri: str = "mongodb://localhost:27017",
        database: str = "researchbench",
        server_selection_timeout_ms: int = 5000,
    ):
        self._client = motor.motor_asyncio.AsyncIOMotorClient(
            uri, serverSelectionTimeoutMS=server_selection_timeout_ms
        )
        self._db = self._client[database]
        logger.info("Using MongoDB database %s", database)

    @property
    def db(self) -> motor.motor_asyncio.AsyncIOMotorDatabase:
        return self._db

    def close(self) -> None:
        self._client.close()
        logger.info("MongoDB connection closed")

    async def ping(self) -> bool:
        try:
            await self._client.admin.command("ping")
        except PyMongoError as e:
            logger.warning("MongoDB unreachable: %s", e)
            return False
        return True
