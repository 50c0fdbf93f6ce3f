"""MongoDB index creation."""

from __future__ import annotations

import logging

import pymongo

logger = logging.getLogger(__name__)


async def run_migrations(db) -> None:
    """Create indexes on startup."""
    logger.info("Running MongoDB migrations...")

    # Jobs indexes
    jobs = db["jobs"]
    await jobs.create_index(
        [("owner_id", pymongo.ASCENDING), ("status", pymongo.ASCENDING)]
    )
    await jobs.create_index([("status", pymongo.ASCENDING), ("created_at", pymongo.DESCENDING)])

    # Reports indexes
    reports = db["reports"]
    await reports.create_index([("job_id", pymongo.ASCENDING)], unique=True)
    await reports.create_index([("created_at", pymongo.DESCENDING)])

    logger.info("MongoDB migrations complete")
