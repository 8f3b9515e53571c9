"""
MongoDB async database connection using Motor.
Provides database instance and collection access.
"""

import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from typing import Optional
from .config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)


class Database:
    """MongoDB database connection manager."""

    client: Optional[AsyncIOMotorClient] = None
    db: Optional[AsyncIOMotorDatabase] = None

    @classmethod
    async def connect(cls):
        """Connect to MongoDB."""
        cls.client = AsyncIOMotorClient(settings.MONGODB_URL)
        cls.db = cls.client[settings.DATABASE_NAME]

        # Verify connection
        await cls.client.admin.command('ping')
        logger.info("Connected to MongoDB: %s", settings.DATABASE_NAME)

        await cls.create_indexes()

    @classmethod
    async def attach(cls, db):
        """Use an already opened database (any Motor-compatible handle)."""
        cls.db = db
        await cls.create_indexes()

    @classmethod
    async def disconnect(cls):
        """Disconnect from MongoDB."""
        if cls.client:
            cls.client.close()
            logger.info("Disconnected from MongoDB")
        cls.client = None
        cls.db = None

    @classmethod
    async def create_indexes(cls):
        """Create database indexes, including the uniqueness guarantees."""
        if cls.db is None:
            return

        await cls.db.users.create_index("email", unique=True)

        await cls.db.patients.create_index("card_number", unique=True)
        await cls.db.patients.create_index("phone_number")

        await cls.db.appointments.create_index("card_number")
        await cls.db.appointments.create_index("phone_number")

        # Queue numbers are never reused, across departments and days
        await cls.db.queue_entries.create_index("queue_number", unique=True)
        await cls.db.queue_entries.create_index([("department", ASCENDING), ("status", ASCENDING)])
        await cls.db.queue_entries.create_index([("server_id", ASCENDING), ("status", ASCENDING)])
        await cls.db.queue_entries.create_index("patient_id")
        await cls.db.queue_entries.create_index([("joined_at", DESCENDING)])

        await cls.db.lab_requests.create_index("queue_entry_id", unique=True)
        await cls.db.lab_requests.create_index("status")

        await cls.db.notifications.create_index("patient_id")
        await cls.db.activity_logs.create_index([("created_at", DESCENDING)])

        logger.info("Database indexes created")

    @classmethod
    def get_collection(cls, name: str):
        """Get a collection by name."""
        if cls.db is None:
            raise RuntimeError("Database not connected")
        return cls.db[name]


# Convenience function for dependency injection
async def get_database() -> AsyncIOMotorDatabase:
    """FastAPI dependency for database access."""
    if Database.db is None:
        await Database.connect()
    return Database.db
