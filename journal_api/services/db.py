# async mongodb client for the journal api
# uses motor for non-blocking operations

import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from journal_api.config import settings

logger = logging.getLogger(__name__)


class Database:
    """async mongodb connection manager"""

    def __init__(self):
        self.client: Optional[AsyncIOMotorClient] = None
        self.db: Optional[AsyncIOMotorDatabase] = None

    async def connect(self):
        """establish connection to mongodb"""
        if self.client is not None:
            return

        logger.info(f"Connecting to MongoDB database: {settings.MONGODB_DATABASE}")
        self.client = AsyncIOMotorClient(settings.MONGODB_URI)
        self.db = self.client[settings.MONGODB_DATABASE]

        # verify connection
        await self.client.admin.command("ping")
        await self.ensure_indexes()
        logger.info("MongoDB connection established")

    async def ensure_indexes(self):
        """unique keys back the one-output-per-entry and one-cooldown-per-user rules"""
        await self.users.create_index("email", unique=True)
        await self.journal_entries.create_index("entry_id", unique=True)
        await self.journal_entries.create_index([("user_id", 1), ("created_at", -1)])
        await self.journal_outputs.create_index("entry_id", unique=True)
        await self.rate_limits.create_index("user_id", unique=True)

    async def close(self):
        """close mongodb connection"""
        if self.client:
            self.client.close()
            self.client = None
            self.db = None
            logger.info("MongoDB connection closed")

    # collection accessors

    @property
    def users(self):
        return self.db["users"]

    @property
    def journal_entries(self):
        return self.db["journal_entries"]

    @property
    def journal_outputs(self):
        return self.db["journal_outputs"]

    @property
    def rate_limits(self):
        return self.db["rate_limits"]


# singleton instance
db = Database()


async def get_db() -> Database:
    """dependency injection for database access"""
    return db
