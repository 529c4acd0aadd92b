import logging
from contextlib import asynccontextmanager
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING
from pymongo.errors import PyMongoError

from app.core.config import settings

logger = logging.getLogger(__name__)

# Global MongoDB client
_client: AsyncIOMotorClient = None
_database: AsyncIOMotorDatabase = None


async def connect_to_mongo():
    """Connect to MongoDB."""
    global _client, _database
    _client = AsyncIOMotorClient(settings.MONGODB_URI, tz_aware=True)
    _database = _client[settings.MONGODB_DB_NAME]
    logger.info(f"Connected to MongoDB: {settings.MONGODB_DB_NAME}")


async def close_mongo_connection():
    """Close MongoDB connection."""
    global _client
    if _client:
        _client.close()
        logger.info("Closed MongoDB connection")


def get_database() -> AsyncIOMotorDatabase:
    """Get MongoDB database instance."""
    return _database


async def ensure_indexes(db: AsyncIOMotorDatabase):
    """Create the indexes the pricing and checkout paths rely on."""
    await db.coupons.create_index([("code", ASCENDING)], unique=True)
    await db.carts.create_index(
        [("owner_type", ASCENDING), ("owner_id", ASCENDING)],
        unique=True
    )
    await db.shipping_addresses.create_index(
        [("owner_type", ASCENDING), ("owner_id", ASCENDING)]
    )
    await db.orders.create_index([("order_number", ASCENDING)], unique=True)
    await db.promotions.create_index([("product_ids", ASCENDING)])


@asynccontextmanager
async def start_transaction(db: AsyncIOMotorDatabase):
    """
    Open a session and a multi-document transaction on it.

    Yields the session; the transaction commits when the block exits
    normally and aborts when it raises. Requires a replica set.
    """
    async with await db.client.start_session() as session:
        async with session.start_transaction():
            yield session


async def run_in_transaction(db: AsyncIOMotorDatabase, callback, max_attempts: Optional[int] = None):
    """
    Run ``callback(session)`` inside a transaction and return its result.

    Concurrent transactions writing the same document abort all but one with
    a ``TransientTransactionError``. The callback is then run again from the
    start on a fresh transaction, so its reads see what the winner committed.
    Other errors, and a transient error on the last attempt, propagate.
    """
    max_attempts = max_attempts or settings.TRANSACTION_MAX_ATTEMPTS
    for attempt in range(1, max_attempts + 1):
        try:
            async with start_transaction(db) as session:
                return await callback(session)
        except PyMongoError as e:
            if attempt == max_attempts or not e.has_error_label("TransientTransactionError"):
                raise
            logger.warning(f"Retrying transaction after transient error ({attempt}/{max_attempts}): {e}")
