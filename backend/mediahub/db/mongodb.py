import logging
import asyncio
from typing import Optional
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
import certifi
from mediahub.core.config import settings

logger = logging.getLogger(__name__)

_mongo_client: Optional[AsyncIOMotorClient] = None
_mongo_db: Optional[AsyncIOMotorDatabase] = None

def get_mongo_db() -> Optional[AsyncIOMotorDatabase]:
    global _mongo_client, _mongo_db
    if _mongo_db is not None:
        return _mongo_db
    if not settings.MONGO_URI:
        logger.warning("MONGO_URI is not set")
        return None
    client_kwargs = {
        "serverSelectionTimeoutMS": 30000,
        "connectTimeoutMS": 20000,
        "socketTimeoutMS": 20000,
        "tz_aware": True,
    }
    # Atlas and other TLS endpoints get the certifi CA bundle explicitly
    if "mongodb.net" in settings.MONGO_URI or settings.MONGO_URI.startswith("mongodb+srv://"):
        client_kwargs.update({
            "tls": True,
            "tlsCAFile": certifi.where(),
            "retryWrites": True,
        })
    if settings.MONGO_URI.startswith("mongodb+srv://"):
        client_kwargs["directConnection"] = False
    _mongo_client = AsyncIOMotorClient(settings.MONGO_URI, **client_kwargs)
    _mongo_db = _mongo_client[settings.MONGO_DB]
    return _mongo_db

def close_mongo() -> None:
    global _mongo_client, _mongo_db
    if _mongo_client is not None:
        _mongo_client.close()
    _mongo_client = None
    _mongo_db = None

async def ensure_indexes(db) -> None:
    # Users: the unique indexes back the duplicate-account checks
    await db.users.create_index("username", unique=True, name="u_username")
    await db.users.create_index("email", unique=True, name="u_email")
    # Videos: feed filters and default sort
    await db.videos.create_index([("owner", ASCENDING), ("created_at", DESCENDING)], name="i_owner_created")
    await db.videos.create_index([("is_published", ASCENDING), ("created_at", DESCENDING)], name="i_published_created")
    # Subscriptions
    await db.subscriptions.create_index([("subscriber", ASCENDING), ("channel", ASCENDING)], unique=True, name="u_subscriber_channel")
    await db.subscriptions.create_index("channel", name="i_channel")

async def init_mongo_indexes():
    db = get_mongo_db()
    if db is None:
        return
    # Retry ping and index creation to allow primary election / networking delays
    for attempt in range(1, 6):
        try:
            await db.command({"ping": 1})
            await ensure_indexes(db)
            return
        except Exception as e:
            wait_s = min(2 ** attempt, 15)
            logger.warning(f"Mongo not ready (attempt {attempt}): {e}; retrying in {wait_s}s")
            await asyncio.sleep(wait_s)
    logger.error("Mongo index initialization failed after retries")
