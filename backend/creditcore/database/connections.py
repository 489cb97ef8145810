"""
Process-wide clients: MongoDB for accounts, the credit ledger and alerts;
Redis for the short-lived price snapshot cache.

Both are opened lazily on first use and shared by every request until the
application lifespan closes them.
"""
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from redis.asyncio import Redis

from creditcore.config import get_settings

_mongo_client: Optional[AsyncIOMotorClient] = None
_redis_client: Optional[Redis] = None


async def get_mongo_client() -> AsyncIOMotorClient:
    """Shared Motor client. Ledger timestamps come back timezone-aware (UTC)."""
    global _mongo_client
    if _mongo_client is None:
        _mongo_client = AsyncIOMotorClient(
            get_settings().mongo_uri,
            tz_aware=True,
            appname="creditcore",
        )
    return _mongo_client


async def get_redis_client() -> Redis:
    """Shared Redis client for cached price snapshots."""
    global _redis_client
    if _redis_client is None:
        settings = get_settings()
        _redis_client = Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            decode_responses=True,
        )
    return _redis_client


async def close_connections():
    """Drop both shared clients; the next call to a getter reconnects."""
    global _mongo_client, _redis_client

    if _mongo_client is not None:
        _mongo_client.close()
        _mongo_client = None

    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None


async def get_database(db_name: Optional[str] = None) -> AsyncIOMotorDatabase:
    """The creditcore database, or another database on the same server by name."""
    client = await get_mongo_client()
    return client[db_name or get_settings().database_name]
