"""
Database registry management.
Ensures the core database metadata and indexes exist on startup.
"""
from datetime import datetime, timezone

from motor.motor_asyncio import AsyncIOMotorClient

from creditcore.config import get_settings
from creditcore.database.databases import core_db


async def sync_registry(client: AsyncIOMotorClient) -> None:
    """
    Synchronize the _metadata document of the core database.
    """
    db = client[get_settings().database_name]
    await db["_metadata"].update_one(
        {"_id": "db_metadata"},
        {
            "$set": {
                "db_name": db.name,
                "purpose": core_db.DB_MANIFEST["purpose"],
                "collections": core_db.DB_MANIFEST["collections"],
                "schema_version": "1.0",
                "last_updated_at": datetime.now(timezone.utc),
            },
            "$setOnInsert": {
                "created_at": datetime.now(timezone.utc),
            },
        },
        upsert=True,
    )


async def create_indexes(client: AsyncIOMotorClient) -> None:
    """Create necessary indexes for the core database."""
    await core_db.create_core_indexes(client[get_settings().database_name])
