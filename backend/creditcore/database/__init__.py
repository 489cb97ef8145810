"""
Database module - MongoDB and Redis connections and database definitions.
"""
from creditcore.database.connections import (
    get_mongo_client,
    get_redis_client,
    close_connections,
    get_database,
)
from creditcore.database.databases import core_db

__all__ = [
    "get_mongo_client",
    "get_redis_client",
    "close_connections",
    "get_database",
    "core_db",
]
