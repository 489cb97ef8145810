"""
Database definitions and collection constants.
"""
from creditcore.database.databases import core_db

__all__ = ["core_db"]
