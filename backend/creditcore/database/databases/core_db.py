"""
Core database configuration.
Stores accounts, the credit ledger, portfolios and alerts.

Structure:
- accounts: Tier and credit balance per user (balance mutated only by the ledger)
- credit_transactions: Append-only ledger log, unique per reference_id
- credit_reservations: In-flight charges keyed by reference_id
- portfolios / holdings: User holdings, refreshed with the last known price
- alerts / alert_triggers: Alert definitions and their firing history
"""
import logging

from motor.motor_asyncio import AsyncIOMotorDatabase

logger = logging.getLogger(__name__)

DB_NAME = "creditcore_db"


class Collections:
    """Collection names in creditcore_db."""
    ACCOUNTS = "accounts"
    CREDIT_TRANSACTIONS = "credit_transactions"
    CREDIT_RESERVATIONS = "credit_reservations"
    PORTFOLIOS = "portfolios"
    HOLDINGS = "holdings"
    ALERTS = "alerts"
    ALERT_TRIGGERS = "alert_triggers"

    # Index definitions for each collection
    INDEXES = {
        "credit_transactions": [
            {"keys": [("reference_id", 1)], "unique": True},
            {"keys": [("account_id", 1), ("created_at", -1)]},
        ],
        "credit_reservations": [
            {"keys": [("account_id", 1)]},
        ],
        "portfolios": [
            {"keys": [("account_id", 1)]},
        ],
        "holdings": [
            {"keys": [("portfolio_id", 1)]},
        ],
        "alerts": [
            {"keys": [("account_id", 1), ("is_active", 1)]},
            {"keys": [("is_active", 1), ("symbol", 1)]},
        ],
        "alert_triggers": [
            {"keys": [("account_id", 1), ("triggered_at", -1)]},
        ],
    }


async def create_core_indexes(db: AsyncIOMotorDatabase) -> None:
    """Create indexes for core database collections."""
    for collection_name, indexes in Collections.INDEXES.items():
        collection = db[collection_name]
        for index_def in indexes:
            keys = index_def["keys"]
            kwargs = {k: v for k, v in index_def.items() if k != "keys"}
            try:
                await collection.create_index(keys, **kwargs)
            except Exception as e:
                # Index might already exist with different options
                logger.debug(f"Index on {collection_name} exists or error: {e}")


# Manifest for registry
DB_MANIFEST = {
    "db_name": DB_NAME,
    "purpose": "Accounts, credit ledger, portfolios and alerts",
    "collections": [
        Collections.ACCOUNTS,
        Collections.CREDIT_TRANSACTIONS,
        Collections.CREDIT_RESERVATIONS,
        Collections.PORTFOLIOS,
        Collections.HOLDINGS,
        Collections.ALERTS,
        Collections.ALERT_TRIGGERS,
    ],
    "access_level": "standard",
}
