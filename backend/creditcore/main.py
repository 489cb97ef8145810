"""
creditcore - FastAPI Application

Entitlement-gated credit economy and portfolio analytics for a crypto
portfolio product.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from creditcore.core.errors import CoreError, core_error_handler
from creditcore.core.logging import configure_logging
from creditcore.database.connections import close_connections, get_mongo_client
from creditcore.database.registry import create_indexes, sync_registry
from creditcore.dependencies.services import close_snapshot_provider
from creditcore.routers import accounts, alerts, health, portfolios

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup:
    - Configure logging
    - Sync database registry
    - Create indexes (the ledger relies on the unique reference_id index)

    Shutdown:
    - Close the price client and database connections
    """
    configure_logging()
    logger.info("Starting up creditcore...")

    try:
        client = await get_mongo_client()
        await sync_registry(client)
        await create_indexes(client)
        logger.info("Database registry synced and indexes created")
    except Exception as e:
        logger.warning(f"Database initialization warning: {e}")

    yield

    logger.info("Shutting down creditcore...")
    await close_snapshot_provider()
    await close_connections()
    logger.info("Connections closed")


app = FastAPI(
    title="creditcore API",
    description="""
## Credit economy and portfolio analytics

### Features
- **Accounts**: Subscription tiers (free, pro, elite) with a monthly credit allowance
- **Ledger**: Atomic, idempotent credit debits with an append-only transaction log
- **Features**: Tier-gated, credit-priced feature charges
- **Portfolios**: Holdings valued at live prices with fallback to stored prices
- **Alerts**: Edge-triggered price alerts and windowed percentage-change alerts

### Idempotency
Charges and grants accept a `reference_id`. Re-sending a committed reference
returns the original result without charging again.
    """,
    version="0.1.0",
    lifespan=lifespan,
)

app.add_exception_handler(CoreError, core_error_handler)

app.include_router(health.router)
app.include_router(accounts.router)
app.include_router(portfolios.router)
app.include_router(alerts.router)


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information."""
    return {
        "name": "creditcore API",
        "version": "0.1.0",
        "docs": "/docs",
        "health": "/health",
    }
