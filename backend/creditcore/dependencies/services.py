"""
Service providers for route dependency injection.

Tests swap the database and the price source with
app.dependency_overrides[get_db] / [get_snapshot_provider].
"""
from typing import Optional

from fastapi import Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from creditcore.database.connections import get_database, get_redis_client
from creditcore.services.account_service import AccountService
from creditcore.services.alert_service import AlertService
from creditcore.services.feature_gateway import FeatureGateway
from creditcore.services.ledger import CreditLedger
from creditcore.services.portfolio_service import PortfolioService
from creditcore.services.price_snapshots import (
    CachedSnapshotProvider,
    CoinGeckoSnapshotProvider,
    PriceSnapshotProvider,
)

# One HTTP client pool for the process
_snapshot_provider: Optional[CachedSnapshotProvider] = None


async def get_db() -> AsyncIOMotorDatabase:
    return await get_database()


async def get_snapshot_provider() -> PriceSnapshotProvider:
    """CoinGecko behind the Redis snapshot cache."""
    global _snapshot_provider
    if _snapshot_provider is None:
        redis = await get_redis_client()
        _snapshot_provider = CachedSnapshotProvider(CoinGeckoSnapshotProvider(), redis)
    return _snapshot_provider


async def close_snapshot_provider() -> None:
    global _snapshot_provider
    if _snapshot_provider is not None:
        await _snapshot_provider.inner.close()
        _snapshot_provider = None


async def get_ledger(db: AsyncIOMotorDatabase = Depends(get_db)) -> CreditLedger:
    return CreditLedger(db)


async def get_account_service(ledger: CreditLedger = Depends(get_ledger)) -> AccountService:
    return AccountService(ledger.db, ledger)


async def get_feature_gateway(ledger: CreditLedger = Depends(get_ledger)) -> FeatureGateway:
    return FeatureGateway(ledger)


async def get_portfolio_service(
    ledger: CreditLedger = Depends(get_ledger),
    provider: PriceSnapshotProvider = Depends(get_snapshot_provider),
) -> PortfolioService:
    return PortfolioService(ledger.db, provider, ledger)


async def get_alert_service(
    ledger: CreditLedger = Depends(get_ledger),
    provider: PriceSnapshotProvider = Depends(get_snapshot_provider),
) -> AlertService:
    return AlertService(ledger.db, provider, ledger=ledger)
