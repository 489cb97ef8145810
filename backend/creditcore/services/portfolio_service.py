"""
Portfolio service for portfolio, holding and valuation operations.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from creditcore.core.errors import (
    HoldingNotFound,
    InvalidHolding,
    PortfolioLimitReached,
    PortfolioNotFound,
)
from creditcore.database.databases import core_db
from creditcore.models.portfolio import Holding, Portfolio
from creditcore.schemas.portfolio import (
    HoldingCreate,
    HoldingUpdate,
    PortfolioCreate,
    PortfolioMetrics,
    PriceSource,
)
from creditcore.services.entitlements import can_create_portfolio, plan_for
from creditcore.services.ledger import CreditLedger
from creditcore.services.price_snapshots import (
    PriceSnapshotProvider,
    fetch_snapshots,
    normalize_symbol,
)
from creditcore.services.valuation import compute_portfolio_metrics

logger = logging.getLogger(__name__)


def _object_id(value: str) -> Optional[ObjectId]:
    return ObjectId(value) if ObjectId.is_valid(value) else None


class PortfolioService:
    """Service for portfolio and holding operations."""

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        provider: Optional[PriceSnapshotProvider] = None,
        ledger: Optional[CreditLedger] = None,
    ):
        """Initialize with the core database and the price source for valuations."""
        self.db = db
        self.portfolios = db[core_db.Collections.PORTFOLIOS]
        self.holdings = db[core_db.Collections.HOLDINGS]
        self.provider = provider
        self.ledger = ledger or CreditLedger(db)

    # ==================== Portfolio CRUD ====================

    async def create_portfolio(self, account_id: str, request: PortfolioCreate) -> Portfolio:
        """Create a portfolio, enforcing the tier's portfolio limit."""
        account = await self.ledger.get_account(account_id)
        count = await self.portfolios.count_documents({"account_id": account_id})
        if not can_create_portfolio(account.tier, count):
            plan = plan_for(account.tier)
            raise PortfolioLimitReached(
                f"{plan.display_name} plan allows {plan.max_portfolios} portfolios"
            )

        portfolio = Portfolio(account_id=account_id, name=request.name, description=request.description)
        doc = portfolio.model_dump(exclude={"id"})
        result = await self.portfolios.insert_one(doc)
        return portfolio.model_copy(update={"id": str(result.inserted_id)})

    async def get_portfolio(self, portfolio_id: str, account_id: Optional[str] = None) -> Portfolio:
        """Get a portfolio by ID, optionally scoped to its owner."""
        oid = _object_id(portfolio_id)
        query = {"_id": oid}
        if account_id is not None:
            query["account_id"] = account_id
        doc = await self.portfolios.find_one(query) if oid else None
        if not doc:
            raise PortfolioNotFound(portfolio_id)
        return Portfolio(**doc)

    async def list_portfolios(self, account_id: str) -> list[Portfolio]:
        cursor = self.portfolios.find({"account_id": account_id}).sort("created_at", 1)
        return [Portfolio(**doc) for doc in await cursor.to_list(length=None)]

    async def delete_portfolio(self, portfolio_id: str, account_id: str) -> None:
        """Delete a portfolio and its holdings."""
        portfolio = await self.get_portfolio(portfolio_id, account_id)
        await self.portfolios.delete_one({"_id": ObjectId(portfolio.id)})
        await self.holdings.delete_many({"portfolio_id": portfolio.id})

    # ==================== Holdings ====================

    async def add_holding(self, portfolio_id: str, account_id: str, request: HoldingCreate) -> Holding:
        await self.get_portfolio(portfolio_id, account_id)
        symbol = request.symbol.strip()
        if not symbol:
            raise InvalidHolding("Symbol must not be empty")

        holding = Holding(
            portfolio_id=portfolio_id,
            symbol=symbol.upper(),
            name=request.name,
            amount=request.amount,
            purchase_price=request.purchase_price,
            purchase_date=request.purchase_date or datetime.now(timezone.utc),
        )
        result = await self.holdings.insert_one(holding.model_dump(exclude={"id"}))
        return holding.model_copy(update={"id": str(result.inserted_id)})

    async def list_holdings(self, portfolio_id: str, account_id: Optional[str] = None) -> list[Holding]:
        await self.get_portfolio(portfolio_id, account_id)
        cursor = self.holdings.find({"portfolio_id": portfolio_id}).sort("_id", 1)
        return [Holding(**doc) for doc in await cursor.to_list(length=None)]

    async def update_holding(
        self, portfolio_id: str, holding_id: str, account_id: str, request: HoldingUpdate
    ) -> Holding:
        """Edit a holding; only the supplied fields change."""
        await self.get_portfolio(portfolio_id, account_id)
        oid = _object_id(holding_id)
        if oid is None:
            raise HoldingNotFound(holding_id)

        update_data = request.model_dump(exclude_none=True)
        if not update_data:
            doc = await self.holdings.find_one({"_id": oid, "portfolio_id": portfolio_id})
        else:
            doc = await self.holdings.find_one_and_update(
                {"_id": oid, "portfolio_id": portfolio_id},
                {"$set": update_data},
                return_document=ReturnDocument.AFTER,
            )
        if not doc:
            raise HoldingNotFound(holding_id)
        return Holding(**doc)

    async def remove_holding(self, portfolio_id: str, holding_id: str, account_id: str) -> None:
        await self.get_portfolio(portfolio_id, account_id)
        oid = _object_id(holding_id)
        result = await self.holdings.delete_one({"_id": oid, "portfolio_id": portfolio_id}) if oid else None
        if result is None or result.deleted_count == 0:
            raise HoldingNotFound(holding_id)

    # ==================== Valuation ====================

    async def get_portfolio_metrics(self, portfolio_id: str, account_id: Optional[str] = None) -> PortfolioMetrics:
        """
        Value a portfolio at current prices.

        Live prices are fetched for every distinct symbol concurrently; a
        failed lookup only downgrades that holding to its stored or purchase
        price. Live prices obtained are written back to the holdings.
        """
        holdings = await self.list_holdings(portfolio_id, account_id)
        snapshots = {}
        if self.provider is not None and holdings:
            snapshots = await fetch_snapshots(self.provider, [h.symbol for h in holdings])

        metrics = compute_portfolio_metrics(holdings, snapshots, portfolio_id=portfolio_id)
        await self._refresh_prices(holdings, snapshots, metrics)
        return metrics

    async def _refresh_prices(self, holdings: list[Holding], snapshots: dict, metrics: PortfolioMetrics) -> None:
        refreshed = 0
        for holding, holding_metrics in zip(holdings, metrics.holdings):
            if holding_metrics.price_source is not PriceSource.LIVE:
                continue
            snapshot = snapshots[normalize_symbol(holding.symbol)]
            await self.holdings.update_one(
                {"_id": ObjectId(holding.id)},
                {"$set": {"current_price": snapshot.price, "price_updated_at": snapshot.as_of}},
            )
            refreshed += 1
        if refreshed:
            logger.debug(f"Refreshed {refreshed} holding prices in portfolio {metrics.portfolio_id}")
