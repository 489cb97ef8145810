"""
Tests for PortfolioService.

These tests cover:
- Tier portfolio limits
- Portfolio and holding CRUD, scoped to the owning account
- Valuation with live prices, stale fallback and price write-back
"""

import pytest
from bson import ObjectId

from creditcore.core.errors import (
    AccountNotFound,
    HoldingNotFound,
    InvalidHolding,
    PortfolioLimitReached,
    PortfolioNotFound,
)
from creditcore.schemas.portfolio import (
    HoldingCreate,
    HoldingUpdate,
    PortfolioCreate,
    PriceSource,
)
from creditcore.services.portfolio_service import PortfolioService


@pytest.fixture
def portfolio_service(mock_db, ledger, price_provider) -> PortfolioService:
    return PortfolioService(mock_db, price_provider, ledger)


async def _portfolio_with_holdings(service, account_id, *holdings):
    portfolio = await service.create_portfolio(account_id, PortfolioCreate(name="Main"))
    created = []
    for symbol, amount, purchase_price in holdings:
        created.append(await service.add_holding(
            portfolio.id,
            account_id,
            HoldingCreate(symbol=symbol, amount=amount, purchase_price=purchase_price),
        ))
    return portfolio, created


class TestPortfolioCrud:

    @pytest.mark.asyncio
    async def test_free_tier_limit(self, portfolio_service, make_account):
        account_id = await make_account(tier="free")

        await portfolio_service.create_portfolio(account_id, PortfolioCreate(name="One"))
        await portfolio_service.create_portfolio(account_id, PortfolioCreate(name="Two"))
        with pytest.raises(PortfolioLimitReached, match="Buddy plan allows 2 portfolios"):
            await portfolio_service.create_portfolio(account_id, PortfolioCreate(name="Three"))

    @pytest.mark.asyncio
    async def test_elite_has_no_limit(self, portfolio_service, make_account):
        account_id = await make_account(tier="elite")

        for i in range(12):
            await portfolio_service.create_portfolio(account_id, PortfolioCreate(name=f"P{i}"))

        assert len(await portfolio_service.list_portfolios(account_id)) == 12

    @pytest.mark.asyncio
    async def test_unknown_account(self, portfolio_service):
        with pytest.raises(AccountNotFound):
            await portfolio_service.create_portfolio("ghost", PortfolioCreate(name="Main"))

    @pytest.mark.asyncio
    async def test_get_portfolio_scoped_to_owner(self, portfolio_service, make_account):
        owner = await make_account()
        other = await make_account()
        portfolio = await portfolio_service.create_portfolio(owner, PortfolioCreate(name="Main"))

        assert (await portfolio_service.get_portfolio(portfolio.id, owner)).name == "Main"
        with pytest.raises(PortfolioNotFound):
            await portfolio_service.get_portfolio(portfolio.id, other)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("portfolio_id", ["not-an-id", str(ObjectId())])
    async def test_get_portfolio_missing(self, portfolio_service, portfolio_id):
        with pytest.raises(PortfolioNotFound):
            await portfolio_service.get_portfolio(portfolio_id)

    @pytest.mark.asyncio
    async def test_delete_portfolio_removes_holdings(self, portfolio_service, make_account, mock_db):
        account_id = await make_account()
        portfolio, _ = await _portfolio_with_holdings(
            portfolio_service, account_id, ("BTC", 1, 40000), ("ETH", 2, 2000)
        )

        await portfolio_service.delete_portfolio(portfolio.id, account_id)

        assert await portfolio_service.list_portfolios(account_id) == []
        assert await mock_db.holdings.count_documents({"portfolio_id": portfolio.id}) == 0


class TestHoldings:

    @pytest.mark.asyncio
    async def test_add_holding_normalises_symbol(self, portfolio_service, make_account):
        account_id = await make_account()
        portfolio, (holding,) = await _portfolio_with_holdings(
            portfolio_service, account_id, (" btc ", 0.5, 40000)
        )

        assert holding.symbol == "BTC"
        assert holding.purchase_date is not None
        listed = await portfolio_service.list_holdings(portfolio.id, account_id)
        assert [h.id for h in listed] == [holding.id]

    @pytest.mark.asyncio
    async def test_blank_symbol_rejected(self, portfolio_service, make_account):
        account_id = await make_account()
        portfolio = await portfolio_service.create_portfolio(account_id, PortfolioCreate(name="Main"))

        with pytest.raises(InvalidHolding):
            await portfolio_service.add_holding(
                portfolio.id, account_id, HoldingCreate(symbol="   ", amount=1, purchase_price=1)
            )

    @pytest.mark.asyncio
    async def test_update_holding_changes_only_given_fields(self, portfolio_service, make_account):
        account_id = await make_account()
        portfolio, (holding,) = await _portfolio_with_holdings(
            portfolio_service, account_id, ("ETH", 2, 2000)
        )

        updated = await portfolio_service.update_holding(
            portfolio.id, holding.id, account_id, HoldingUpdate(amount=3)
        )

        assert updated.amount == 3
        assert updated.purchase_price == 2000

    @pytest.mark.asyncio
    async def test_update_missing_holding(self, portfolio_service, make_account):
        account_id = await make_account()
        portfolio = await portfolio_service.create_portfolio(account_id, PortfolioCreate(name="Main"))

        with pytest.raises(HoldingNotFound):
            await portfolio_service.update_holding(
                portfolio.id, str(ObjectId()), account_id, HoldingUpdate(amount=1)
            )

    @pytest.mark.asyncio
    async def test_remove_holding(self, portfolio_service, make_account):
        account_id = await make_account()
        portfolio, (holding,) = await _portfolio_with_holdings(
            portfolio_service, account_id, ("ETH", 2, 2000)
        )

        await portfolio_service.remove_holding(portfolio.id, holding.id, account_id)

        assert await portfolio_service.list_holdings(portfolio.id, account_id) == []
        with pytest.raises(HoldingNotFound):
            await portfolio_service.remove_holding(portfolio.id, holding.id, account_id)


class TestPortfolioMetrics:

    @pytest.mark.asyncio
    async def test_live_valuation(self, portfolio_service, make_account):
        account_id = await make_account()
        portfolio, _ = await _portfolio_with_holdings(
            portfolio_service, account_id, ("BTC", 1, 40000), ("ETH", 10, 3000)
        )

        metrics = await portfolio_service.get_portfolio_metrics(portfolio.id, account_id)

        assert metrics.portfolio_id == portfolio.id
        assert metrics.total_value == pytest.approx(80000)
        assert metrics.total_invested == pytest.approx(70000)
        assert metrics.total_pnl == pytest.approx(10000)
        assert metrics.stale_holdings == 0
        assert metrics.best_performer.symbol == "BTC"
        assert metrics.worst_performer.symbol == "ETH"
        assert sum(h.allocation_percentage for h in metrics.holdings) == pytest.approx(100)

    @pytest.mark.asyncio
    async def test_live_prices_written_back(self, portfolio_service, make_account, mock_db):
        account_id = await make_account()
        portfolio, (holding,) = await _portfolio_with_holdings(
            portfolio_service, account_id, ("BTC", 1, 40000)
        )

        await portfolio_service.get_portfolio_metrics(portfolio.id, account_id)

        doc = await mock_db.holdings.find_one({"_id": ObjectId(holding.id)})
        assert doc["current_price"] == 50000
        assert doc["price_updated_at"] is not None

    @pytest.mark.asyncio
    async def test_failed_lookup_falls_back(self, portfolio_service, make_account, price_provider, mock_db):
        account_id = await make_account()
        portfolio, (btc, eth, unknown) = await _portfolio_with_holdings(
            portfolio_service, account_id, ("BTC", 1, 40000), ("ETH", 1, 2000), ("XYZ", 100, 1)
        )
        await mock_db.holdings.update_one({"_id": ObjectId(eth.id)}, {"$set": {"current_price": 2500.0}})
        price_provider.fail("ETH")

        metrics = await portfolio_service.get_portfolio_metrics(portfolio.id, account_id)

        sources = {h.symbol: h.price_source for h in metrics.holdings}
        assert sources == {
            "BTC": PriceSource.LIVE,
            "ETH": PriceSource.STORED,
            "XYZ": PriceSource.PURCHASE,
        }
        assert metrics.stale_holdings == 2
        assert metrics.total_value == pytest.approx(50000 + 2500 + 100)

        eth_doc = await mock_db.holdings.find_one({"_id": ObjectId(eth.id)})
        assert eth_doc["current_price"] == 2500.0
        unknown_doc = await mock_db.holdings.find_one({"_id": ObjectId(unknown.id)})
        assert unknown_doc.get("current_price") is None

    @pytest.mark.asyncio
    async def test_duplicate_symbols_fetched_once(self, portfolio_service, make_account, price_provider):
        account_id = await make_account()
        portfolio, _ = await _portfolio_with_holdings(
            portfolio_service, account_id, ("BTC", 1, 40000), ("btc", 1, 45000)
        )

        await portfolio_service.get_portfolio_metrics(portfolio.id, account_id)

        assert price_provider.calls == ["btc"]

    @pytest.mark.asyncio
    async def test_empty_portfolio(self, portfolio_service, make_account, price_provider):
        account_id = await make_account()
        portfolio = await portfolio_service.create_portfolio(account_id, PortfolioCreate(name="Empty"))

        metrics = await portfolio_service.get_portfolio_metrics(portfolio.id, account_id)

        assert metrics.total_value == 0
        assert metrics.holdings_count == 0
        assert metrics.best_performer is None
        assert price_provider.calls == []
