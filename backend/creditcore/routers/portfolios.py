"""
Portfolios router for portfolio, holding and valuation endpoints.
"""
from typing import Optional

from fastapi import APIRouter, Body, Depends, status

from creditcore.dependencies.services import get_feature_gateway, get_portfolio_service
from creditcore.models.portfolio import Holding, Portfolio
from creditcore.schemas.account import ChargeRequest
from creditcore.schemas.portfolio import (
    HoldingCreate,
    HoldingResponse,
    HoldingUpdate,
    PortfolioAnalyticsResponse,
    PortfolioCreate,
    PortfolioMetrics,
    PortfolioResponse,
)
from creditcore.services.feature_gateway import FeatureGateway
from creditcore.services.portfolio_service import PortfolioService

router = APIRouter(prefix="/accounts/{account_id}/portfolios", tags=["Portfolios"])

ANALYTICS_FEATURE = "portfolio_analytics"


def _portfolio_response(portfolio: Portfolio) -> PortfolioResponse:
    return PortfolioResponse(**portfolio.model_dump())


def _holding_response(holding: Holding) -> HoldingResponse:
    return HoldingResponse(**holding.model_dump())


# ==================== Portfolio CRUD ====================


@router.get(
    "",
    response_model=list[PortfolioResponse],
    summary="List portfolios",
)
async def list_portfolios(
    account_id: str,
    portfolio_service: PortfolioService = Depends(get_portfolio_service),
):
    return [_portfolio_response(p) for p in await portfolio_service.list_portfolios(account_id)]


@router.post(
    "",
    response_model=PortfolioResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create portfolio",
)
async def create_portfolio(
    account_id: str,
    body: PortfolioCreate,
    portfolio_service: PortfolioService = Depends(get_portfolio_service),
):
    """
    Create a portfolio.

    - **name**: Portfolio name (required)
    - **description**: Optional description

    Returns 403 once the tier's portfolio limit is reached.
    """
    return _portfolio_response(await portfolio_service.create_portfolio(account_id, body))


@router.delete(
    "/{portfolio_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete portfolio",
)
async def delete_portfolio(
    account_id: str,
    portfolio_id: str,
    portfolio_service: PortfolioService = Depends(get_portfolio_service),
):
    """Delete a portfolio and all its holdings."""
    await portfolio_service.delete_portfolio(portfolio_id, account_id)


# ==================== Holdings ====================


@router.get(
    "/{portfolio_id}/holdings",
    response_model=list[HoldingResponse],
    summary="List holdings",
)
async def list_holdings(
    account_id: str,
    portfolio_id: str,
    portfolio_service: PortfolioService = Depends(get_portfolio_service),
):
    holdings = await portfolio_service.list_holdings(portfolio_id, account_id)
    return [_holding_response(h) for h in holdings]


@router.post(
    "/{portfolio_id}/holdings",
    response_model=HoldingResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add holding",
)
async def add_holding(
    account_id: str,
    portfolio_id: str,
    body: HoldingCreate,
    portfolio_service: PortfolioService = Depends(get_portfolio_service),
):
    """
    Add a holding.

    - **symbol**: Ticker (BTC) or CoinGecko id (bitcoin)
    - **amount**: Units held, must be positive
    - **purchase_price**: Price paid per unit, must be positive
    """
    return _holding_response(await portfolio_service.add_holding(portfolio_id, account_id, body))


@router.patch(
    "/{portfolio_id}/holdings/{holding_id}",
    response_model=HoldingResponse,
    summary="Edit holding",
)
async def update_holding(
    account_id: str,
    portfolio_id: str,
    holding_id: str,
    body: HoldingUpdate,
    portfolio_service: PortfolioService = Depends(get_portfolio_service),
):
    holding = await portfolio_service.update_holding(portfolio_id, holding_id, account_id, body)
    return _holding_response(holding)


@router.delete(
    "/{portfolio_id}/holdings/{holding_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove holding",
)
async def remove_holding(
    account_id: str,
    portfolio_id: str,
    holding_id: str,
    portfolio_service: PortfolioService = Depends(get_portfolio_service),
):
    await portfolio_service.remove_holding(portfolio_id, holding_id, account_id)


# ==================== Valuation ====================


@router.get(
    "/{portfolio_id}/metrics",
    response_model=PortfolioMetrics,
    summary="Portfolio metrics",
)
async def get_portfolio_metrics(
    account_id: str,
    portfolio_id: str,
    portfolio_service: PortfolioService = Depends(get_portfolio_service),
):
    """
    Value the portfolio at current prices.

    Holdings whose live price could not be fetched are valued at their last
    stored price (or purchase price) and counted in **stale_holdings**.
    """
    return await portfolio_service.get_portfolio_metrics(portfolio_id, account_id)


@router.post(
    "/{portfolio_id}/analytics",
    response_model=PortfolioAnalyticsResponse,
    summary="Run paid portfolio analytics",
)
async def run_portfolio_analytics(
    account_id: str,
    portfolio_id: str,
    body: Optional[ChargeRequest] = Body(None),
    portfolio_service: PortfolioService = Depends(get_portfolio_service),
    gateway: FeatureGateway = Depends(get_feature_gateway),
):
    """
    Full analytics run, charged as the portfolio_analytics feature.

    Credits are only taken if the analysis completes.
    """
    body = body or ChargeRequest()

    async def work() -> PortfolioMetrics:
        return await portfolio_service.get_portfolio_metrics(portfolio_id, account_id)

    metrics, charge = await gateway.run_feature(
        account_id,
        ANALYTICS_FEATURE,
        work,
        extra=body.extra,
        reference_id=body.reference_id,
    )
    return PortfolioAnalyticsResponse(
        metrics=metrics,
        credits_used=charge.cost,
        credits_remaining=charge.new_balance,
    )
