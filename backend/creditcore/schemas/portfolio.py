"""
Portfolio request/response schemas.
"""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class PortfolioCreate(BaseModel):
    """Create portfolio request."""
    name: str = Field(..., min_length=1, max_length=100, description="Portfolio name")
    description: Optional[str] = Field(None, max_length=500, description="Portfolio description")


class PortfolioResponse(BaseModel):
    """Portfolio response."""
    id: str = Field(..., description="Portfolio ID")
    account_id: str = Field(..., description="Owner account ID")
    name: str = Field(..., description="Portfolio name")
    description: Optional[str] = Field(None, description="Portfolio description")
    created_at: datetime = Field(..., description="Creation timestamp")


class HoldingCreate(BaseModel):
    """Add holding request."""
    symbol: str = Field(..., min_length=1, max_length=64, description="Ticker or coin id")
    name: Optional[str] = Field(None, max_length=100)
    amount: float = Field(..., gt=0, description="Units held")
    purchase_price: float = Field(..., gt=0, description="Price paid per unit")
    purchase_date: Optional[datetime] = None


class HoldingUpdate(BaseModel):
    """Edit holding request."""
    name: Optional[str] = Field(None, max_length=100)
    amount: Optional[float] = Field(None, gt=0)
    purchase_price: Optional[float] = Field(None, gt=0)
    purchase_date: Optional[datetime] = None


class HoldingResponse(BaseModel):
    id: str
    portfolio_id: str
    symbol: str
    name: Optional[str] = None
    amount: float
    purchase_price: float
    purchase_date: Optional[datetime] = None
    current_price: Optional[float] = None
    price_updated_at: Optional[datetime] = None


# ==================== Valuation ====================


class PriceSource(str, Enum):
    """Where the price used for a holding came from."""
    LIVE = "live"
    STORED = "stored"
    PURCHASE = "purchase"


class HoldingMetrics(BaseModel):
    """Derived metrics for one holding."""
    holding_id: Optional[str] = None
    symbol: str
    name: Optional[str] = None
    amount: float
    purchase_price: float
    current_price: float
    price_source: PriceSource
    change_24h_percent: Optional[float] = None
    current_value: float
    invested: float
    pnl: float
    pnl_percentage: float
    allocation_percentage: float = 0.0


class Performer(BaseModel):
    """Best or worst performing holding."""
    holding_id: Optional[str] = None
    symbol: str
    name: Optional[str] = None
    pnl_percentage: float
    current_value: float


class PortfolioMetrics(BaseModel):
    """
    Portfolio valuation. Derived on every read, never persisted as truth.
    """
    portfolio_id: Optional[str] = None
    as_of: datetime
    total_value: float
    total_invested: float
    total_pnl: float
    total_pnl_percentage: float
    best_performer: Optional[Performer] = None
    worst_performer: Optional[Performer] = None
    holdings: list[HoldingMetrics] = Field(default=[])
    holdings_count: int = 0
    stale_holdings: int = Field(0, description="Holdings valued without a live price")

    # Health indicators
    diversification_score: int = Field(0, description="0-100, higher is more diversified")
    risk_score: int = Field(0, description="0-100, higher is riskier")
    volatility: float = Field(0.0, description="Std-dev of holding P&L percentages")
    health_score: int = Field(0, description="0-100 blended health score")


class PortfolioAnalyticsResponse(BaseModel):
    """Credit-gated analytics run."""
    metrics: PortfolioMetrics
    credits_used: int
    credits_remaining: int
