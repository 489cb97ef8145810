"""
Portfolio and holding models for creditcore_db.
"""
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from creditcore.models.account import utcnow


class Portfolio(BaseModel):
    """
    Portfolio document model for the portfolios collection.
    """
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = Field(None, alias="_id", description="MongoDB ObjectId as string")
    account_id: str = Field(..., description="Owner account ID")
    name: str = Field(..., description="Portfolio name")
    description: Optional[str] = Field(None, description="Optional description")
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Optional[str]:
        return None if value is None else str(value)


class Holding(BaseModel):
    """
    Holding document model for the holdings collection.

    current_price is the last known price and may be stale or missing; it is
    refreshed whenever a valuation obtains a live price.
    """
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = Field(None, alias="_id", description="MongoDB ObjectId as string")
    portfolio_id: Optional[str] = Field(None, description="Parent portfolio ID")
    symbol: str = Field(..., description="Ticker or coin id")
    name: Optional[str] = Field(None, description="Display name")
    amount: float = Field(..., ge=0, description="Units held")
    purchase_price: float = Field(..., ge=0, description="Price paid per unit")
    purchase_date: Optional[datetime] = None
    current_price: Optional[float] = Field(None, description="Last known price per unit")
    price_updated_at: Optional[datetime] = None

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Optional[str]:
        return None if value is None else str(value)
