"""
Alert request/response schemas.
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from creditcore.models.alert import AlertType


class AlertCreate(BaseModel):
    """
    Create alert request.

    alert_type and target_value are checked by the alert engine so that a
    malformed condition is reported as alert_condition_invalid.
    """
    symbol: str = Field(..., description="Ticker, e.g. BTC")
    alert_type: str = Field(..., description="price_above, price_below or percentage_change")
    target_value: float = Field(..., description="Price target or percentage threshold")


class AlertUpdate(BaseModel):
    is_active: bool


class AlertResponse(BaseModel):
    id: str
    account_id: str
    symbol: str
    alert_type: AlertType
    target_value: float
    is_active: bool
    last_triggered_at: Optional[datetime] = None
    trigger_count: int = 0
    last_observed_price: Optional[float] = None
    created_at: datetime


class TriggerDecisionResponse(BaseModel):
    """One evaluated alert."""
    alert_id: Optional[str] = None
    symbol: str
    fired: bool
    message: str
    observed_value: Optional[float] = None
    observed_price: Optional[float] = None
    triggered_at: Optional[datetime] = None
