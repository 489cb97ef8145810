"""
Alert models for creditcore_db.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from creditcore.models.account import utcnow


class AlertType(str, Enum):
    """Supported alert conditions."""
    PRICE_ABOVE = "price_above"
    PRICE_BELOW = "price_below"
    PERCENTAGE_CHANGE = "percentage_change"


class Alert(BaseModel):
    """
    Alert document model for the alerts collection.

    last_observed_price is the price seen by the previous evaluation; price
    alerts only fire when it sat on the other side of the target.
    """
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = Field(None, alias="_id", description="MongoDB ObjectId as string")
    account_id: str
    symbol: str
    alert_type: AlertType
    target_value: float = Field(..., gt=0)
    is_active: bool = True
    last_triggered_at: Optional[datetime] = None
    trigger_count: int = Field(default=0, ge=0)
    last_observed_price: Optional[float] = None
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Optional[str]:
        return None if value is None else str(value)
