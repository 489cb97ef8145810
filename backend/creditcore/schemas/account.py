"""
Account, ledger and entitlement request/response schemas.
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class AccountCreate(BaseModel):
    """Open account request."""
    tier: str = Field("free", description="free, pro or elite")
    account_id: Optional[str] = Field(None, min_length=1, max_length=64, description="Use this id instead of a generated one")


class TierChange(BaseModel):
    tier: str = Field(..., description="free, pro or elite")


class AccountResponse(BaseModel):
    """Account with its plan."""
    id: str
    tier: str
    plan: str = Field(..., description="Plan display name")
    credit_balance: int
    monthly_allowance: int
    created_at: datetime


class TransactionResponse(BaseModel):
    id: Optional[str] = None
    amount: int = Field(..., description="Negative for debits")
    reason: str
    reference_id: str
    balance_after: int
    created_at: datetime


class TransactionHistory(BaseModel):
    """Paginated ledger entries, newest first."""
    transactions: list[TransactionResponse]
    total: int
    page: int
    page_size: int


class CreditGrantRequest(BaseModel):
    """Add credits (grant or refund)."""
    amount: int = Field(..., gt=0)
    reason: str = Field("grant", min_length=1, max_length=64)
    reference_id: Optional[str] = Field(None, max_length=128, description="Idempotency key")


class ChargeRequest(BaseModel):
    extra: bool = Field(False, description="Buy an extra unit of an included feature")
    reference_id: Optional[str] = Field(None, max_length=128, description="Idempotency key")


class ChargeResponse(BaseModel):
    feature_id: str
    allowed: bool
    cost: int
    new_balance: int
    reference_id: str
    replayed: bool = False


class UpgradeSuggestion(BaseModel):
    required_tier: str
    price: float
    additional_features: list[str]


class EntitlementResponse(BaseModel):
    """Whether the account's tier may use a feature, and its cost."""
    feature_id: str
    allowed: bool
    credit_cost: int
    required_tier: Optional[str] = None
    reason: Optional[str] = None
    message: Optional[str] = None
    upgrade: Optional[UpgradeSuggestion] = None
