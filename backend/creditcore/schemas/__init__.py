"""
Pydantic schemas for API request/response validation.
"""
from creditcore.schemas.account import (
    AccountCreate,
    TierChange,
    AccountResponse,
    TransactionResponse,
    TransactionHistory,
    CreditGrantRequest,
    ChargeRequest,
    ChargeResponse,
    UpgradeSuggestion,
    EntitlementResponse,
)
from creditcore.schemas.portfolio import (
    PortfolioCreate,
    PortfolioResponse,
    HoldingCreate,
    HoldingUpdate,
    HoldingResponse,
    PriceSource,
    HoldingMetrics,
    Performer,
    PortfolioMetrics,
    PortfolioAnalyticsResponse,
)
from creditcore.schemas.alert import (
    AlertCreate,
    AlertUpdate,
    AlertResponse,
    TriggerDecisionResponse,
)

__all__ = [
    # Account
    "AccountCreate",
    "TierChange",
    "AccountResponse",
    "TransactionResponse",
    "TransactionHistory",
    "CreditGrantRequest",
    "ChargeRequest",
    "ChargeResponse",
    "UpgradeSuggestion",
    "EntitlementResponse",
    # Portfolio
    "PortfolioCreate",
    "PortfolioResponse",
    "HoldingCreate",
    "HoldingUpdate",
    "HoldingResponse",
    "PriceSource",
    "HoldingMetrics",
    "Performer",
    "PortfolioMetrics",
    "PortfolioAnalyticsResponse",
    # Alert
    "AlertCreate",
    "AlertUpdate",
    "AlertResponse",
    "TriggerDecisionResponse",
]
