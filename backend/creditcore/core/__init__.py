"""
Core module - error taxonomy and logging setup.
"""
from creditcore.core.errors import (
    CoreError,
    TierNotAllowed,
    UnknownFeature,
    AccountNotFound,
    AccountExists,
    InsufficientCredits,
    DuplicateCharge,
    InvalidAmount,
    PortfolioNotFound,
    HoldingNotFound,
    PortfolioLimitReached,
    InvalidHolding,
    AlertConditionInvalid,
    AlertLimitReached,
    DuplicateAlert,
    AlertNotFound,
    error_to_http,
)
from creditcore.core.logging import configure_logging

__all__ = [
    "CoreError",
    "TierNotAllowed",
    "UnknownFeature",
    "AccountNotFound",
    "AccountExists",
    "InsufficientCredits",
    "DuplicateCharge",
    "InvalidAmount",
    "PortfolioNotFound",
    "HoldingNotFound",
    "PortfolioLimitReached",
    "InvalidHolding",
    "AlertConditionInvalid",
    "AlertLimitReached",
    "DuplicateAlert",
    "AlertNotFound",
    "error_to_http",
    "configure_logging",
]
