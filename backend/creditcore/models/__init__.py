"""
Pydantic models for database documents.
"""
from creditcore.models.account import Account, CreditTransaction, Tier
from creditcore.models.portfolio import Portfolio, Holding
from creditcore.models.alert import Alert, AlertType

__all__ = [
    "Account",
    "CreditTransaction",
    "Tier",
    "Portfolio",
    "Holding",
    "Alert",
    "AlertType",
]
