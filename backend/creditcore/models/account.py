"""
Account and credit ledger models for creditcore_db.
"""
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Tier(IntEnum):
    """Subscription tier. Ordinal: comparisons use >=, not membership."""
    FREE = 0
    PRO = 1
    ELITE = 2

    @property
    def label(self) -> str:
        return self.name.lower()

    @classmethod
    def parse(cls, value: Any) -> "Tier":
        """Parse a stored tier; anything unrecognised counts as free."""
        if isinstance(value, cls):
            return value
        if isinstance(value, int) and value in cls._value2member_map_:
            return cls(value)
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError:
                return cls.FREE
        return cls.FREE


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Account(BaseModel):
    """
    Account document model for the accounts collection.

    credit_balance is never negative and is only mutated by the credit ledger.
    The stored document may also carry held_references, the ledger's list of
    uncommitted debits; it is not part of the model.
    """
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., alias="_id", description="Account identifier")
    tier: Tier = Field(default=Tier.FREE, description="Subscription tier")
    credit_balance: int = Field(default=0, ge=0, description="Spendable credits")
    monthly_allowance: int = Field(default=0, ge=0, description="Credits granted each month")
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("tier", mode="before")
    @classmethod
    def _parse_tier(cls, value: Any) -> Tier:
        return Tier.parse(value)

    def to_document(self) -> dict[str, Any]:
        return {
            "_id": self.id,
            "tier": self.tier.label,
            "credit_balance": self.credit_balance,
            "monthly_allowance": self.monthly_allowance,
            "created_at": self.created_at,
        }


class CreditTransaction(BaseModel):
    """
    Immutable ledger entry for the credit_transactions collection.

    amount is signed: negative for debits, positive for grants and refunds.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: Optional[str] = Field(None, alias="_id")
    account_id: str
    amount: int
    reason: str = Field(..., description="Feature identifier or grant type")
    reference_id: str = Field(..., description="Idempotency / correlation key")
    balance_after: int = Field(..., ge=0)
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Optional[str]:
        return None if value is None else str(value)

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(exclude={"id"})
