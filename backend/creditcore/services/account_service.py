"""
Account service: creation and tier changes.

Balances are never written here; the opening allowance goes through the
ledger so the transaction log always reconstructs the balance.
"""
import logging
import uuid
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from creditcore.core.errors import AccountExists, AccountNotFound
from creditcore.database.databases import core_db
from creditcore.models.account import Account, Tier
from creditcore.services.entitlements import plan_for
from creditcore.services.ledger import CreditLedger

logger = logging.getLogger(__name__)


class AccountService:
    """Service for account lifecycle operations."""

    def __init__(self, db: AsyncIOMotorDatabase, ledger: Optional[CreditLedger] = None):
        self.db = db
        self.accounts = db[core_db.Collections.ACCOUNTS]
        self.ledger = ledger or CreditLedger(db)

    async def create_account(self, tier: Tier | str = Tier.FREE, account_id: Optional[str] = None) -> Account:
        """Create an account seeded with its tier's monthly allowance."""
        tier = Tier.parse(tier)
        account = Account(
            _id=account_id or uuid.uuid4().hex,
            tier=tier,
            credit_balance=0,
            monthly_allowance=plan_for(tier).monthly_credits,
        )
        try:
            await self.accounts.insert_one(account.to_document())
        except DuplicateKeyError:
            raise AccountExists(account.id)
        await self.ledger.credit(
            account.id,
            account.monthly_allowance,
            reason="account_opened",
            reference_id=f"opening:{account.id}",
        )
        logger.info(f"Created {tier.label} account {account.id}")
        return await self.ledger.get_account(account.id)

    async def get_account(self, account_id: str) -> Account:
        return await self.ledger.get_account(account_id)

    async def change_tier(self, account_id: str, tier: Tier | str) -> Account:
        """Move an account to another tier; the new allowance applies from the next grant."""
        tier = Tier.parse(tier)
        doc = await self.accounts.find_one_and_update(
            {"_id": account_id},
            {"$set": {"tier": tier.label, "monthly_allowance": plan_for(tier).monthly_credits}},
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            raise AccountNotFound(account_id)
        logger.info(f"Account {account_id} moved to {tier.label}")
        return Account(**doc)
