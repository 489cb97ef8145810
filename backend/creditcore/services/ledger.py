"""
Credit ledger.

Owns every change to an account's credit_balance. Balance checks and
mutations happen in one conditional update at the datastore
({"credit_balance": {"$gte": amount}} + $inc), never as read, subtract,
write back.

Every change is keyed by a reference_id:
- credit_reservations holds the in-flight claim on a reference (its _id), so
  two concurrent requests with the same reference cannot both charge;
- the account's held_references lists the debits whose credits are
  currently taken but not yet logged. It is pushed in the same update that
  decrements the balance and pulled in the same update that refunds it, so
  a claim is only ever refunded if its credits were really taken;
- credit_transactions is the append-only log, unique per reference, used to
  replay an already-committed charge instead of charging twice and to
  reconstruct balances for audit. A replay must match the original
  account, reason and amount.

A debit is reserve() (claim + atomic decrement) followed by commit() (append
to the log). release() hands a reservation back when the work it paid for
failed, so no half-committed charge survives.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from creditcore.core.errors import (
    AccountNotFound,
    DuplicateCharge,
    InsufficientCredits,
    InvalidAmount,
)
from creditcore.database.databases import core_db
from creditcore.models.account import Account, CreditTransaction

logger = logging.getLogger(__name__)

HELD_REFERENCES = "held_references"


@dataclass(frozen=True)
class Reservation:
    """Credits held for a charge that has not been committed yet."""
    account_id: str
    amount: int
    reason: str
    reference_id: str
    balance_after: int
    replayed: bool = False
    transaction: Optional[CreditTransaction] = None


@dataclass(frozen=True)
class LedgerResult:
    """Outcome of a committed debit or credit."""
    new_balance: int
    transaction: Optional[CreditTransaction] = None
    replayed: bool = False


def new_reference_id(prefix: str = "ref") -> str:
    return f"{prefix}:{uuid.uuid4().hex}"


def _validate_amount(amount: int) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmount("Credit amounts must be whole numbers")
    if amount < 0:
        raise InvalidAmount("Credit amounts must not be negative")
    return amount


class CreditLedger:
    """Atomic, idempotent debit/credit over the accounts collection."""

    def __init__(self, db: AsyncIOMotorDatabase):
        """Initialize with the core database."""
        self.db = db
        self.accounts = db[core_db.Collections.ACCOUNTS]
        self.transactions = db[core_db.Collections.CREDIT_TRANSACTIONS]
        self.reservations = db[core_db.Collections.CREDIT_RESERVATIONS]

    # ==================== Reads ====================

    async def get_account(self, account_id: str) -> Account:
        doc = await self.accounts.find_one({"_id": account_id})
        if doc is None:
            raise AccountNotFound(account_id)
        return Account(**doc)

    async def get_balance(self, account_id: str) -> int:
        return (await self.get_account(account_id)).credit_balance

    async def find_transaction(self, reference_id: str) -> Optional[CreditTransaction]:
        doc = await self.transactions.find_one({"reference_id": reference_id})
        return CreditTransaction(**doc) if doc else None

    async def list_transactions(
        self, account_id: str, page: int = 1, page_size: int = 50
    ) -> tuple[list[CreditTransaction], int]:
        """Newest-first page of an account's ledger entries and the total count."""
        query = {"account_id": account_id}
        total = await self.transactions.count_documents(query)
        skip = (page - 1) * page_size
        cursor = self.transactions.find(query).sort("created_at", -1).skip(skip).limit(page_size)
        docs = await cursor.to_list(length=page_size)
        return [CreditTransaction(**d) for d in docs], total

    async def reconstruct_balance(self, account_id: str) -> int:
        """Balance implied by the transaction log alone."""
        cursor = self.transactions.find({"account_id": account_id}, {"amount": 1})
        docs = await cursor.to_list(length=None)
        return sum(d["amount"] for d in docs)

    # ==================== Claims ====================

    async def _claim(self, account_id: str, amount: int, reason: str, reference_id: str, kind: str) -> bool:
        """Claim a reference for an in-flight change. False if already claimed."""
        try:
            await self.reservations.insert_one({
                "_id": reference_id,
                "account_id": account_id,
                "amount": amount,
                "reason": reason,
                "kind": kind,
                "created_at": datetime.now(timezone.utc),
            })
        except DuplicateKeyError:
            return False
        return True

    async def _replay(
        self, reference_id: str, account_id: str, reason: str, amount: int
    ) -> Optional[CreditTransaction]:
        """
        The committed entry for a reference, if any.

        amount is the signed log amount the caller would write. A reference
        reused for another account, reason or amount is a conflict, not a
        replay.
        """
        existing = await self.find_transaction(reference_id)
        if existing is None:
            return None
        if (existing.account_id, existing.reason, existing.amount) != (account_id, reason, amount):
            raise DuplicateCharge(
                reference_id,
                f"Reference {reference_id} was already used for a different charge",
            )
        logger.warning(
            f"Reference {reference_id} already committed for account "
            f"{existing.account_id}; replaying"
        )
        return existing

    async def _append(self, transaction: CreditTransaction) -> None:
        await self.transactions.insert_one(transaction.to_document())

    async def _return_hold(self, account_id: str, amount: int, reference_id: str) -> bool:
        """
        Refund a debit's held credits and drop its claim.

        Only refunds when the account still lists the hold, so a claim whose
        decrement never happened (or was already refunded) gives nothing back.
        """
        result = await self.accounts.update_one(
            {"_id": account_id, HELD_REFERENCES: reference_id},
            {"$inc": {"credit_balance": amount}, "$pull": {HELD_REFERENCES: reference_id}},
        )
        await self.reservations.delete_one({"_id": reference_id, "account_id": account_id})
        return result.modified_count == 1

    async def _settle(self, account_id: str, reference_id: str) -> None:
        """Drop the hold and claim of a debit that is in the log."""
        await self.accounts.update_one(
            {"_id": account_id},
            {"$pull": {HELD_REFERENCES: reference_id}},
        )
        await self.reservations.delete_one({"_id": reference_id})

    # ==================== Debits ====================

    async def reserve(self, account_id: str, amount: int, reason: str, reference_id: str) -> Reservation:
        """
        Hold credits for a charge.

        Raises:
            InsufficientCredits: Balance below amount (nothing held)
            AccountNotFound: No such account
            DuplicateCharge: The reference is held by another in-flight charge,
                or was committed for a different charge
        """
        amount = _validate_amount(amount)

        existing = await self._replay(reference_id, account_id, reason, -amount)
        if existing is not None:
            return Reservation(
                account_id, -existing.amount, existing.reason, reference_id,
                balance_after=existing.balance_after, replayed=True, transaction=existing,
            )

        if amount == 0:
            balance = await self.get_balance(account_id)
            return Reservation(account_id, 0, reason, reference_id, balance_after=balance)

        if not await self._claim(account_id, amount, reason, reference_id, kind="debit"):
            existing = await self._replay(reference_id, account_id, reason, -amount)
            if existing is not None:
                return Reservation(
                    account_id, -existing.amount, existing.reason, reference_id,
                    balance_after=existing.balance_after, replayed=True, transaction=existing,
                )
            raise DuplicateCharge(reference_id)

        doc = await self.accounts.find_one_and_update(
            {
                "_id": account_id,
                "credit_balance": {"$gte": amount},
                HELD_REFERENCES: {"$ne": reference_id},
            },
            {
                "$inc": {"credit_balance": -amount},
                "$push": {HELD_REFERENCES: reference_id},
            },
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            await self.reservations.delete_one({"_id": reference_id})
            current = await self.accounts.find_one({"_id": account_id}, {"credit_balance": 1})
            if current is None:
                raise AccountNotFound(account_id)
            raise InsufficientCredits(amount, current["credit_balance"])

        logger.info(f"Reserved {amount} credits on {account_id} for {reason} ({reference_id})")
        return Reservation(account_id, amount, reason, reference_id, balance_after=doc["credit_balance"])

    async def commit(self, reservation: Reservation) -> LedgerResult:
        """Append the reserved charge to the log and drop the hold and claim."""
        if reservation.replayed:
            return LedgerResult(reservation.balance_after, reservation.transaction, replayed=True)
        if reservation.amount == 0:
            return LedgerResult(reservation.balance_after)

        transaction = CreditTransaction(
            account_id=reservation.account_id,
            amount=-reservation.amount,
            reason=reservation.reason,
            reference_id=reservation.reference_id,
            balance_after=reservation.balance_after,
        )
        try:
            await self._append(transaction)
        except DuplicateKeyError:
            # Logged outside our claim: hand the credits back, report the original
            await self._return_hold(reservation.account_id, reservation.amount, reservation.reference_id)
            existing = await self._replay(
                reservation.reference_id, reservation.account_id, reservation.reason, -reservation.amount
            )
            return LedgerResult(existing.balance_after, existing, replayed=True)

        await self._settle(reservation.account_id, reservation.reference_id)
        logger.info(
            f"Debited {reservation.amount} credits from {reservation.account_id} "
            f"for {reservation.reason} ({reservation.reference_id}), "
            f"balance {reservation.balance_after}"
        )
        return LedgerResult(reservation.balance_after, transaction)

    async def release(self, reservation: Reservation) -> None:
        """Return held credits. Safe to call more than once."""
        if reservation.replayed or reservation.amount == 0:
            return
        if await self._return_hold(reservation.account_id, reservation.amount, reservation.reference_id):
            logger.warning(
                f"Released {reservation.amount} credits to {reservation.account_id} "
                f"({reservation.reference_id})"
            )

    async def debit(self, account_id: str, amount: int, reason: str, reference_id: str) -> LedgerResult:
        """
        Charge credits in one step.

        Re-issuing a committed reference returns the original result and
        leaves the balance untouched.
        """
        reservation = await self.reserve(account_id, amount, reason, reference_id)
        return await self.commit(reservation)

    # ==================== Credits ====================

    async def credit(
        self,
        account_id: str,
        amount: int,
        reason: str,
        reference_id: Optional[str] = None,
    ) -> LedgerResult:
        """Add credits (refunds, grants, monthly allowance)."""
        amount = _validate_amount(amount)
        reference_id = reference_id or new_reference_id("credit")

        existing = await self._replay(reference_id, account_id, reason, amount)
        if existing is not None:
            return LedgerResult(existing.balance_after, existing, replayed=True)

        if not await self._claim(account_id, amount, reason, reference_id, kind="credit"):
            existing = await self._replay(reference_id, account_id, reason, amount)
            if existing is not None:
                return LedgerResult(existing.balance_after, existing, replayed=True)
            raise DuplicateCharge(reference_id)

        try:
            doc = await self.accounts.find_one_and_update(
                {"_id": account_id},
                {"$inc": {"credit_balance": amount}},
                return_document=ReturnDocument.AFTER,
            )
            if doc is None:
                raise AccountNotFound(account_id)

            transaction = CreditTransaction(
                account_id=account_id,
                amount=amount,
                reason=reason,
                reference_id=reference_id,
                balance_after=doc["credit_balance"],
            )
            await self._append(transaction)
        finally:
            await self.reservations.delete_one({"_id": reference_id})

        logger.info(f"Credited {amount} credits to {account_id} for {reason} ({reference_id})")
        return LedgerResult(transaction.balance_after, transaction)

    async def grant_monthly_allowance(
        self, account_id: str, period: Optional[datetime] = None
    ) -> LedgerResult:
        """
        Credit the account's allowance once per calendar month.

        A second call in the same month replays the first grant even if the
        allowance changed in between (e.g. a tier change).
        """
        period = period or datetime.now(timezone.utc)
        reference_id = f"monthly:{account_id}:{period:%Y-%m}"
        existing = await self.find_transaction(reference_id)
        if existing is not None:
            return LedgerResult(existing.balance_after, existing, replayed=True)

        account = await self.get_account(account_id)
        return await self.credit(
            account_id,
            account.monthly_allowance,
            reason="monthly_allowance",
            reference_id=reference_id,
        )

    # ==================== Maintenance ====================

    async def release_stale_reservations(self, older_than: timedelta = timedelta(minutes=15)) -> int:
        """
        Clean up debit claims left behind by a crashed worker. Returns the
        number of reservations whose credits were handed back.

        - already in the log: the charge stands, only the hold and claim go;
        - credits still held: refunded;
        - never decremented: the claim is dropped, nothing is refunded.
        """
        cutoff = datetime.now(timezone.utc) - older_than
        cursor = self.reservations.find({"kind": "debit", "created_at": {"$lt": cutoff}})
        released = 0
        for doc in await cursor.to_list(length=None):
            reference_id, account_id = doc["_id"], doc["account_id"]
            if await self.find_transaction(reference_id) is not None:
                await self._settle(account_id, reference_id)
            elif await self._return_hold(account_id, doc["amount"], reference_id):
                released += 1
        if released:
            logger.warning(f"Released {released} stale credit reservations")
        return released
