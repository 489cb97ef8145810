"""
Feature gateway: the only path from a feature invocation to a credit debit.

Order is fixed: load account -> resolve entitlement -> debit. A denial never
touches the balance. run_feature() holds the credits while the paid work runs
and hands them back if that work fails or is cancelled.
"""
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from creditcore.models.account import CreditTransaction
from creditcore.services.entitlements import resolve
from creditcore.services.ledger import CreditLedger, new_reference_id

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class ChargeResult:
    """Outcome of a successful check-and-debit."""
    feature_id: str
    allowed: bool
    cost: int
    new_balance: int
    reference_id: str
    replayed: bool = False


def _charged(transaction: Optional[CreditTransaction], cost: int) -> int:
    """Credits the log entry actually took; cost when nothing was logged."""
    return -transaction.amount if transaction is not None else cost


class FeatureGateway:
    """Entitlement check plus ledger debit for feature invocations."""

    def __init__(self, ledger: CreditLedger):
        self.ledger = ledger

    async def _authorize(self, account_id: str, feature_id: str, extra: bool) -> int:
        account = await self.ledger.get_account(account_id)
        entitlement = resolve(account.tier, feature_id, is_extra=extra)
        if not entitlement.allowed:
            logger.info(f"Denied {feature_id} for {account_id}: {entitlement.reason.value}")
        entitlement.raise_for_denial()
        return entitlement.credit_cost

    async def check_and_debit(
        self,
        account_id: str,
        feature_id: str,
        extra: bool = False,
        reference_id: Optional[str] = None,
    ) -> ChargeResult:
        """
        Charge an account for one use of a feature.

        Raises:
            AccountNotFound, UnknownFeature, TierNotAllowed: Nothing charged
            InsufficientCredits: Nothing charged
            DuplicateCharge: Same reference still in flight, or already used
                for a different feature or price
        """
        cost = await self._authorize(account_id, feature_id, extra)
        reference_id = reference_id or new_reference_id(feature_id)
        result = await self.ledger.debit(account_id, cost, reason=feature_id, reference_id=reference_id)
        return ChargeResult(
            feature_id=feature_id,
            allowed=True,
            cost=_charged(result.transaction, cost),
            new_balance=result.new_balance,
            reference_id=reference_id,
            replayed=result.replayed,
        )

    async def run_feature(
        self,
        account_id: str,
        feature_id: str,
        work: Callable[[], Awaitable[T]],
        extra: bool = False,
        reference_id: Optional[str] = None,
    ) -> tuple[T, ChargeResult]:
        """
        Run paid work with its credits held, committing only on success.

        Args:
            account_id: Account to charge
            feature_id: Row in the feature cost table
            work: Zero-argument coroutine function doing the actual work
            extra: Charge the extra-unit price
            reference_id: Idempotency key (generated when omitted)

        Returns:
            (work result, ChargeResult)
        """
        cost = await self._authorize(account_id, feature_id, extra)
        reference_id = reference_id or new_reference_id(feature_id)
        reservation = await self.ledger.reserve(account_id, cost, reason=feature_id, reference_id=reference_id)

        try:
            outcome = await work()
        except BaseException:
            # Includes cancellation: credits go back before the error propagates
            logger.warning(f"{feature_id} failed for {account_id}; releasing {reservation.amount} credits")
            await self.ledger.release(reservation)
            raise

        result = await self.ledger.commit(reservation)
        return outcome, ChargeResult(
            feature_id=feature_id,
            allowed=True,
            cost=_charged(result.transaction, cost),
            new_balance=result.new_balance,
            reference_id=reference_id,
            replayed=result.replayed,
        )
