"""
Accounts router: accounts, credit ledger and feature charges.
"""
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query, status

from creditcore.dependencies.services import (
    get_account_service,
    get_feature_gateway,
    get_ledger,
)
from creditcore.models.account import Account, CreditTransaction
from creditcore.schemas.account import (
    AccountCreate,
    AccountResponse,
    ChargeRequest,
    ChargeResponse,
    CreditGrantRequest,
    EntitlementResponse,
    TierChange,
    TransactionHistory,
    TransactionResponse,
)
from creditcore.services.account_service import AccountService
from creditcore.services.entitlements import (
    DenialReason,
    plan_for,
    resolve,
    upgrade_suggestion,
)
from creditcore.services.feature_gateway import FeatureGateway
from creditcore.services.ledger import CreditLedger

router = APIRouter(prefix="/accounts", tags=["Accounts"])


def _account_response(account: Account) -> AccountResponse:
    return AccountResponse(
        id=account.id,
        tier=account.tier.label,
        plan=plan_for(account.tier).display_name,
        credit_balance=account.credit_balance,
        monthly_allowance=account.monthly_allowance,
        created_at=account.created_at,
    )


def _transaction_response(transaction: CreditTransaction) -> TransactionResponse:
    return TransactionResponse(**transaction.model_dump(exclude={"account_id"}))


# ==================== Accounts ====================


@router.post(
    "",
    response_model=AccountResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Open account",
)
async def create_account(
    body: AccountCreate,
    account_service: AccountService = Depends(get_account_service),
):
    """
    Open an account on a tier, credited with the tier's monthly allowance.

    - **tier**: free, pro or elite (unknown values open a free account)
    """
    account = await account_service.create_account(body.tier, body.account_id)
    return _account_response(account)


@router.get(
    "/{account_id}",
    response_model=AccountResponse,
    summary="Get account",
)
async def get_account(
    account_id: str,
    account_service: AccountService = Depends(get_account_service),
):
    return _account_response(await account_service.get_account(account_id))


@router.put(
    "/{account_id}/tier",
    response_model=AccountResponse,
    summary="Change tier",
)
async def change_tier(
    account_id: str,
    body: TierChange,
    account_service: AccountService = Depends(get_account_service),
):
    """Move the account to another tier. Balance is unchanged."""
    return _account_response(await account_service.change_tier(account_id, body.tier))


# ==================== Ledger ====================


@router.get(
    "/{account_id}/transactions",
    response_model=TransactionHistory,
    summary="Ledger history",
)
async def list_transactions(
    account_id: str,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    ledger: CreditLedger = Depends(get_ledger),
):
    """Ledger entries for the account, newest first."""
    await ledger.get_account(account_id)
    transactions, total = await ledger.list_transactions(account_id, page, page_size)
    return TransactionHistory(
        transactions=[_transaction_response(t) for t in transactions],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.post(
    "/{account_id}/credits",
    response_model=TransactionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add credits",
)
async def add_credits(
    account_id: str,
    body: CreditGrantRequest,
    ledger: CreditLedger = Depends(get_ledger),
):
    """
    Grant or refund credits.

    Re-sending the same **reference_id** returns the original entry.
    """
    result = await ledger.credit(account_id, body.amount, body.reason, body.reference_id)
    return _transaction_response(result.transaction)


@router.post(
    "/{account_id}/credits/monthly",
    response_model=TransactionResponse,
    summary="Grant monthly allowance",
)
async def grant_monthly_allowance(
    account_id: str,
    ledger: CreditLedger = Depends(get_ledger),
):
    """Credit this month's allowance. Granted at most once per calendar month."""
    result = await ledger.grant_monthly_allowance(account_id)
    return _transaction_response(result.transaction)


# ==================== Entitlements ====================


@router.get(
    "/{account_id}/entitlements/{feature_id}",
    response_model=EntitlementResponse,
    summary="Check feature entitlement",
)
async def get_entitlement(
    account_id: str,
    feature_id: str,
    extra: bool = Query(False),
    ledger: CreditLedger = Depends(get_ledger),
):
    """Whether the account may use a feature and what it would cost. Nothing is charged."""
    account = await ledger.get_account(account_id)
    entitlement = resolve(account.tier, feature_id, is_extra=extra)
    suggestion = None
    if entitlement.reason is DenialReason.TIER_NOT_ALLOWED:
        suggestion = upgrade_suggestion(account.tier, feature_id)
    return EntitlementResponse(
        feature_id=feature_id,
        allowed=entitlement.allowed,
        credit_cost=entitlement.credit_cost,
        required_tier=entitlement.required_tier.label if entitlement.required_tier is not None else None,
        reason=entitlement.reason.value if entitlement.reason else None,
        message=entitlement.message,
        upgrade=suggestion,
    )


@router.post(
    "/{account_id}/features/{feature_id}/charge",
    response_model=ChargeResponse,
    summary="Charge for a feature",
)
async def charge_feature(
    account_id: str,
    feature_id: str,
    body: Optional[ChargeRequest] = Body(None),
    gateway: FeatureGateway = Depends(get_feature_gateway),
):
    """
    Check entitlement and debit the feature's cost in one step.

    - **402** insufficient credits, **403** tier too low, **409** same
      reference still in flight. A denied charge leaves the balance untouched.
    """
    body = body or ChargeRequest()
    result = await gateway.check_and_debit(account_id, feature_id, body.extra, body.reference_id)
    return ChargeResponse(
        feature_id=result.feature_id,
        allowed=result.allowed,
        cost=result.cost,
        new_balance=result.new_balance,
        reference_id=result.reference_id,
        replayed=result.replayed,
    )
