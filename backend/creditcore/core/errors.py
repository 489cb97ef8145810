"""
Domain error taxonomy and its mapping onto HTTP responses.

Every error raised by the ledger, the entitlement checks and the portfolio and
alert services derives from CoreError. Routers never build HTTPException for
these by hand: the handler registered in main.py turns them into JSON.
"""
from typing import Any, Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse


class CoreError(Exception):
    """Base class for errors that carry their own HTTP semantics."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "internal_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message, "code": self.code}


# ==================== Entitlements ====================


class TierNotAllowed(CoreError):
    """Account tier is below the feature's required tier."""

    status_code = status.HTTP_403_FORBIDDEN
    code = "tier_not_allowed"

    def __init__(self, feature_id: str, required_tier: str):
        super().__init__(f"{feature_id} requires {required_tier.capitalize()} tier or higher")
        self.feature_id = feature_id
        self.required_tier = required_tier


class UnknownFeature(CoreError):
    """Feature identifier is not in the cost table."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "unknown_feature"

    def __init__(self, feature_id: str):
        super().__init__(f"Unknown feature: {feature_id}")
        self.feature_id = feature_id


# ==================== Ledger ====================


class AccountNotFound(CoreError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "account_not_found"

    def __init__(self, account_id: str):
        super().__init__(f"Account {account_id} not found")
        self.account_id = account_id


class AccountExists(CoreError):
    status_code = status.HTTP_409_CONFLICT
    code = "account_exists"

    def __init__(self, account_id: str):
        super().__init__(f"Account {account_id} already exists")
        self.account_id = account_id


class InsufficientCredits(CoreError):
    status_code = status.HTTP_402_PAYMENT_REQUIRED
    code = "insufficient_credits"

    def __init__(self, required: int, available: int):
        super().__init__(f"Insufficient credits: need {required}, have {available}")
        self.required = required
        self.available = available


class DuplicateCharge(CoreError):
    """
    The reference is still in flight, or was already used for a different
    account, reason or amount.
    """

    status_code = status.HTTP_409_CONFLICT
    code = "duplicate_charge"

    def __init__(self, reference_id: str, detail: Optional[str] = None):
        super().__init__(detail or f"A charge with reference {reference_id} is already in progress")
        self.reference_id = reference_id


class InvalidAmount(CoreError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "invalid_amount"


# ==================== Portfolios ====================


class PortfolioNotFound(CoreError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "portfolio_not_found"

    def __init__(self, portfolio_id: str):
        super().__init__("Portfolio not found")
        self.portfolio_id = portfolio_id


class HoldingNotFound(CoreError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "holding_not_found"

    def __init__(self, holding_id: str):
        super().__init__("Holding not found")
        self.holding_id = holding_id


class PortfolioLimitReached(CoreError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "portfolio_limit_reached"


class InvalidHolding(CoreError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "invalid_holding"


# ==================== Alerts ====================


class AlertConditionInvalid(CoreError):
    """Malformed alert definition, rejected at creation time."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "alert_condition_invalid"


class AlertLimitReached(CoreError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "alert_limit_reached"


class DuplicateAlert(CoreError):
    status_code = status.HTTP_409_CONFLICT
    code = "duplicate_alert"


class AlertNotFound(CoreError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "alert_not_found"

    def __init__(self, alert_id: str):
        super().__init__("Alert not found")
        self.alert_id = alert_id


def error_to_http(exc: Exception) -> tuple[int, dict[str, Any]]:
    """
    Map an exception to (status_code, body) for JSON responses.

    Anything that is not a CoreError becomes a generic 500 so that upstream
    provider details never reach the client.
    """
    if isinstance(exc, CoreError):
        return exc.status_code, exc.to_dict()
    return status.HTTP_500_INTERNAL_SERVER_ERROR, {
        "detail": "Internal server error",
        "code": CoreError.code,
    }


async def core_error_handler(request: Optional[Request], exc: CoreError) -> JSONResponse:
    """FastAPI exception handler for CoreError."""
    status_code, body = error_to_http(exc)
    return JSONResponse(status_code=status_code, content=body)
