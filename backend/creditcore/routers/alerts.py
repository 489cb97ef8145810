"""
Alerts router for alert management and on-demand evaluation.
"""
from dataclasses import asdict

from fastapi import APIRouter, Depends, Query, status

from creditcore.dependencies.services import get_alert_service
from creditcore.models.alert import Alert
from creditcore.schemas.alert import (
    AlertCreate,
    AlertResponse,
    AlertUpdate,
    TriggerDecisionResponse,
)
from creditcore.services.alert_service import AlertService

router = APIRouter(prefix="/accounts/{account_id}/alerts", tags=["Alerts"])


def _alert_response(alert: Alert) -> AlertResponse:
    return AlertResponse(**alert.model_dump())


@router.get(
    "",
    response_model=list[AlertResponse],
    summary="List alerts",
)
async def list_alerts(
    account_id: str,
    active_only: bool = Query(False),
    alert_service: AlertService = Depends(get_alert_service),
):
    return [_alert_response(a) for a in await alert_service.list_alerts(account_id, active_only)]


@router.post(
    "",
    response_model=AlertResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create alert",
)
async def create_alert(
    account_id: str,
    body: AlertCreate,
    alert_service: AlertService = Depends(get_alert_service),
):
    """
    Create a price or percentage-change alert.

    - **symbol**: 1-10 letters or digits
    - **alert_type**: price_above, price_below or percentage_change
    - **target_value**: Positive price (max 10,000,000) or percentage (max 1000)
    """
    return _alert_response(await alert_service.create_alert(account_id, body))


@router.post(
    "/evaluate",
    response_model=list[TriggerDecisionResponse],
    summary="Evaluate alerts now",
)
async def evaluate_alerts(
    account_id: str,
    alert_service: AlertService = Depends(get_alert_service),
):
    """Evaluate every active alert of the account against fresh prices."""
    decisions = await alert_service.evaluate_alerts(account_id)
    return [TriggerDecisionResponse(**asdict(d)) for d in decisions]


@router.get(
    "/triggers",
    summary="Recent alert fires",
)
async def list_triggers(
    account_id: str,
    limit: int = Query(50, ge=1, le=200),
    alert_service: AlertService = Depends(get_alert_service),
):
    return await alert_service.list_triggers(account_id, limit)


@router.patch(
    "/{alert_id}",
    response_model=AlertResponse,
    summary="Pause or resume alert",
)
async def update_alert(
    account_id: str,
    alert_id: str,
    body: AlertUpdate,
    alert_service: AlertService = Depends(get_alert_service),
):
    return _alert_response(await alert_service.set_active(alert_id, account_id, body.is_active))


@router.delete(
    "/{alert_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete alert",
)
async def delete_alert(
    account_id: str,
    alert_id: str,
    alert_service: AlertService = Depends(get_alert_service),
):
    await alert_service.delete_alert(alert_id, account_id)
