"""
Hand-off point between the alert engine and notification delivery.

Delivery itself (email, push, retries) lives outside this package; the
dispatcher only receives fired decisions with the alert they belong to.
"""
import logging
from typing import Protocol

from creditcore.models.alert import Alert
from creditcore.services.alert_engine import TriggerDecision

logger = logging.getLogger(__name__)


class NotificationDispatcher(Protocol):
    async def dispatch(self, alert: Alert, decision: TriggerDecision) -> None:
        ...


class LoggingDispatcher:
    """Default dispatcher: records the hand-off in the log."""

    async def dispatch(self, alert: Alert, decision: TriggerDecision) -> None:
        logger.info(f"Alert {alert.id} for account {alert.account_id} fired: {decision.message}")
