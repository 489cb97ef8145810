"""
Alert evaluation engine.

Decides, from one price snapshot, whether an alert has newly fired. Pure: the
caller persists the resulting state and hands fired decisions to the
notification dispatcher.

State per alert: Active -> Fired -> (Active | Deactivated). Price alerts are
edge-triggered: they fire once per crossing, using last_observed_price to
know which side of the target the previous evaluation saw. Percentage-change
alerts are level-based over a rolling window, so a fire is suppressed until
the window since last_triggered_at has elapsed. The engine never deactivates
an alert; only the user does.
"""
import math
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Mapping, Optional

from creditcore.core.errors import AlertConditionInvalid
from creditcore.models.alert import Alert, AlertType
from creditcore.services.price_snapshots import PriceSnapshot, SnapshotResult

SYMBOL_PATTERN = re.compile(r"^[A-Z0-9]{1,10}$")
MAX_PERCENTAGE_TARGET = 1000.0
MAX_PRICE_TARGET = 10_000_000.0
DEFAULT_WINDOW = timedelta(hours=24)


class TriggerMode(str, Enum):
    EDGE = "edge"
    WINDOW = "window"


@dataclass(frozen=True)
class AlertCondition:
    """One row of the condition table."""
    mode: TriggerMode
    # (snapshot, target) -> observed value if the condition holds, else None
    observe: Callable[[PriceSnapshot, float], Optional[float]]
    # (observed price, target) -> True if the previous observation was armed
    armed: Optional[Callable[[float, float], bool]]
    message: str
    max_target: float


def _above(snapshot: PriceSnapshot, target: float) -> Optional[float]:
    return snapshot.price if snapshot.price > target else None


def _below(snapshot: PriceSnapshot, target: float) -> Optional[float]:
    return snapshot.price if snapshot.price < target else None


def _moved(snapshot: PriceSnapshot, target: float) -> Optional[float]:
    change = snapshot.change_24h_percent
    if change is None or not math.isfinite(change):
        return None
    return change if abs(change) >= target else None


ALERT_CONDITIONS: Mapping[AlertType, AlertCondition] = {
    AlertType.PRICE_ABOVE: AlertCondition(
        mode=TriggerMode.EDGE,
        observe=_above,
        armed=lambda previous, target: previous <= target,
        message="{symbol} crossed above {target}",
        max_target=MAX_PRICE_TARGET,
    ),
    AlertType.PRICE_BELOW: AlertCondition(
        mode=TriggerMode.EDGE,
        observe=_below,
        armed=lambda previous, target: previous >= target,
        message="{symbol} crossed below {target}",
        max_target=MAX_PRICE_TARGET,
    ),
    AlertType.PERCENTAGE_CHANGE: AlertCondition(
        mode=TriggerMode.WINDOW,
        observe=_moved,
        armed=None,
        message="{symbol} moved {observed:+.2f}% in 24h (threshold {target}%)",
        max_target=MAX_PERCENTAGE_TARGET,
    ),
}


@dataclass(frozen=True)
class TriggerDecision:
    """Result of evaluating one alert against one snapshot."""
    alert_id: Optional[str]
    symbol: str
    fired: bool
    message: str
    observed_value: Optional[float] = None
    observed_price: Optional[float] = None
    triggered_at: Optional[datetime] = None


def _format_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def _as_utc(value: datetime) -> datetime:
    # MongoDB hands back naive datetimes
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def validate_alert_definition(symbol: str, alert_type: AlertType | str, target_value: float) -> AlertType:
    """
    Reject malformed alert definitions at creation time.

    Returns:
        The parsed AlertType

    Raises:
        AlertConditionInvalid
    """
    if not symbol or not SYMBOL_PATTERN.match(symbol.strip().upper()):
        raise AlertConditionInvalid(
            "Invalid symbol format. Use letters and numbers only (1-10 characters)"
        )
    try:
        alert_type = AlertType(alert_type)
    except ValueError:
        valid = ", ".join(t.value for t in AlertType)
        raise AlertConditionInvalid(f"Invalid alert type. Must be one of: {valid}")

    try:
        target = float(target_value)
    except (TypeError, ValueError):
        raise AlertConditionInvalid("Target value must be a number")
    if not math.isfinite(target) or target <= 0:
        raise AlertConditionInvalid("Target value must be a positive number greater than 0")

    condition = ALERT_CONDITIONS[alert_type]
    if target > condition.max_target:
        if alert_type is AlertType.PERCENTAGE_CHANGE:
            raise AlertConditionInvalid("Percentage change cannot exceed 1000%")
        raise AlertConditionInvalid("Price target cannot exceed $10,000,000")
    return alert_type


def evaluate(
    alert: Alert,
    snapshot: Optional[SnapshotResult],
    now: Optional[datetime] = None,
    window: timedelta = DEFAULT_WINDOW,
) -> TriggerDecision:
    """
    Evaluate one alert.

    Args:
        alert: Alert with its current trigger state
        snapshot: Fresh lookup result for the alert's symbol
        now: Evaluation time (defaults to now)
        window: Suppression window for percentage-change alerts

    Returns:
        TriggerDecision. observed_price carries the price to remember for the
        next edge check (None when no price was available).
    """
    now = now or datetime.now(timezone.utc)
    symbol = alert.symbol.upper()
    target = alert.target_value

    if not alert.is_active:
        return TriggerDecision(alert.id, symbol, fired=False, message="Alert is inactive")

    if not isinstance(snapshot, PriceSnapshot) or not math.isfinite(snapshot.price):
        return TriggerDecision(alert.id, symbol, fired=False, message="Price unavailable")

    condition = ALERT_CONDITIONS[AlertType(alert.alert_type)]
    observed = condition.observe(snapshot, target)

    def hold(message: str) -> TriggerDecision:
        return TriggerDecision(
            alert.id, symbol, fired=False, message=message, observed_price=snapshot.price
        )

    if observed is None:
        return hold("Condition not met")

    if condition.mode is TriggerMode.EDGE:
        previous = alert.last_observed_price
        if previous is not None and not condition.armed(previous, target):
            return hold("Condition still met since last trigger")
    elif alert.last_triggered_at is not None:
        if now - _as_utc(alert.last_triggered_at) < window:
            return hold("Already triggered within the current window")

    message = condition.message.format(
        symbol=symbol,
        target=_format_number(target),
        observed=observed,
    )
    return TriggerDecision(
        alert.id,
        symbol,
        fired=True,
        message=message,
        observed_value=observed,
        observed_price=snapshot.price,
        triggered_at=now,
    )


def apply_decision(alert: Alert, decision: TriggerDecision) -> Alert:
    """Next alert state after a decision (a copy; the input is untouched)."""
    update: dict = {}
    if decision.observed_price is not None:
        update["last_observed_price"] = decision.observed_price
    if decision.fired:
        update["trigger_count"] = alert.trigger_count + 1
        update["last_triggered_at"] = decision.triggered_at
    return alert.model_copy(update=update)
