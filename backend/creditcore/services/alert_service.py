"""
Alert service: alert CRUD and persisted evaluation.

The alert engine decides; this service loads alerts, fetches one snapshot per
distinct symbol, evaluates and stores the outcome. A fire is stored with a
compare-and-swap on trigger_count, so when two evaluations race on the same
alert only one of them records (and dispatches) the fire.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from creditcore.config import get_settings
from creditcore.core.errors import AlertLimitReached, AlertNotFound, DuplicateAlert
from creditcore.database.databases import core_db
from creditcore.models.alert import Alert
from creditcore.schemas.alert import AlertCreate
from creditcore.services.alert_engine import (
    TriggerDecision,
    evaluate,
    validate_alert_definition,
)
from creditcore.services.entitlements import can_create_alert, plan_for
from creditcore.services.ledger import CreditLedger
from creditcore.services.notifications import LoggingDispatcher, NotificationDispatcher
from creditcore.services.price_snapshots import (
    PriceSnapshotProvider,
    fetch_snapshots,
    normalize_symbol,
)

logger = logging.getLogger(__name__)


def _object_id(value: str) -> Optional[ObjectId]:
    return ObjectId(value) if ObjectId.is_valid(value) else None


def in_shard(alert_id: str, shard: int, shards: int) -> bool:
    """Stable assignment of an alert to one of N sweep shards."""
    if shards <= 1:
        return True
    return int(alert_id, 16) % shards == shard


class AlertService:
    """Service for alert operations."""

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        provider: Optional[PriceSnapshotProvider] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        ledger: Optional[CreditLedger] = None,
        window: Optional[timedelta] = None,
    ):
        self.db = db
        self.alerts = db[core_db.Collections.ALERTS]
        self.triggers = db[core_db.Collections.ALERT_TRIGGERS]
        self.provider = provider
        self.dispatcher = dispatcher or LoggingDispatcher()
        self.ledger = ledger or CreditLedger(db)
        self.window = window or timedelta(hours=get_settings().percentage_alert_window_hours)

    # ==================== Alert CRUD ====================

    async def _check_limit(self, account_id: str) -> None:
        account = await self.ledger.get_account(account_id)
        active = await self.alerts.count_documents({"account_id": account_id, "is_active": True})
        if not can_create_alert(account.tier, active):
            plan = plan_for(account.tier)
            raise AlertLimitReached(
                f"Alert limit reached ({plan.max_active_alerts} for {plan.display_name} plan)"
            )

    async def create_alert(self, account_id: str, request: AlertCreate) -> Alert:
        """
        Create an alert.

        Raises:
            AlertConditionInvalid: Malformed symbol, type or target
            AlertLimitReached: Tier's active-alert limit reached
            DuplicateAlert: Same active alert already exists
        """
        alert_type = validate_alert_definition(request.symbol, request.alert_type, request.target_value)
        symbol = request.symbol.strip().upper()
        await self._check_limit(account_id)

        existing = await self.alerts.find_one({
            "account_id": account_id,
            "symbol": symbol,
            "alert_type": alert_type.value,
            "target_value": float(request.target_value),
            "is_active": True,
        })
        if existing:
            raise DuplicateAlert("An identical active alert already exists")

        alert = Alert(
            account_id=account_id,
            symbol=symbol,
            alert_type=alert_type,
            target_value=float(request.target_value),
        )
        doc = alert.model_dump(exclude={"id"})
        doc["alert_type"] = alert_type.value
        result = await self.alerts.insert_one(doc)
        logger.info(f"Created {alert_type.value} alert on {symbol} for {account_id}")
        return alert.model_copy(update={"id": str(result.inserted_id)})

    async def get_alert(self, alert_id: str, account_id: str) -> Alert:
        oid = _object_id(alert_id)
        doc = await self.alerts.find_one({"_id": oid, "account_id": account_id}) if oid else None
        if not doc:
            raise AlertNotFound(alert_id)
        return Alert(**doc)

    async def list_alerts(self, account_id: str, active_only: bool = False) -> list[Alert]:
        query = {"account_id": account_id}
        if active_only:
            query["is_active"] = True
        cursor = self.alerts.find(query).sort("created_at", -1)
        return [Alert(**doc) for doc in await cursor.to_list(length=None)]

    async def set_active(self, alert_id: str, account_id: str, is_active: bool) -> Alert:
        """
        Pause or resume an alert. Resuming counts against the tier limit and
        forgets the last observed price, so the first evaluation after a
        resume treats the alert as freshly armed.
        """
        alert = await self.get_alert(alert_id, account_id)
        update: dict[str, Any] = {"is_active": is_active}
        if is_active and not alert.is_active:
            await self._check_limit(account_id)
            update["last_observed_price"] = None
        doc = await self.alerts.find_one_and_update(
            {"_id": ObjectId(alert.id)},
            {"$set": update},
            return_document=ReturnDocument.AFTER,
        )
        if not doc:
            raise AlertNotFound(alert_id)
        return Alert(**doc)

    async def delete_alert(self, alert_id: str, account_id: str) -> None:
        oid = _object_id(alert_id)
        result = await self.alerts.delete_one({"_id": oid, "account_id": account_id}) if oid else None
        if result is None or result.deleted_count == 0:
            raise AlertNotFound(alert_id)

    # ==================== Evaluation ====================

    async def evaluate_alerts(self, account_id: str, now: Optional[datetime] = None) -> list[TriggerDecision]:
        """Evaluate every active alert of one account."""
        cursor = self.alerts.find({"account_id": account_id, "is_active": True}).sort("_id", 1)
        alerts = [Alert(**doc) for doc in await cursor.to_list(length=None)]
        return await self._evaluate(alerts, now)

    async def evaluate_all_active(
        self, shard: int = 0, shards: int = 1, now: Optional[datetime] = None
    ) -> list[TriggerDecision]:
        """Evaluate every active alert in this shard (batch sweep)."""
        cursor = self.alerts.find({"is_active": True}).sort("_id", 1)
        alerts = [
            Alert(**doc)
            for doc in await cursor.to_list(length=None)
            if in_shard(str(doc["_id"]), shard, shards)
        ]
        return await self._evaluate(alerts, now)

    async def _evaluate(self, alerts: list[Alert], now: Optional[datetime]) -> list[TriggerDecision]:
        if not alerts:
            return []
        now = now or datetime.now(timezone.utc)

        snapshots = {}
        if self.provider is not None:
            snapshots = await fetch_snapshots(self.provider, [a.symbol for a in alerts])

        decisions = []
        for alert in alerts:
            decision = evaluate(alert, snapshots.get(normalize_symbol(alert.symbol)), now=now, window=self.window)
            decisions.append(await self._persist(alert, decision))

        fired = sum(1 for d in decisions if d.fired)
        if fired:
            logger.info(f"Evaluated {len(decisions)} alerts, {fired} fired")
        return decisions

    async def _persist(self, alert: Alert, decision: TriggerDecision) -> TriggerDecision:
        oid = ObjectId(alert.id)

        if not decision.fired:
            if decision.observed_price is not None:
                await self.alerts.update_one(
                    {"_id": oid},
                    {"$set": {"last_observed_price": decision.observed_price}},
                )
            return decision

        doc = await self.alerts.find_one_and_update(
            {"_id": oid, "trigger_count": alert.trigger_count, "is_active": True},
            {
                "$inc": {"trigger_count": 1},
                "$set": {
                    "last_triggered_at": decision.triggered_at,
                    "last_observed_price": decision.observed_price,
                },
            },
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            logger.info(f"Alert {alert.id} fire already recorded by a concurrent evaluation")
            return TriggerDecision(
                alert.id,
                decision.symbol,
                fired=False,
                message="Already triggered by a concurrent evaluation",
                observed_price=decision.observed_price,
            )

        await self.triggers.insert_one({
            "alert_id": alert.id,
            "account_id": alert.account_id,
            "symbol": decision.symbol,
            "alert_type": alert.alert_type.value,
            "target_value": alert.target_value,
            "observed_value": decision.observed_value,
            "observed_price": decision.observed_price,
            "message": decision.message,
            "triggered_at": decision.triggered_at,
        })
        try:
            await self.dispatcher.dispatch(alert, decision)
        except Exception:
            # The fire is recorded in alert_triggers; delivery can be retried from there
            logger.exception(f"Dispatch failed for alert {alert.id}")
        return decision

    async def list_triggers(self, account_id: str, limit: int = 50) -> list[dict]:
        """Most recent fires for an account."""
        cursor = self.triggers.find({"account_id": account_id}, {"_id": 0}).sort("triggered_at", -1).limit(limit)
        return await cursor.to_list(length=limit)
