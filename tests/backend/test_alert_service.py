"""
Tests for AlertService.

These tests cover:
- Creation-time validation, tier limits and duplicates
- Pause / resume against the limit
- Persisted evaluation: edge re-arming, trigger history, dispatch
- Concurrent evaluations recording a fire once
- Sweep sharding
"""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
from bson import ObjectId

from creditcore.core.errors import (
    AlertConditionInvalid,
    AlertLimitReached,
    AlertNotFound,
    DuplicateAlert,
)
from creditcore.models.alert import AlertType
from creditcore.schemas.alert import AlertCreate
from creditcore.services.alert_service import AlertService, in_shard


@pytest.fixture
def dispatcher():
    return AsyncMock()


@pytest.fixture
def alert_service(mock_db, ledger, price_provider, dispatcher) -> AlertService:
    return AlertService(mock_db, price_provider, dispatcher=dispatcher, ledger=ledger)


def _alert(symbol="BTC", alert_type="price_above", target=49000.0) -> AlertCreate:
    return AlertCreate(symbol=symbol, alert_type=alert_type, target_value=target)


class TestCreateAlert:

    @pytest.mark.asyncio
    async def test_create_alert(self, alert_service, make_account, mock_db):
        account_id = await make_account()

        alert = await alert_service.create_alert(account_id, _alert(symbol="btc"))

        assert alert.symbol == "BTC"
        assert alert.alert_type is AlertType.PRICE_ABOVE
        assert alert.is_active is True
        assert alert.trigger_count == 0
        doc = await mock_db.alerts.find_one({"_id": ObjectId(alert.id)})
        assert doc["alert_type"] == "price_above"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("request_", [
        _alert(symbol="BTC-USD"),
        _alert(alert_type="price_sideways"),
        _alert(target=0),
        _alert(target=-5),
        _alert(target=20_000_000),
        _alert(alert_type="percentage_change", target=1500),
    ])
    async def test_invalid_definitions_rejected(self, alert_service, make_account, request_):
        account_id = await make_account()

        with pytest.raises(AlertConditionInvalid):
            await alert_service.create_alert(account_id, request_)

    @pytest.mark.asyncio
    async def test_free_tier_limit(self, alert_service, make_account):
        account_id = await make_account(tier="free")
        for target in (1, 2, 3):
            await alert_service.create_alert(account_id, _alert(target=target))

        with pytest.raises(AlertLimitReached, match="3 for Buddy plan"):
            await alert_service.create_alert(account_id, _alert(target=4))

    @pytest.mark.asyncio
    async def test_duplicate_active_alert_rejected(self, alert_service, make_account):
        account_id = await make_account()
        await alert_service.create_alert(account_id, _alert())

        with pytest.raises(DuplicateAlert):
            await alert_service.create_alert(account_id, _alert(symbol="btc"))

    @pytest.mark.asyncio
    async def test_paused_alert_frees_a_slot_until_resumed(self, alert_service, make_account):
        account_id = await make_account(tier="free")
        alerts = [await alert_service.create_alert(account_id, _alert(target=t)) for t in (1, 2, 3)]

        paused = await alert_service.set_active(alerts[0].id, account_id, False)
        assert paused.is_active is False
        await alert_service.create_alert(account_id, _alert(target=4))

        with pytest.raises(AlertLimitReached):
            await alert_service.set_active(alerts[0].id, account_id, True)

    @pytest.mark.asyncio
    async def test_delete_and_ownership(self, alert_service, make_account):
        owner = await make_account()
        other = await make_account()
        alert = await alert_service.create_alert(owner, _alert())

        with pytest.raises(AlertNotFound):
            await alert_service.delete_alert(alert.id, other)
        await alert_service.delete_alert(alert.id, owner)

        assert await alert_service.list_alerts(owner) == []
        with pytest.raises(AlertNotFound):
            await alert_service.get_alert("not-an-id", owner)


class TestEvaluateAlerts:

    @pytest.mark.asyncio
    async def test_fire_is_persisted_and_dispatched(self, alert_service, make_account, dispatcher):
        account_id = await make_account()
        alert = await alert_service.create_alert(account_id, _alert(target=49000))

        (decision,) = await alert_service.evaluate_alerts(account_id)

        assert decision.fired is True
        assert decision.message == "BTC crossed above 49000"
        stored = await alert_service.get_alert(alert.id, account_id)
        assert stored.trigger_count == 1
        assert stored.last_triggered_at is not None
        assert stored.last_observed_price == 50000
        assert stored.is_active is True

        triggers = await alert_service.list_triggers(account_id)
        assert len(triggers) == 1
        assert triggers[0]["alert_id"] == alert.id
        assert triggers[0]["observed_price"] == 50000
        dispatcher.dispatch.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_edge_rearms_after_crossing_back(self, alert_service, make_account, price_provider):
        account_id = await make_account()
        alert = await alert_service.create_alert(account_id, _alert(target=49000))

        fired = []
        for price in (50000, 51000, 48000, 50000):
            price_provider.set_price("BTC", price)
            (decision,) = await alert_service.evaluate_alerts(account_id)
            fired.append(decision.fired)

        assert fired == [True, False, False, True]
        assert (await alert_service.get_alert(alert.id, account_id)).trigger_count == 2

    @pytest.mark.asyncio
    async def test_resumed_alert_is_rearmed(self, alert_service, make_account, price_provider):
        account_id = await make_account()
        alert = await alert_service.create_alert(account_id, _alert(target=49000))
        (first,) = await alert_service.evaluate_alerts(account_id)
        assert first.fired is True

        paused = await alert_service.set_active(alert.id, account_id, False)
        assert paused.last_observed_price == 50000
        resumed = await alert_service.set_active(alert.id, account_id, True)
        assert resumed.last_observed_price is None

        price_provider.set_price("BTC", 51000)
        (decision,) = await alert_service.evaluate_alerts(account_id)

        assert decision.fired is True
        assert (await alert_service.get_alert(alert.id, account_id)).trigger_count == 2

    @pytest.mark.asyncio
    async def test_percentage_alert_suppressed_within_window(self, alert_service, make_account):
        account_id = await make_account()
        await alert_service.create_alert(account_id, _alert(alert_type="percentage_change", target=2))
        start = datetime(2026, 1, 1, tzinfo=timezone.utc)

        (first,) = await alert_service.evaluate_alerts(account_id, now=start)
        (second,) = await alert_service.evaluate_alerts(account_id, now=start + timedelta(hours=1))
        (third,) = await alert_service.evaluate_alerts(account_id, now=start + timedelta(hours=25))

        assert [first.fired, second.fired, third.fired] == [True, False, True]
        assert second.message == "Already triggered within the current window"

    @pytest.mark.asyncio
    async def test_unpriced_alert_keeps_state(self, alert_service, make_account):
        account_id = await make_account()
        alert = await alert_service.create_alert(account_id, _alert(symbol="XYZ", target=1))

        (decision,) = await alert_service.evaluate_alerts(account_id)

        assert decision.fired is False
        assert decision.message == "Price unavailable"
        stored = await alert_service.get_alert(alert.id, account_id)
        assert stored.last_observed_price is None
        assert stored.trigger_count == 0

    @pytest.mark.asyncio
    async def test_paused_alerts_not_evaluated(self, alert_service, make_account, price_provider):
        account_id = await make_account()
        alert = await alert_service.create_alert(account_id, _alert())
        await alert_service.set_active(alert.id, account_id, False)

        assert await alert_service.evaluate_alerts(account_id) == []
        assert price_provider.calls == []

    @pytest.mark.asyncio
    async def test_one_lookup_per_symbol(self, alert_service, make_account, price_provider):
        account_id = await make_account(tier="pro")
        await alert_service.create_alert(account_id, _alert(target=49000))
        await alert_service.create_alert(account_id, _alert(alert_type="price_below", target=60000))
        await alert_service.create_alert(account_id, _alert(symbol="ETH", target=100))

        decisions = await alert_service.evaluate_alerts(account_id)

        assert len(decisions) == 3
        assert sorted(price_provider.calls) == ["btc", "eth"]

    @pytest.mark.asyncio
    async def test_dispatch_failure_keeps_the_fire(self, alert_service, make_account, dispatcher):
        account_id = await make_account()
        alert = await alert_service.create_alert(account_id, _alert())
        dispatcher.dispatch.side_effect = RuntimeError("smtp down")

        (decision,) = await alert_service.evaluate_alerts(account_id)

        assert decision.fired is True
        assert (await alert_service.get_alert(alert.id, account_id)).trigger_count == 1
        assert len(await alert_service.list_triggers(account_id)) == 1

    @pytest.mark.asyncio
    async def test_concurrent_evaluations_fire_once(self, alert_service, make_account, dispatcher):
        account_id = await make_account()
        alert = await alert_service.create_alert(account_id, _alert())

        results = await asyncio.gather(
            alert_service.evaluate_alerts(account_id),
            alert_service.evaluate_alerts(account_id),
        )

        fired = [d.fired for (d,) in results]
        assert sorted(fired) == [False, True]
        assert (await alert_service.get_alert(alert.id, account_id)).trigger_count == 1
        assert len(await alert_service.list_triggers(account_id)) == 1
        dispatcher.dispatch.assert_awaited_once()


class TestSharding:

    def test_single_shard_takes_everything(self):
        assert in_shard(str(ObjectId()), 0, 1)

    def test_shards_partition_alert_ids(self):
        ids = [str(ObjectId()) for _ in range(20)]

        owners = [[s for s in range(3) if in_shard(alert_id, s, 3)] for alert_id in ids]

        assert all(len(o) == 1 for o in owners)

    @pytest.mark.asyncio
    async def test_evaluate_all_active_by_shard(self, alert_service, make_account):
        created = []
        for _ in range(3):
            account_id = await make_account(tier="pro")
            for target in (100, 200):
                created.append((await alert_service.create_alert(account_id, _alert(target=target))).id)

        shard_0 = await alert_service.evaluate_all_active(shard=0, shards=2)
        shard_1 = await alert_service.evaluate_all_active(shard=1, shards=2)

        seen = [d.alert_id for d in shard_0] + [d.alert_id for d in shard_1]
        assert sorted(seen) == sorted(created)
