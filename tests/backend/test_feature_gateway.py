"""
Tests for the feature gateway.

These tests cover:
- Entitlement check before any debit
- check_and_debit outcomes and idempotent replay
- run_feature: commit on success, release on failure or cancellation
"""

import asyncio

import pytest

from creditcore.core.errors import (
    AccountNotFound,
    DuplicateCharge,
    InsufficientCredits,
    TierNotAllowed,
    UnknownFeature,
)


class TestCheckAndDebit:
    """Tests for FeatureGateway.check_and_debit()."""

    @pytest.mark.asyncio
    async def test_tier_denial_leaves_balance_untouched(self, gateway, ledger, make_account, mock_db):
        account_id = await make_account(tier="free", balance=10)

        with pytest.raises(TierNotAllowed) as exc_info:
            await gateway.check_and_debit(account_id, "whale_tracker_standard")

        assert exc_info.value.required_tier == "pro"
        assert await ledger.get_balance(account_id) == 10
        assert await mock_db.credit_transactions.count_documents({}) == 0

    @pytest.mark.asyncio
    async def test_allowed_feature_debits_table_cost(self, gateway, ledger, make_account):
        account_id = await make_account(tier="pro", balance=10)

        result = await gateway.check_and_debit(account_id, "whale_tracker_detailed")

        assert result.allowed is True
        assert result.cost == 10
        assert result.new_balance == 0
        with pytest.raises(InsufficientCredits):
            await gateway.check_and_debit(account_id, "whale_tracker_detailed")
        assert await ledger.get_balance(account_id) == 0

    @pytest.mark.asyncio
    async def test_unknown_feature_rejected(self, gateway, make_account):
        account_id = await make_account(tier="elite", balance=10)

        with pytest.raises(UnknownFeature):
            await gateway.check_and_debit(account_id, "teleporter")

    @pytest.mark.asyncio
    async def test_unknown_account_rejected(self, gateway):
        with pytest.raises(AccountNotFound):
            await gateway.check_and_debit("ghost", "scam_check")

    @pytest.mark.asyncio
    async def test_extra_report_costs_credits(self, gateway, make_account, mock_db):
        account_id = await make_account(tier="pro", balance=20)

        included = await gateway.check_and_debit(account_id, "weekly_pro_report")
        extra = await gateway.check_and_debit(account_id, "weekly_pro_report", extra=True)

        assert included.cost == 0
        assert extra.cost == 5
        assert extra.new_balance == 15
        assert await mock_db.credit_transactions.count_documents({}) == 1

    @pytest.mark.asyncio
    async def test_reference_replay_charges_once(self, gateway, ledger, make_account):
        account_id = await make_account(tier="free", balance=20)

        first = await gateway.check_and_debit(account_id, "scam_check", reference_id="chk-1")
        second = await gateway.check_and_debit(account_id, "scam_check", reference_id="chk-1")

        assert first.replayed is False
        assert second.replayed is True
        assert second.new_balance == first.new_balance == 15
        assert await ledger.get_balance(account_id) == 15

    @pytest.mark.asyncio
    async def test_reference_from_cheaper_feature_cannot_pay_for_another(self, gateway, ledger, make_account):
        account_id = await make_account(tier="pro", balance=50)

        await gateway.check_and_debit(account_id, "scam_check", reference_id="chk-2")
        with pytest.raises(DuplicateCharge):
            await gateway.check_and_debit(account_id, "narrative_deep_scan", reference_id="chk-2")

        assert await ledger.get_balance(account_id) == 45
        assert await ledger.reconstruct_balance(account_id) == -5

    @pytest.mark.asyncio
    async def test_replay_reports_the_charged_cost(self, gateway, make_account):
        account_id = await make_account(tier="pro", balance=50)

        first = await gateway.check_and_debit(account_id, "weekly_pro_report", extra=True, reference_id="rep-1")
        second = await gateway.check_and_debit(account_id, "weekly_pro_report", extra=True, reference_id="rep-1")

        assert first.cost == second.cost == 5
        assert second.replayed is True


class TestRunFeature:
    """Tests for FeatureGateway.run_feature()."""

    @pytest.mark.asyncio
    async def test_successful_work_is_charged(self, gateway, ledger, make_account):
        account_id = await make_account(tier="pro", balance=50)

        async def work():
            return {"plan": "buy weekly"}

        outcome, charge = await gateway.run_feature(account_id, "dca_plan", work)

        assert outcome == {"plan": "buy weekly"}
        assert charge.cost == 5
        assert await ledger.get_balance(account_id) == 45

    @pytest.mark.asyncio
    async def test_failed_work_releases_credits(self, gateway, ledger, make_account, mock_db):
        account_id = await make_account(tier="pro", balance=50)

        async def work():
            raise RuntimeError("model unavailable")

        with pytest.raises(RuntimeError, match="model unavailable"):
            await gateway.run_feature(account_id, "narrative_deep_scan", work)

        assert await ledger.get_balance(account_id) == 50
        assert await mock_db.credit_transactions.count_documents({}) == 0
        assert await mock_db.credit_reservations.count_documents({}) == 0

    @pytest.mark.asyncio
    async def test_cancelled_work_releases_credits(self, gateway, ledger, make_account):
        account_id = await make_account(tier="pro", balance=50)
        started = asyncio.Event()

        async def work():
            started.set()
            await asyncio.sleep(10)

        task = asyncio.create_task(gateway.run_feature(account_id, "narrative_deep_scan", work))
        await started.wait()
        assert await ledger.get_balance(account_id) == 10

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert await ledger.get_balance(account_id) == 50

    @pytest.mark.asyncio
    async def test_denied_feature_never_runs_work(self, gateway, make_account):
        account_id = await make_account(tier="free", balance=50)
        ran = []

        async def work():
            ran.append(True)

        with pytest.raises(TierNotAllowed):
            await gateway.run_feature(account_id, "portfolio_analytics", work)

        assert ran == []

    @pytest.mark.asyncio
    async def test_insufficient_credits_never_runs_work(self, gateway, make_account):
        account_id = await make_account(tier="pro", balance=3)
        ran = []

        async def work():
            ran.append(True)

        with pytest.raises(InsufficientCredits):
            await gateway.run_feature(account_id, "portfolio_analytics", work)

        assert ran == []

    @pytest.mark.asyncio
    async def test_reused_reference_never_runs_work(self, gateway, ledger, make_account):
        account_id = await make_account(tier="pro", balance=50)
        await gateway.check_and_debit(account_id, "scam_check", reference_id="chk-3")
        ran = []

        async def work():
            ran.append(True)

        with pytest.raises(DuplicateCharge):
            await gateway.run_feature(account_id, "narrative_deep_scan", work, reference_id="chk-3")

        assert ran == []
        assert await ledger.get_balance(account_id) == 45
