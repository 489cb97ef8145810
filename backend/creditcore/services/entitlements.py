"""
Entitlement resolver: tier plans and the per-feature credit cost table.

Everything here is pure. The resolver answers "may this tier use the feature
and what does it cost"; it never touches a balance. Adding a feature means
adding one row to FEATURE_COSTS.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional

from creditcore.core.errors import TierNotAllowed, UnknownFeature
from creditcore.models.account import Tier

UNLIMITED = -1


@dataclass(frozen=True)
class TierPlan:
    """Static limits attached to a subscription tier."""
    display_name: str
    monthly_credits: int
    max_portfolios: int
    max_active_alerts: int
    price: float


TIER_PLANS: Mapping[Tier, TierPlan] = {
    Tier.FREE: TierPlan("Buddy", monthly_credits=100, max_portfolios=2, max_active_alerts=3, price=0.0),
    Tier.PRO: TierPlan("Professor", monthly_credits=500, max_portfolios=10, max_active_alerts=10, price=12.99),
    Tier.ELITE: TierPlan("Trader", monthly_credits=2000, max_portfolios=UNLIMITED, max_active_alerts=UNLIMITED, price=24.99),
}


@dataclass(frozen=True)
class FeatureCost:
    """
    One row of the cost table.

    extra_credit_cost is set for features a tier includes as a subscription
    benefit (credit_cost 0) but which can be bought again as an extra unit.
    """
    feature_id: str
    required_tier: Tier
    credit_cost: int
    extra_credit_cost: Optional[int] = None

    def cost(self, is_extra: bool = False) -> int:
        if is_extra and self.extra_credit_cost is not None:
            return self.extra_credit_cost
        return self.credit_cost


def _table(*rows: FeatureCost) -> Mapping[str, FeatureCost]:
    return {row.feature_id: row for row in rows}


FEATURE_COSTS: Mapping[str, FeatureCost] = _table(
    # AI chat personas
    FeatureCost("ai_chat_buddy", Tier.FREE, 1),
    FeatureCost("ai_chat_professor", Tier.PRO, 2),
    FeatureCost("ai_chat_trader", Tier.ELITE, 3),
    # Tools
    FeatureCost("scam_check", Tier.FREE, 5),
    FeatureCost("whale_tracker_standard", Tier.PRO, 5),
    FeatureCost("whale_tracker_detailed", Tier.PRO, 10),
    FeatureCost("narrative_deep_scan", Tier.PRO, 40),
    FeatureCost("dca_plan", Tier.PRO, 5),
    FeatureCost("portfolio_allocator", Tier.PRO, 20),
    FeatureCost("portfolio_analytics", Tier.PRO, 6),
    FeatureCost("altcoin_detector", Tier.ELITE, 5),
    FeatureCost("whale_copy_signals", Tier.ELITE, 5),
    FeatureCost("smart_alerts", Tier.ELITE, 0),
    # Signal packs
    FeatureCost("signals_daily_pack", Tier.PRO, 15),
    FeatureCost("signals_weekly_pack", Tier.PRO, 10),
    FeatureCost("signals_flash_pack", Tier.ELITE, 20),
    FeatureCost("signals_premium_pack", Tier.ELITE, 8),
    # Reports: included in the subscription, extra copies cost credits
    FeatureCost("weekly_pro_report", Tier.PRO, 0, extra_credit_cost=5),
    FeatureCost("monthly_elite_report", Tier.ELITE, 0, extra_credit_cost=10),
    FeatureCost("ai_deep_dive_report", Tier.PRO, 10),
)


class DenialReason(str, Enum):
    TIER_NOT_ALLOWED = "tier_not_allowed"
    UNKNOWN_FEATURE = "unknown_feature"


@dataclass(frozen=True)
class Entitlement:
    """Outcome of resolve()."""
    feature_id: str
    allowed: bool
    credit_cost: int = 0
    reason: Optional[DenialReason] = None
    required_tier: Optional[Tier] = None

    @property
    def message(self) -> Optional[str]:
        if self.reason is DenialReason.UNKNOWN_FEATURE:
            return f"Unknown feature: {self.feature_id}"
        if self.reason is DenialReason.TIER_NOT_ALLOWED:
            return f"requires {self.required_tier.label.capitalize()} tier"
        return None

    def raise_for_denial(self) -> None:
        """Raise the matching error if the entitlement is a denial."""
        if self.reason is DenialReason.UNKNOWN_FEATURE:
            raise UnknownFeature(self.feature_id)
        if self.reason is DenialReason.TIER_NOT_ALLOWED:
            raise TierNotAllowed(self.feature_id, self.required_tier.label)


def resolve(
    tier: Tier | str,
    feature_id: str,
    is_extra: bool = False,
    table: Mapping[str, FeatureCost] = FEATURE_COSTS,
) -> Entitlement:
    """
    Decide whether a tier may invoke a feature and what it costs.

    Args:
        tier: Account tier (strings are parsed, unknown ones count as free)
        feature_id: Row key in the cost table
        is_extra: Request an extra unit beyond what the subscription includes
        table: Cost table to resolve against

    Returns:
        Entitlement; denials carry the reason and cost 0
    """
    row = table.get(feature_id)
    if row is None:
        return Entitlement(feature_id, allowed=False, reason=DenialReason.UNKNOWN_FEATURE)

    tier = Tier.parse(tier)
    if tier < row.required_tier:
        return Entitlement(
            feature_id,
            allowed=False,
            reason=DenialReason.TIER_NOT_ALLOWED,
            required_tier=row.required_tier,
        )

    return Entitlement(
        feature_id,
        allowed=True,
        credit_cost=row.cost(is_extra),
        required_tier=row.required_tier,
    )


# ==================== Tier plan helpers ====================


def plan_for(tier: Tier | str) -> TierPlan:
    return TIER_PLANS[Tier.parse(tier)]


def _within_limit(limit: int, current: int) -> bool:
    return limit == UNLIMITED or current < limit


def can_create_portfolio(tier: Tier | str, current_count: int) -> bool:
    return _within_limit(plan_for(tier).max_portfolios, current_count)


def can_create_alert(tier: Tier | str, active_count: int) -> bool:
    return _within_limit(plan_for(tier).max_active_alerts, active_count)


def features_for(tier: Tier | str, table: Mapping[str, FeatureCost] = FEATURE_COSTS) -> list[str]:
    """Feature ids the tier is entitled to, in table order."""
    tier = Tier.parse(tier)
    return [row.feature_id for row in table.values() if tier >= row.required_tier]


def upgrade_suggestion(
    tier: Tier | str,
    feature_id: str,
    table: Mapping[str, FeatureCost] = FEATURE_COSTS,
) -> Optional[dict]:
    """
    Suggest the tier to upgrade to for a feature, or None if already entitled.
    """
    row = table.get(feature_id)
    if row is None:
        raise UnknownFeature(feature_id)
    tier = Tier.parse(tier)
    if tier >= row.required_tier:
        return None
    current = set(features_for(tier, table))
    return {
        "required_tier": row.required_tier.label,
        "price": TIER_PLANS[row.required_tier].price,
        "additional_features": [f for f in features_for(row.required_tier, table) if f not in current],
    }
