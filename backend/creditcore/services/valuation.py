"""
Valuation engine.

Turns holdings plus already-fetched price snapshots into P&L, allocation and
ranking metrics. Pure: no I/O, no clock reads unless as_of is omitted.

Price resolution per holding: live snapshot -> stored current_price ->
purchase_price. A failed lookup only lowers that holding's data quality; the
portfolio computation itself cannot fail on it.
"""
import math
from datetime import datetime, timezone
from typing import Mapping, Optional, Sequence

from creditcore.models.portfolio import Holding
from creditcore.schemas.portfolio import (
    HoldingMetrics,
    Performer,
    PortfolioMetrics,
    PriceSource,
)
from creditcore.services.price_snapshots import (
    PriceSnapshot,
    SnapshotResult,
    normalize_symbol,
)


def _finite(value: Optional[float], default: float = 0.0) -> float:
    if value is None:
        return default
    try:
        value = float(value)
    except (TypeError, ValueError):
        return default
    return value if math.isfinite(value) else default


def _usable_price(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value) and value > 0


def _percentage(part: float, whole: float) -> float:
    return part / whole * 100 if whole > 0 else 0.0


def resolve_price(
    holding: Holding, snapshot: Optional[SnapshotResult] = None
) -> tuple[float, PriceSource]:
    """Pick the price to value a holding at and report where it came from."""
    if isinstance(snapshot, PriceSnapshot) and _usable_price(snapshot.price):
        return snapshot.price, PriceSource.LIVE
    if _usable_price(holding.current_price):
        return holding.current_price, PriceSource.STORED
    return max(_finite(holding.purchase_price), 0.0), PriceSource.PURCHASE


def compute_holding_metrics(
    holding: Holding, snapshot: Optional[SnapshotResult] = None
) -> HoldingMetrics:
    """
    Per-holding metrics.

    current_value = amount * price, invested = amount * purchase_price,
    pnl_percentage = pnl / invested * 100 (0 when nothing was invested).
    """
    price, source = resolve_price(holding, snapshot)
    amount = max(_finite(holding.amount), 0.0)
    purchase_price = max(_finite(holding.purchase_price), 0.0)

    current_value = amount * price
    invested = amount * purchase_price
    pnl = current_value - invested
    change = snapshot.change_24h_percent if isinstance(snapshot, PriceSnapshot) else None

    return HoldingMetrics(
        holding_id=holding.id,
        symbol=holding.symbol,
        name=holding.name,
        amount=amount,
        purchase_price=purchase_price,
        current_price=price,
        price_source=source,
        change_24h_percent=_finite(change) if change is not None else None,
        current_value=current_value,
        invested=invested,
        pnl=pnl,
        pnl_percentage=_finite(_percentage(pnl, invested)),
    )


def _performer(metrics: HoldingMetrics) -> Performer:
    return Performer(
        holding_id=metrics.holding_id,
        symbol=metrics.symbol,
        name=metrics.name,
        pnl_percentage=metrics.pnl_percentage,
        current_value=metrics.current_value,
    )


def rank_performers(
    holdings: Sequence[HoldingMetrics],
) -> tuple[Optional[Performer], Optional[Performer]]:
    """Best and worst by pnl_percentage; ties keep the first encountered."""
    if not holdings:
        return None, None
    best = worst = holdings[0]
    for metrics in holdings[1:]:
        if metrics.pnl_percentage > best.pnl_percentage:
            best = metrics
        if metrics.pnl_percentage < worst.pnl_percentage:
            worst = metrics
    return _performer(best), _performer(worst)


# ==================== Health indicators ====================


def diversification_score(holdings: Sequence[HoldingMetrics], total_value: float) -> float:
    """Herfindahl-based score: 0 for nothing, 20 for a single holding."""
    count = len(holdings)
    if count == 0:
        return 0.0
    if count == 1:
        return 20.0
    if total_value > 0:
        shares = [h.current_value / total_value for h in holdings]
    else:
        shares = [1 / count] * count
    herfindahl = sum(share * share for share in shares)
    return min(100.0, (1 - herfindahl) * 150 + count * 5)


def risk_score(holdings: Sequence[HoldingMetrics]) -> float:
    """Average absolute P&L swing (doubled, capped at 100) across holdings."""
    if not holdings:
        return 100.0
    return sum(min(100.0, abs(h.pnl_percentage) * 2) for h in holdings) / len(holdings)


def volatility(holdings: Sequence[HoldingMetrics]) -> float:
    """Population standard deviation of holding P&L percentages."""
    if not holdings:
        return 0.0
    returns = [h.pnl_percentage for h in holdings]
    mean = sum(returns) / len(returns)
    variance = sum((r - mean) ** 2 for r in returns) / len(returns)
    return math.sqrt(variance)


def health_score(diversification: float, risk: float, total_pnl_percentage: float) -> float:
    profitability = min(100.0, max(0.0, 50 + total_pnl_percentage))
    return diversification * 0.4 + (100 - risk) * 0.3 + profitability * 0.3


# ==================== Portfolio ====================


def compute_portfolio_metrics(
    holdings: Sequence[Holding],
    snapshots: Mapping[str, SnapshotResult],
    portfolio_id: Optional[str] = None,
    as_of: Optional[datetime] = None,
) -> PortfolioMetrics:
    """
    Aggregate a portfolio.

    Args:
        holdings: Holdings in display order (ties in ranking follow it)
        snapshots: Lookup results keyed by normalised symbol; missing keys
            and failures fall back to stored / purchase prices
        portfolio_id: Echoed in the result
        as_of: Valuation timestamp (defaults to now)

    Returns:
        PortfolioMetrics with allocation percentages summing to 100 whenever
        total_value > 0
    """
    per_holding = [
        compute_holding_metrics(h, snapshots.get(normalize_symbol(h.symbol)))
        for h in holdings
    ]

    total_value = sum(m.current_value for m in per_holding)
    total_invested = sum(m.invested for m in per_holding)
    total_pnl = total_value - total_invested
    total_pnl_percentage = _finite(_percentage(total_pnl, total_invested))

    for metrics in per_holding:
        metrics.allocation_percentage = _percentage(metrics.current_value, total_value)

    best, worst = rank_performers(per_holding)
    diversification = diversification_score(per_holding, total_value)
    risk = risk_score(per_holding)

    return PortfolioMetrics(
        portfolio_id=portfolio_id,
        as_of=as_of or datetime.now(timezone.utc),
        total_value=total_value,
        total_invested=total_invested,
        total_pnl=total_pnl,
        total_pnl_percentage=total_pnl_percentage,
        best_performer=best,
        worst_performer=worst,
        holdings=per_holding,
        holdings_count=len(per_holding),
        stale_holdings=sum(1 for m in per_holding if m.price_source is not PriceSource.LIVE),
        diversification_score=round(diversification),
        risk_score=round(risk),
        volatility=round(volatility(per_holding), 2),
        health_score=round(health_score(diversification, risk, total_pnl_percentage)),
    )
