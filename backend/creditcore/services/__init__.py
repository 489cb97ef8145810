"""
Service layer: pure engines plus the Mongo-backed services built on them.
"""
from creditcore.services.ledger import CreditLedger, LedgerResult, Reservation
from creditcore.services.feature_gateway import ChargeResult, FeatureGateway
from creditcore.services.account_service import AccountService
from creditcore.services.portfolio_service import PortfolioService
from creditcore.services.alert_service import AlertService
from creditcore.services.notifications import LoggingDispatcher, NotificationDispatcher
from creditcore.services.price_snapshots import (
    CachedSnapshotProvider,
    CoinGeckoSnapshotProvider,
    PriceFailure,
    PriceSnapshot,
    fetch_snapshots,
)

__all__ = [
    "CreditLedger",
    "LedgerResult",
    "Reservation",
    "ChargeResult",
    "FeatureGateway",
    "AccountService",
    "PortfolioService",
    "AlertService",
    "LoggingDispatcher",
    "NotificationDispatcher",
    "CachedSnapshotProvider",
    "CoinGeckoSnapshotProvider",
    "PriceFailure",
    "PriceSnapshot",
    "fetch_snapshots",
]
