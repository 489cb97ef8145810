"""
Dependencies for dependency injection in routes.
"""
from creditcore.dependencies.services import (
    get_db,
    get_snapshot_provider,
    close_snapshot_provider,
    get_ledger,
    get_account_service,
    get_feature_gateway,
    get_portfolio_service,
    get_alert_service,
)

__all__ = [
    "get_db",
    "get_snapshot_provider",
    "close_snapshot_provider",
    "get_ledger",
    "get_account_service",
    "get_feature_gateway",
    "get_portfolio_service",
    "get_alert_service",
]
