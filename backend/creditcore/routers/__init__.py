"""
API routers.
"""
from creditcore.routers import accounts, alerts, health, portfolios

__all__ = ["accounts", "alerts", "health", "portfolios"]
