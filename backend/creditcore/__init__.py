"""
creditcore - entitlement-gated credit economy and portfolio analytics.
"""
__version__ = "0.1.0"
