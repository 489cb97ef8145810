#!/usr/bin/env python3
"""
Alert Sweep Worker

Periodically evaluates every active alert against fresh price snapshots and
records the fires. Several workers can split the alerts between them with
SWEEP_SHARD / SWEEP_SHARDS; a fire is stored with a compare-and-swap, so an
overlap between two sweeps never fires an alert twice.

Each cycle also hands back credits held by charges that never committed
(e.g. a crashed API process).

Usage:
    python sweep_alerts.py

Environment Variables:
    MONGO_URI: MongoDB connection string
    SWEEP_INTERVAL_SECONDS: Seconds between sweeps (default: 60)
    SWEEP_SHARD / SWEEP_SHARDS: This worker's shard and the shard count (default: 0 / 1)
    STALE_RESERVATION_MINUTES: Age after which an uncommitted charge is released (default: 15)
    LOG_LEVEL: Logging level (default: INFO)
"""
import asyncio
import logging
import signal
import sys
from datetime import timedelta
from typing import Any, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from creditcore.core.logging import configure_logging
from creditcore.database.connections import close_connections, get_database, get_redis_client
from creditcore.services.alert_service import AlertService
from creditcore.services.ledger import CreditLedger
from creditcore.services.price_snapshots import CachedSnapshotProvider, CoinGeckoSnapshotProvider


# ==================== Configuration ====================

class SweepConfig(BaseSettings):
    """Worker configuration from environment."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    sweep_interval_seconds: int = Field(default=60, ge=1)
    sweep_shard: int = Field(default=0, ge=0)
    sweep_shards: int = Field(default=1, ge=1)
    stale_reservation_minutes: int = Field(default=15, ge=1)

    log_level: str = Field(default="INFO")


config = SweepConfig()

logger = logging.getLogger("alert_sweep")


# ==================== Worker ====================

class AlertSweepWorker:
    """Runs alert sweeps on a fixed interval until stopped."""

    def __init__(self, sweep_config: SweepConfig = config):
        self.config = sweep_config
        self.running = False
        self.provider: Optional[CoinGeckoSnapshotProvider] = None
        self.alert_service: Optional[AlertService] = None
        self.ledger: Optional[CreditLedger] = None

    async def connect(self):
        db = await get_database()
        self.provider = CoinGeckoSnapshotProvider()
        cached = CachedSnapshotProvider(self.provider, await get_redis_client())
        self.alert_service = AlertService(db, cached)
        self.ledger = CreditLedger(db)
        logger.info("Connected to MongoDB and Redis")

    async def disconnect(self):
        if self.provider is not None:
            await self.provider.close()
        await close_connections()

    async def sweep_once(self) -> dict[str, Any]:
        """Evaluate this shard's alerts and release stale reservations."""
        decisions = await self.alert_service.evaluate_all_active(
            shard=self.config.sweep_shard,
            shards=self.config.sweep_shards,
        )
        released = await self.ledger.release_stale_reservations(
            timedelta(minutes=self.config.stale_reservation_minutes)
        )
        stats = {
            "evaluated": len(decisions),
            "fired": sum(1 for d in decisions if d.fired),
            "unpriced": sum(1 for d in decisions if d.message == "Price unavailable"),
            "released_reservations": released,
        }
        logger.info(
            f"Sweep complete: {stats['evaluated']} evaluated, {stats['fired']} fired, "
            f"{stats['unpriced']} without price"
        )
        return stats

    async def run(self):
        """Main worker loop."""
        self.running = True

        while self.running:
            try:
                await self.sweep_once()
            except asyncio.CancelledError:
                logger.info("Worker cancelled")
                break
            except Exception as e:
                logger.error(f"Error in sweep loop: {e}")

            if not self.running:
                break
            await asyncio.sleep(self.config.sweep_interval_seconds)

    def stop(self):
        """Stop the worker gracefully."""
        logger.info("Stopping worker...")
        self.running = False


# ==================== Main Entry Point ====================

async def main():
    """Main entry point."""
    worker = AlertSweepWorker()

    loop = asyncio.get_running_loop()

    def shutdown_handler(sig):
        logger.info(f"Received signal {sig.name}")
        worker.stop()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, lambda s=sig: shutdown_handler(s))

    try:
        await worker.connect()
        await worker.run()
    except Exception as e:
        logger.error(f"Worker error: {e}")
        sys.exit(1)
    finally:
        await worker.disconnect()
        logger.info("Worker shutdown complete")


if __name__ == "__main__":
    configure_logging(config.log_level)
    logger.info("=" * 60)
    logger.info("Alert Sweep Worker")
    logger.info(f"Shard: {config.sweep_shard} of {config.sweep_shards}")
    logger.info(f"Sweep interval: {config.sweep_interval_seconds} seconds")
    logger.info("=" * 60)

    asyncio.run(main())
