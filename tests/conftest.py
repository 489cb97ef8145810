"""
Global test fixtures for creditcore.

This module provides shared fixtures for all tests including:
- Mock MongoDB (mongomock-motor) with the core indexes
- Mock Redis (fakeredis)
- Account factory
- In-memory price snapshot provider
- FastAPI test client wired to the mocks
"""

import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Generator, Optional
from unittest.mock import patch

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

# Add backend to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

from price_fakes import FakeSnapshotProvider  # noqa: E402

DB_NAME = "creditcore_db"


# =============================================================================
# MongoDB Fixtures (mongomock-motor)
# =============================================================================

@pytest.fixture
def mock_async_mongo_client():
    """
    Create an async mock MongoDB client using mongomock-motor.

    Plain fixture: the client needs no running loop, so sync TestClient
    tests can share it.
    """
    try:
        from mongomock_motor import AsyncMongoMockClient
        client = AsyncMongoMockClient()
        yield client
        client.close()
    except ImportError:
        pytest.skip("mongomock-motor not installed")


@pytest_asyncio.fixture
async def mock_db(mock_async_mongo_client):
    """Provide mock creditcore_db with the same indexes as the real app."""
    from creditcore.database.databases.core_db import create_core_indexes

    db = mock_async_mongo_client[DB_NAME]
    await create_core_indexes(db)
    yield db


# =============================================================================
# Redis Fixtures (fakeredis)
# =============================================================================

@pytest_asyncio.fixture
async def mock_async_redis():
    """
    Create an async mock Redis client using fakeredis.
    """
    try:
        import fakeredis.aioredis
        redis_client = fakeredis.aioredis.FakeRedis(decode_responses=True)
        yield redis_client
        await redis_client.flushall()
        await redis_client.aclose()
    except ImportError:
        pytest.skip("fakeredis with aioredis not installed")


# =============================================================================
# Account Fixtures
# =============================================================================

@pytest.fixture
def make_account(mock_db):
    """
    Factory inserting an account document directly (no opening grant).

    Usage:
        account_id = await make_account(tier="pro", balance=50)
    """
    counter = {"n": 0}

    async def _make(tier: str = "free", balance: int = 0, account_id: Optional[str] = None) -> str:
        counter["n"] += 1
        account_id = account_id or f"acct-{counter['n']}"
        await mock_db.accounts.insert_one({
            "_id": account_id,
            "tier": tier,
            "credit_balance": balance,
            "monthly_allowance": 100,
            "created_at": datetime.now(timezone.utc),
        })
        return account_id

    return _make


# =============================================================================
# Price Fixtures
# =============================================================================

@pytest.fixture
def price_provider() -> FakeSnapshotProvider:
    """Provider with BTC and ETH prices set."""
    return FakeSnapshotProvider({"BTC": (50000.0, 2.5), "ETH": (3000.0, -1.0)})


# =============================================================================
# FastAPI Test Client Fixtures
# =============================================================================

@pytest.fixture
def app(mock_async_mongo_client, price_provider):
    """
    FastAPI app with the database and price source swapped for mocks.

    The lifespan runs against the mock client, so the core indexes exist.
    """
    from creditcore.dependencies.services import get_db, get_snapshot_provider
    from creditcore.main import app

    async def _db():
        return mock_async_mongo_client[DB_NAME]

    async def _provider():
        return price_provider

    app.dependency_overrides[get_db] = _db
    app.dependency_overrides[get_snapshot_provider] = _provider
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(app, mock_async_mongo_client) -> Generator:
    """
    Create a TestClient for the FastAPI app.

    Use this for synchronous endpoint testing.
    """
    async def _mongo():
        return mock_async_mongo_client

    with patch("creditcore.main.get_mongo_client", _mongo):
        with TestClient(app) as c:
            yield c
