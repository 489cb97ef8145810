"""
Price snapshot provider.

Callers only ever see a PriceSnapshot (price, 24h change, as_of) or a typed
PriceFailure; no provider exception escapes get_snapshot(). fetch_snapshots()
fans lookups out with bounded concurrency and an independent timeout per
symbol, so one slow coin never holds up or fails the others.
"""
import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, Optional, Protocol, Union

import httpx
from redis.asyncio import Redis
from redis.exceptions import RedisError

from creditcore.config import get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PriceSnapshot:
    """Price and 24h change for one symbol at a point in time."""
    symbol: str
    price: float
    change_24h_percent: Optional[float]
    as_of: datetime

    def to_json(self) -> str:
        return json.dumps({
            "symbol": self.symbol,
            "price": self.price,
            "change_24h_percent": self.change_24h_percent,
            "as_of": self.as_of.isoformat(),
        })

    @classmethod
    def from_json(cls, raw: str) -> "PriceSnapshot":
        data = json.loads(raw)
        return cls(
            symbol=data["symbol"],
            price=float(data["price"]),
            change_24h_percent=data.get("change_24h_percent"),
            as_of=datetime.fromisoformat(data["as_of"]),
        )


class FailureKind(str, Enum):
    RATE_LIMITED = "rate_limited"
    NOT_FOUND = "not_found"
    TIMEOUT = "timeout"
    UPSTREAM = "upstream"


@dataclass(frozen=True)
class PriceFailure:
    """Typed failure of a single lookup (price unavailable)."""
    symbol: str
    kind: FailureKind


SnapshotResult = Union[PriceSnapshot, PriceFailure]


class PriceSnapshotProvider(Protocol):
    """Narrow price source the valuation and alert engines depend on."""

    async def get_snapshot(self, symbol: str) -> SnapshotResult:
        ...


# ==================== Symbol normalisation ====================

# Tickers users type, mapped to CoinGecko coin ids
SYMBOL_TO_COIN_ID = {
    "btc": "bitcoin",
    "eth": "ethereum",
    "usdt": "tether",
    "usdc": "usd-coin",
    "bnb": "binancecoin",
    "sol": "solana",
    "xrp": "ripple",
    "ada": "cardano",
    "doge": "dogecoin",
    "trx": "tron",
    "dot": "polkadot",
    "matic": "matic-network",
    "ltc": "litecoin",
    "avax": "avalanche-2",
    "link": "chainlink",
    "atom": "cosmos",
    "xlm": "stellar",
    "uni": "uniswap",
}


def normalize_symbol(symbol: str) -> str:
    """Canonical key for a symbol (lowercase, trimmed)."""
    return symbol.strip().lower()


def to_coin_id(symbol: str) -> str:
    key = normalize_symbol(symbol)
    return SYMBOL_TO_COIN_ID.get(key, key)


# ==================== CoinGecko ====================


class CoinGeckoSnapshotProvider:
    """
    Async CoinGecko client reduced to the snapshot shape.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.coingecko_base_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.coingecko_api_key
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client with connection pooling."""
        if self._client is None or self._client.is_closed:
            headers = {"Accept": "application/json"}
            if self.api_key:
                headers["x-cg-demo-api-key"] = self.api_key
            self._client = httpx.AsyncClient(
                timeout=10.0,
                follow_redirects=True,
                headers=headers,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def get_snapshot(self, symbol: str) -> SnapshotResult:
        key = normalize_symbol(symbol)
        coin_id = to_coin_id(key)
        client = await self._get_client()

        try:
            response = await client.get(
                f"{self.base_url}/simple/price",
                params={
                    "ids": coin_id,
                    "vs_currencies": "usd",
                    "include_24hr_change": "true",
                    "include_last_updated_at": "true",
                },
            )
        except httpx.TimeoutException:
            logger.warning(f"Price lookup for {key} timed out")
            return PriceFailure(key, FailureKind.TIMEOUT)
        except httpx.HTTPError as e:
            logger.warning(f"Price lookup for {key} failed: {type(e).__name__}")
            return PriceFailure(key, FailureKind.UPSTREAM)

        if response.status_code == 429:
            logger.warning(f"Price lookup for {key} rate limited")
            return PriceFailure(key, FailureKind.RATE_LIMITED)
        if response.status_code == 404:
            return PriceFailure(key, FailureKind.NOT_FOUND)
        if response.status_code >= 400:
            logger.warning(f"Price lookup for {key} returned HTTP {response.status_code}")
            return PriceFailure(key, FailureKind.UPSTREAM)

        try:
            entry = response.json().get(coin_id)
        except ValueError:
            return PriceFailure(key, FailureKind.UPSTREAM)
        return self._parse_entry(key, entry)

    @staticmethod
    def _parse_entry(key: str, entry: Optional[dict]) -> SnapshotResult:
        if not entry or entry.get("usd") is None:
            return PriceFailure(key, FailureKind.NOT_FOUND)
        try:
            price = float(entry["usd"])
        except (TypeError, ValueError):
            return PriceFailure(key, FailureKind.UPSTREAM)

        change = entry.get("usd_24h_change")
        updated = entry.get("last_updated_at")
        as_of = (
            datetime.fromtimestamp(updated, tz=timezone.utc)
            if isinstance(updated, (int, float))
            else datetime.now(timezone.utc)
        )
        return PriceSnapshot(
            symbol=key,
            price=price,
            change_24h_percent=float(change) if change is not None else None,
            as_of=as_of,
        )


# ==================== Redis cache ====================


class CachedSnapshotProvider:
    """
    Read-through Redis cache in front of another provider.

    Key pattern: price_snapshot:{symbol}. Only successful snapshots are
    cached; a Redis failure falls through to the inner provider.
    """

    KEY_PREFIX = "price_snapshot"

    def __init__(self, inner: PriceSnapshotProvider, redis: Redis, ttl_seconds: Optional[int] = None):
        self.inner = inner
        self.redis = redis
        self.ttl_seconds = ttl_seconds or get_settings().price_cache_ttl_seconds

    def _key(self, symbol: str) -> str:
        return f"{self.KEY_PREFIX}:{normalize_symbol(symbol)}"

    async def get_snapshot(self, symbol: str) -> SnapshotResult:
        key = self._key(symbol)
        try:
            cached = await self.redis.get(key)
        except RedisError as e:
            logger.warning(f"Price cache read failed: {e}")
            cached = None
        if cached:
            return PriceSnapshot.from_json(cached)

        result = await self.inner.get_snapshot(symbol)
        if isinstance(result, PriceSnapshot):
            try:
                await self.redis.set(key, result.to_json(), ex=self.ttl_seconds)
            except RedisError as e:
                logger.warning(f"Price cache write failed: {e}")
        return result


# ==================== Fan-out ====================


async def fetch_snapshots(
    provider: PriceSnapshotProvider,
    symbols: Iterable[str],
    concurrency: Optional[int] = None,
    timeout: Optional[float] = None,
) -> dict[str, SnapshotResult]:
    """
    Look up many symbols concurrently.

    Args:
        provider: Snapshot source
        symbols: Symbols to look up (duplicates collapse onto one lookup)
        concurrency: Maximum lookups in flight
        timeout: Per-symbol timeout in seconds

    Returns:
        Mapping of normalised symbol to snapshot or failure, one entry per
        distinct symbol. Never raises for a failed lookup; cancelling the
        caller cancels every outstanding lookup.
    """
    settings = get_settings()
    concurrency = concurrency or settings.price_lookup_concurrency
    timeout = timeout if timeout is not None else settings.price_lookup_timeout_seconds

    keys = list(dict.fromkeys(normalize_symbol(s) for s in symbols))
    if not keys:
        return {}

    semaphore = asyncio.Semaphore(concurrency)

    async def lookup(key: str) -> SnapshotResult:
        async with semaphore:
            try:
                return await asyncio.wait_for(provider.get_snapshot(key), timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Price lookup for {key} exceeded {timeout}s")
                return PriceFailure(key, FailureKind.TIMEOUT)
            except Exception as e:
                logger.warning(f"Price lookup for {key} raised {type(e).__name__}")
                return PriceFailure(key, FailureKind.UPSTREAM)

    results = await asyncio.gather(*(lookup(key) for key in keys))
    return dict(zip(keys, results))
