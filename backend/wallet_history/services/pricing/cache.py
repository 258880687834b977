# backend/wallet_history/services/pricing/cache.py
"""
Historical price cache.

Two layers:

PriceCacheStore
    Storage keyed by (SYMBOL, UTC day). Created per replay by default; a
    service may instead share one process-wide store with a short TTL.
    Concurrent lookups of the same cold key are collapsed into one upstream
    call (single flight): the first caller fetches, later callers wait on
    its future. No lock is held while the upstream call is in flight.

HistoricalPriceCache
    The per-replay view the engine talks to. `price_near` never raises for
    data problems. On a miss it asks the oracle; if that fails, times out
    or returns nothing it falls back to the most recent price resolved in
    this run (in walk order), else to the spot price. Fallback values are
    never written to the store, and a bucket that failed once is not
    requested again in the same run.

Cancellation propagates untouched; whatever was stored before the
cancellation stays valid.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal

from wallet_history.services.protocols import PriceOracle
from wallet_history.utils.time_utils import day_bucket

logger = logging.getLogger(__name__)

CacheKey = tuple[str, date]


def cache_key(symbol: str, timestamp: datetime) -> CacheKey:
    """(SYMBOL, UTC day) key for a lookup."""
    return symbol.strip().upper(), day_bucket(timestamp)


# =============================================================================
# STORE
# =============================================================================

@dataclass
class _Entry:
    price: Decimal
    expires_at: float | None


class PriceCacheStore:
    """
    Day-bucketed price storage with optional TTL and single-flight fetches.

    Args:
        ttl_seconds: Entry lifetime; None keeps entries for the store's life
        clock: Monotonic time source (injectable for tests)
    """

    def __init__(
            self,
            ttl_seconds: float | None = None,
            clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds is not None and ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive (or None for no expiry)")
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[CacheKey, _Entry] = {}
        self._inflight: dict[CacheKey, asyncio.Future[Decimal]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, tuple) and self.get(key) is not None

    @property
    def ttl_seconds(self) -> float | None:
        return self._ttl

    def get(self, key: CacheKey) -> Decimal | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at is not None and self._clock() >= entry.expires_at:
            del self._entries[key]
            return None
        return entry.price

    def put(self, key: CacheKey, price: Decimal) -> None:
        expires_at = self._clock() + self._ttl if self._ttl is not None else None
        self._entries[key] = _Entry(price=price, expires_at=expires_at)

    def clear(self) -> None:
        self._entries.clear()

    async def get_or_fetch(
            self,
            key: CacheKey,
            fetch: Callable[[], Awaitable[Decimal]],
    ) -> Decimal:
        """
        Return the cached price for `key`, fetching it at most once.

        Exceptions from `fetch` propagate to the caller that issued it and
        to every caller waiting on the same key. Nothing is stored on
        failure.
        """
        while True:
            cached = self.get(key)
            if cached is not None:
                return cached

            pending = self._inflight.get(key)
            if pending is None:
                return await self._fetch_as_owner(key, fetch)

            try:
                return await asyncio.shield(pending)
            except asyncio.CancelledError:
                task = asyncio.current_task()
                if pending.cancelled() and (task is None or not task.cancelling()):
                    # The owning caller was cancelled, not us: try again
                    continue
                raise

    async def _fetch_as_owner(
            self,
            key: CacheKey,
            fetch: Callable[[], Awaitable[Decimal]],
    ) -> Decimal:
        future: asyncio.Future[Decimal] = asyncio.get_running_loop().create_future()
        self._inflight[key] = future

        try:
            price = await fetch()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            # Mark retrieved so an unobserved failure is not logged at GC
            future.exception()
            raise
        else:
            self.put(key, price)
            future.set_result(price)
            return price
        finally:
            if self._inflight.get(key) is future:
                del self._inflight[key]


# =============================================================================
# PER-REPLAY VIEW
# =============================================================================

@dataclass
class PriceLookupStats:
    """Counters describing how a replay's prices were obtained."""
    hits: int = 0
    misses: int = 0
    fallbacks: int = 0
    upstream_calls: int = 0
    failed_buckets: list[CacheKey] = field(default_factory=list)


class HistoricalPriceCache:
    """
    Best-effort `price_near` for one replay invocation.

    Args:
        oracle: Upstream price oracle
        spot_price: Current price, the fallback of last resort
        store: Shared store (a private one is created if omitted)
        concurrency: Maximum parallel cold lookups during prefetch
        timeout: Overall bound on one upstream lookup (None = oracle's own)
    """

    def __init__(
            self,
            oracle: PriceOracle,
            spot_price: Decimal,
            store: PriceCacheStore | None = None,
            concurrency: int = 4,
            timeout: float | None = None,
    ) -> None:
        if spot_price < 0:
            raise ValueError(f"spot_price cannot be negative, got {spot_price}")
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._oracle = oracle
        self._spot_price = spot_price
        self._store = store if store is not None else PriceCacheStore()
        self._concurrency = concurrency
        self._timeout = timeout
        self._failed: set[CacheKey] = set()
        self._last_resolved: Decimal | None = None
        self.stats = PriceLookupStats()

    @property
    def spot_price(self) -> Decimal:
        return self._spot_price

    @property
    def store(self) -> PriceCacheStore:
        return self._store

    async def price_near(self, symbol: str, timestamp: datetime) -> Decimal:
        """
        Price for the day bucket containing `timestamp`.

        Never raises for upstream failures; see module docstring.
        """
        key = cache_key(symbol, timestamp)

        cached = self._store.get(key)
        if cached is not None:
            self.stats.hits += 1
            self._last_resolved = cached
            logger.debug(f"Price cache hit {key[0]}@{key[1]}: {cached}")
            return cached

        if key not in self._failed:
            self.stats.misses += 1
            logger.debug(f"Price cache miss {key[0]}@{key[1]}")
            price = await self._lookup(key, timestamp)
            if price is not None:
                self._last_resolved = price
                return price

        self.stats.fallbacks += 1
        fallback = self._last_resolved if self._last_resolved is not None else self._spot_price
        logger.debug(f"Price fallback for {key[0]}@{key[1]}: {fallback}")
        return fallback

    async def prefetch(self, symbol: str, timestamps: Iterable[datetime]) -> int:
        """
        Resolve every distinct cold bucket among `timestamps` concurrently.

        Does not affect walk-order fallbacks; failed buckets are remembered
        so the walk does not ask for them again.

        Returns:
            Number of buckets successfully resolved
        """
        pending: dict[CacheKey, datetime] = {}
        for ts in timestamps:
            key = cache_key(symbol, ts)
            if key in pending or key in self._failed or self._store.get(key) is not None:
                continue
            pending[key] = ts

        if not pending:
            return 0

        work = iter(pending.items())
        resolved = 0

        async def worker() -> None:
            nonlocal resolved
            for key, ts in work:
                if await self._lookup(key, ts) is not None:
                    resolved += 1

        workers = min(self._concurrency, len(pending))
        await asyncio.gather(*(worker() for _ in range(workers)))

        logger.debug(f"Prefetched {resolved}/{len(pending)} price buckets for {symbol}")
        return resolved

    async def _lookup(self, key: CacheKey, timestamp: datetime) -> Decimal | None:
        """Fetch through the store; None (and remembered) on any upstream failure."""
        symbol = key[0]

        async def fetch() -> Decimal:
            self.stats.upstream_calls += 1
            call = self._oracle.price_near(symbol, timestamp)
            if self._timeout is not None:
                price = await asyncio.wait_for(call, timeout=self._timeout)
            else:
                price = await call
            if price is None:
                raise ValueError("oracle returned no price")
            if not isinstance(price, Decimal):
                price = Decimal(str(price))
            if price < 0:
                raise ValueError(f"oracle returned negative price {price}")
            return price

        try:
            price = await self._store.get_or_fetch(key, fetch)
        except asyncio.TimeoutError:
            logger.warning(f"Historical price for {symbol} on {key[1]} timed out")
            self._mark_failed(key)
            return None
        except Exception as e:
            logger.warning(f"Historical price for {symbol} on {key[1]} unavailable: {e}")
            self._mark_failed(key)
            return None

        return price

    def _mark_failed(self, key: CacheKey) -> None:
        if key not in self._failed:
            self._failed.add(key)
            self.stats.failed_buckets.append(key)
