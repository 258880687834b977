# backend/wallet_history/services/history/service.py
"""
Portfolio History Service - single entry point for valuation history.

get_portfolio_history() orchestrates one request:

1. Validate account, timeframe and (optional) caller-supplied balance
2. Resolve the timeframe to a window anchored at "now"
3. Concurrently read the ledger (both directions), the spot price and,
   if the caller did not supply it, the current balance
4. Normalize ledger records into BalanceEvents
5. Replay them through a fresh HistoricalPriceCache

Design Principles:
- Dependency Injection: ledger source and price oracle via constructor
- No HTTP Knowledge: raises domain exceptions, never HTTPException
- Best effort: only a missing anchor (no balance, no price) is fatal;
  every other upstream failure degrades the series and adds a warning

Usage:
    from wallet_history.services.history import PortfolioHistoryService

    service = PortfolioHistoryService(ledger=ledger, oracle=oracle)
    history = await service.get_portfolio_history(
        "0x1a2b...", current_balance=None, timeframe="month"
    )
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime
from decimal import Decimal

from wallet_history.services.circuit_breaker import CircuitBreakerOpen
from wallet_history.services.constants import MAX_LEDGER_PAGE_SIZE
from wallet_history.services.exceptions import (
    InvalidBalanceError,
    InvalidInputError,
    PriceOracleError,
    UpstreamUnavailableError,
)
from wallet_history.services.history.replay import PortfolioReplayEngine
from wallet_history.services.history.types import (
    PointAlignment,
    PortfolioHistory,
    Timeframe,
    TimeframePolicy,
    TimeframeWindow,
)
from wallet_history.services.history.windower import TimeframeWindower
from wallet_history.services.ledger.collector import (
    LedgerCollection,
    collect_ledger_transactions,
)
from wallet_history.services.ledger.normalizer import (
    normalize_events,
    validate_account,
    validate_asset,
)
from wallet_history.services.ledger.types import Asset
from wallet_history.services.pricing.cache import HistoricalPriceCache, PriceCacheStore
from wallet_history.services.protocols import LedgerSource, PriceOracle
from wallet_history.utils.time_utils import ensure_utc

logger = logging.getLogger(__name__)

# Failures of a price oracle call that the service treats as "no price"
_PRICE_FAILURES = (PriceOracleError, CircuitBreakerOpen, asyncio.TimeoutError)


class PortfolioHistoryService:
    """
    Builds valuation histories for accounts holding one tracked asset.

    Args:
        ledger: Default ledger source
        oracle: Price oracle (usually a FallbackPriceOracle)
        asset: Tracked asset (defaults to native SUI)
        windower: Timeframe policy table
        price_store: Shared price store; None gives each request its own
        price_concurrency: Parallel cold price lookups per request
        price_timeout: Overall bound on one oracle lookup across the whole
            provider chain; None leaves bounding to the providers
        page_size: Ledger page size
        alignment: Which balance event points report
        ledger_for_network: Factory resolving a network name to a ledger
            source; requests naming a network need one
    """

    def __init__(
            self,
            ledger: LedgerSource,
            oracle: PriceOracle,
            asset: Asset | None = None,
            windower: TimeframeWindower | None = None,
            price_store: PriceCacheStore | None = None,
            price_concurrency: int = 4,
            price_timeout: float | None = None,
            page_size: int = MAX_LEDGER_PAGE_SIZE,
            alignment: PointAlignment = PointAlignment.BEFORE_EVENT,
            ledger_for_network: Callable[[str], LedgerSource] | None = None,
    ) -> None:
        self._ledger = ledger
        self._oracle = oracle
        self._asset = validate_asset(asset or Asset())
        self._windower = windower or TimeframeWindower()
        self._price_store = price_store
        self._price_concurrency = price_concurrency
        self._price_timeout = price_timeout
        self._page_size = page_size
        self._ledger_for_network = ledger_for_network
        self._engine = PortfolioReplayEngine(
            self._asset.symbol, alignment=alignment, windower=self._windower
        )

    @property
    def asset(self) -> Asset:
        return self._asset

    async def get_portfolio_history(
            self,
            account: str,
            current_balance: Decimal | None,
            timeframe: Timeframe | str,
            *,
            network: str | None = None,
            now: datetime | None = None,
    ) -> PortfolioHistory:
        """
        Build the valuation history of `account` over `timeframe`.

        Args:
            account: Sui address (short forms are zero-padded)
            current_balance: Holding in natural units; None fetches it
            timeframe: day, week, month or year
            network: Optional network name overriding the default ledger
            now: Anchor instant (defaults to the current time)

        Returns:
            PortfolioHistory with points sorted ascending by timestamp

        Raises:
            InvalidInputError: Malformed account, unknown timeframe or
                network, or a non-positive supplied balance
            UpstreamUnavailableError: No current balance or price could be
                obtained to anchor the series
        """
        account_key = validate_account(account)
        tf = Timeframe.parse(timeframe)
        if current_balance is not None:
            current_balance = _validate_balance(current_balance)
        ledger = self._resolve_ledger(network)

        window = self._windower.window(tf, now)
        policy = self._windower.policy(tf)

        logger.debug(
            f"Building {tf.value} history for {account_key} "
            f"({window.cutoff.isoformat()} .. {window.now.isoformat()})"
        )

        collection, spot, balance = await asyncio.gather(
            collect_ledger_transactions(
                ledger,
                account_key,
                max_transactions=window.max_ledger_events,
                page_size=self._page_size,
            ),
            self._spot_price(window.now),
            self._current_balance(ledger, account_key, current_balance),
            return_exceptions=True,
        )
        # Anchor failures are fatal; anything else was already absorbed
        for outcome in (balance, spot, collection):
            if isinstance(outcome, BaseException):
                raise outcome

        return await self._build(account_key, window, policy, collection, balance, spot)

    # =========================================================================
    # PRIVATE HELPERS
    # =========================================================================

    async def _build(
            self,
            account: str,
            window: TimeframeWindow,
            policy: TimeframePolicy,
            collection: LedgerCollection,
            current_balance: Decimal,
            spot_price: Decimal,
    ) -> PortfolioHistory:
        events = normalize_events(collection.transactions, account, self._asset)

        prices = HistoricalPriceCache(
            self._oracle,
            spot_price,
            store=self._price_store,
            concurrency=self._price_concurrency,
            timeout=self._price_timeout,
        )
        result = await self._engine.replay(
            current_balance,
            spot_price,
            events,
            window.cutoff,
            prices,
            now=window.now,
            gap_policy=policy,
        )

        warnings = [*collection.warnings, *result.warnings]
        if prices.stats.failed_buckets:
            warnings.append(
                f"Historical prices unavailable for {len(prices.stats.failed_buckets)} day(s); "
                "nearby prices were used"
            )

        history = PortfolioHistory(
            account=account,
            asset=self._asset,
            window=window,
            current_balance=current_balance,
            current_price=spot_price,
            points=result.points,
            events_in_window=result.replayed_event_count + len(result.skipped_event_ids),
            ledger_complete=collection.complete,
            price_stats=prices.stats,
            warnings=warnings,
        )

        logger.info(
            f"Portfolio history for {account} ({window.timeframe.value}): "
            f"{len(history.points)} points, {len(events)} events, "
            f"{result.synthetic_count} estimated, "
            f"{prices.stats.upstream_calls} price lookups",
            extra={
                "timeframe": window.timeframe.value,
                "points": len(history.points),
                "ledger_complete": history.ledger_complete,
            },
        )
        return history

    def _resolve_ledger(self, network: str | None) -> LedgerSource:
        if network is None:
            return self._ledger
        if self._ledger_for_network is None:
            raise InvalidInputError("network selection is not supported", field="network")
        try:
            return self._ledger_for_network(network)
        except ValueError as e:
            raise InvalidInputError(str(e), field="network") from e

    async def _spot_price(self, now: datetime) -> Decimal:
        """Current price, falling back to the oracle's historical lookup at `now`."""
        symbol = self._asset.symbol
        try:
            return _as_price(await self._bounded(self._oracle.current_price(symbol)))
        except _PRICE_FAILURES as e:
            spot_error = self._describe_failure(e)
            logger.warning(
                f"Spot price for {symbol} unavailable, trying historical lookup: {spot_error}"
            )

        try:
            return _as_price(await self._bounded(self._oracle.price_near(symbol, ensure_utc(now))))
        except _PRICE_FAILURES as e:
            history_error = self._describe_failure(e)
            logger.error(f"No price available for {symbol}: {history_error}")
            raise UpstreamUnavailableError(
                "price", f"spot: {spot_error}; historical: {history_error}"
            ) from e

    async def _current_balance(
            self,
            ledger: LedgerSource,
            account: str,
            supplied: Decimal | None,
    ) -> Decimal:
        if supplied is not None:
            return supplied
        try:
            balance = await ledger.get_balance(
                account, self._asset.coin_type, self._asset.decimals
            )
        except CircuitBreakerOpen as e:
            raise UpstreamUnavailableError("ledger", str(e)) from e
        return balance.amount

    async def _bounded(self, call):
        if self._price_timeout is None:
            return await call
        return await asyncio.wait_for(call, timeout=self._price_timeout)

    def _describe_failure(self, error: BaseException) -> str:
        if isinstance(error, asyncio.TimeoutError):
            return f"timed out after {self._price_timeout}s"
        return str(error) or type(error).__name__


def _validate_balance(value: Decimal | int | float | str) -> Decimal:
    try:
        balance = value if isinstance(value, Decimal) else Decimal(str(value))
    except ArithmeticError as e:
        raise InvalidBalanceError(value, "is not a number") from e
    if not balance.is_finite() or balance <= 0:
        raise InvalidBalanceError(value)
    return balance


def _as_price(value: object) -> Decimal:
    if value is None:
        raise PriceOracleError("oracle returned no price")
    try:
        price = value if isinstance(value, Decimal) else Decimal(str(value))
    except ArithmeticError as e:
        raise PriceOracleError(f"invalid price {value!r}") from e
    if not price.is_finite() or price < 0:
        raise PriceOracleError(f"invalid price {value!r}")
    return price

