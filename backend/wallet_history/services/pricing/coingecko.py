# backend/wallet_history/services/pricing/coingecko.py
"""
CoinGecko price provider.

Endpoints used:
- /simple/price?ids=<coin>&vs_currencies=<ccy>  (spot)
- /coins/<coin>/market_chart/range?vs_currency=<ccy>&from=<s>&to=<s>
  (history; returns [[epoch_ms, price], ...])

CoinGecko only serves coarse series for older ranges (hourly within 90 days,
daily beyond), so a historical lookup requests a window of one day either
side of the target instant and returns the sample with the smallest time
distance. The window never extends past "now".

Limitations:
- The free tier is aggressively rate limited (HTTP 429)
- Symbols must be mapped to CoinGecko coin ids explicitly
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any

import httpx

from wallet_history.services.circuit_breaker import CircuitBreaker
from wallet_history.services.constants import COINGECKO_COIN_IDS, HISTORICAL_PRICE_WINDOW
from wallet_history.services.exceptions import (
    PriceNotFoundError,
    PriceOracleError,
    ProviderUnavailableError,
    RateLimitError,
)
from wallet_history.services.pricing.base import PricePoint, PriceProvider, to_price
from wallet_history.utils.time_utils import from_epoch_ms, to_epoch_ms, to_epoch_seconds, utc_now

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.coingecko.com/api/v3"


class CoinGeckoProvider(PriceProvider):
    """
    CoinGecko implementation of PriceProvider.

    Configuration:
        base_url: API root (public or pro endpoint)
        api_key: Optional demo API key, sent as x-cg-demo-api-key
        vs_currency: Reference currency (default: "usd")
        client: Shared httpx.AsyncClient (created and owned if omitted)
        coin_ids: Symbol -> CoinGecko coin id overrides
    """

    def __init__(
            self,
            base_url: str = DEFAULT_BASE_URL,
            api_key: str | None = None,
            vs_currency: str = "usd",
            client: httpx.AsyncClient | None = None,
            timeout: float = 10.0,
            circuit_breaker: CircuitBreaker | None = None,
            coin_ids: dict[str, str] | None = None,
    ) -> None:
        super().__init__(timeout=timeout, circuit_breaker=circuit_breaker)
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._vs_currency = vs_currency.lower()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._coin_ids = {**COINGECKO_COIN_IDS, **{k.upper(): v for k, v in (coin_ids or {}).items()}}
        logger.info(f"CoinGeckoProvider initialized (vs_currency={self._vs_currency})")

    @property
    def name(self) -> str:
        return "coingecko"

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # =========================================================================
    # PROVIDER HOOKS
    # =========================================================================

    async def _fetch_current_price(self, symbol: str) -> Decimal:
        coin_id = self._coin_id(symbol)
        data = await self._get_json(
            "/simple/price",
            {"ids": coin_id, "vs_currencies": self._vs_currency},
        )

        quote = data.get(coin_id) if isinstance(data, dict) else None
        price = to_price(quote.get(self._vs_currency)) if isinstance(quote, dict) else None
        if price is None:
            raise PriceNotFoundError(symbol, self.name, "no spot quote in response")

        logger.debug(f"CoinGecko spot {symbol}/{self._vs_currency}: {price}")
        return price

    async def _fetch_price_near(self, symbol: str, timestamp: datetime) -> Decimal:
        now = utc_now()
        target = min(timestamp, now)
        samples = await self._range_samples(
            symbol,
            target - HISTORICAL_PRICE_WINDOW,
            min(target + HISTORICAL_PRICE_WINDOW, now),
        )
        if not samples:
            raise PriceNotFoundError(symbol, self.name, f"no samples near {target.isoformat()}")

        target_ms = to_epoch_ms(target)
        sample_ms, price = min(samples, key=lambda s: abs(s[0] - target_ms))
        logger.debug(
            f"CoinGecko {symbol} near {target.isoformat()}: {price} "
            f"({len(samples)} samples, offset {abs(sample_ms - target_ms) // 1000}s)"
        )
        return price

    async def _fetch_price_series(
            self,
            symbol: str,
            start: datetime,
            end: datetime,
    ) -> list[PricePoint]:
        samples = await self._range_samples(symbol, start, min(end, utc_now()))
        if not samples:
            raise PriceNotFoundError(
                symbol, self.name, f"no samples between {start.isoformat()} and {end.isoformat()}"
            )
        points = []
        for ms, price in sorted(samples):
            ts = from_epoch_ms(ms)
            if ts is not None:
                points.append(PricePoint(ts, price))
        return points

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def _range_samples(
            self,
            symbol: str,
            start: datetime,
            end: datetime,
    ) -> list[tuple[int, Decimal]]:
        coin_id = self._coin_id(symbol)
        data = await self._get_json(
            f"/coins/{coin_id}/market_chart/range",
            {
                "vs_currency": self._vs_currency,
                "from": to_epoch_seconds(start),
                "to": to_epoch_seconds(end),
            },
        )
        return self._parse_samples(data.get("prices") if isinstance(data, dict) else None)

    def _coin_id(self, symbol: str) -> str:
        try:
            return self._coin_ids[symbol.upper()]
        except KeyError:
            raise PriceNotFoundError(symbol, self.name, "symbol not supported") from None

    @staticmethod
    def _parse_samples(raw: Any) -> list[tuple[int, Decimal]]:
        """Keep well-formed [epoch_ms, price] pairs only."""
        samples: list[tuple[int, Decimal]] = []
        if not isinstance(raw, list):
            return samples
        for entry in raw:
            if not isinstance(entry, (list, tuple)) or len(entry) < 2:
                continue
            price = to_price(entry[1])
            if price is None or not isinstance(entry[0], (int, float)):
                continue
            samples.append((int(entry[0]), price))
        return samples

    async def _get_json(self, path: str, params: dict[str, Any]) -> Any:
        headers = {"accept": "application/json"}
        if self._api_key:
            headers["x-cg-demo-api-key"] = self._api_key

        try:
            response = await self._client.get(
                f"{self._base_url}{path}",
                params=params,
                headers=headers,
            )
        except httpx.TimeoutException as e:
            raise ProviderUnavailableError(self.name, "request timed out") from e
        except httpx.RequestError as e:
            raise ProviderUnavailableError(self.name, f"network error: {e}") from e

        if response.status_code == 429:
            retry_after = response.headers.get("retry-after")
            raise RateLimitError(
                self.name,
                int(retry_after) if retry_after and retry_after.isdigit() else None,
            )
        if response.status_code == 404:
            raise PriceNotFoundError(params.get("ids") or path, self.name, "HTTP 404")
        if response.status_code >= 500:
            raise ProviderUnavailableError(self.name, f"HTTP {response.status_code}")
        if response.status_code != 200:
            raise PriceOracleError(
                f"CoinGecko request failed with HTTP {response.status_code}",
                self.name,
            )

        try:
            return response.json()
        except ValueError as e:
            raise ProviderUnavailableError(self.name, "response is not valid JSON") from e
