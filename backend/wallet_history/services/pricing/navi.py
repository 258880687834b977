# backend/wallet_history/services/pricing/navi.py
"""
Navi Protocol price provider (spot only).

Navi publishes the oracle prices of every asset in its lending markets at
/getIndexAssetData as a list of {"symbol": ..., "price": ...} entries. It
is a useful second opinion for the current SUI price when CoinGecko is
rate limited, but it offers no history.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any

import httpx

from wallet_history.services.circuit_breaker import CircuitBreaker
from wallet_history.services.exceptions import (
    PriceNotFoundError,
    PriceOracleError,
    ProviderUnavailableError,
    RateLimitError,
)
from wallet_history.services.pricing.base import PriceProvider, to_price

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api-defi.naviprotocol.io"


class NaviProvider(PriceProvider):
    """Spot prices from the Navi Protocol index asset feed."""

    def __init__(
            self,
            base_url: str = DEFAULT_BASE_URL,
            client: httpx.AsyncClient | None = None,
            timeout: float = 10.0,
            circuit_breaker: CircuitBreaker | None = None,
    ) -> None:
        super().__init__(timeout=timeout, circuit_breaker=circuit_breaker)
        self._base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @property
    def name(self) -> str:
        return "navi"

    @property
    def supports_history(self) -> bool:
        return False

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _fetch_current_price(self, symbol: str) -> Decimal:
        assets = await self._fetch_index_assets()

        for entry in assets:
            if not isinstance(entry, dict):
                continue
            if str(entry.get("symbol", "")).lower() != symbol.lower():
                continue
            price = to_price(entry.get("price"))
            if price is None:
                raise PriceNotFoundError(symbol, self.name, "unparseable price")
            return price

        raise PriceNotFoundError(symbol, self.name, "symbol not listed")

    async def _fetch_price_near(self, symbol: str, timestamp: datetime) -> Decimal:
        raise PriceNotFoundError(symbol, self.name, "historical prices not available")

    async def _fetch_index_assets(self) -> list[Any]:
        try:
            response = await self._client.get(f"{self._base_url}/getIndexAssetData")
        except httpx.TimeoutException as e:
            raise ProviderUnavailableError(self.name, "request timed out") from e
        except httpx.RequestError as e:
            raise ProviderUnavailableError(self.name, f"network error: {e}") from e

        if response.status_code == 429:
            raise RateLimitError(self.name)
        if response.status_code >= 500:
            raise ProviderUnavailableError(self.name, f"HTTP {response.status_code}")
        if response.status_code != 200:
            raise PriceOracleError(f"Navi request failed with HTTP {response.status_code}", self.name)

        try:
            payload = response.json()
        except ValueError as e:
            raise ProviderUnavailableError(self.name, "response is not valid JSON") from e

        # Older deployments wrap the list in {"data": [...]}
        if isinstance(payload, dict):
            payload = payload.get("data")
        if not isinstance(payload, list):
            raise ProviderUnavailableError(self.name, "unexpected response shape")
        return payload
