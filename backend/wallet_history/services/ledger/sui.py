# backend/wallet_history/services/ledger/sui.py
"""
Sui full-node ledger source.

Reads an account's transaction history and coin balance over the Sui
JSON-RPC API using httpx:

- suix_queryTransactionBlocks: paginated transaction blocks filtered by
  sender (FromAddress) or recipient (ToAddress), newest first, with balance
  changes and effects included
- suix_getBalance: total balance for one coin type, in base units

Error Handling:
    Network errors, timeouts, HTTP 429 and 5xx responses are raised as
    retryable LedgerUnavailableError and retried with exponential backoff.
    JSON-RPC error objects and other HTTP statuses are permanent and raised
    without retrying. Individual malformed transaction records are skipped
    with a warning rather than failing the whole page.
"""

import itertools
import logging
from typing import Any

import httpx
from pydantic import ValidationError as PydanticValidationError
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from wallet_history.config import SUI_NETWORK_URLS
from wallet_history.services.circuit_breaker import CircuitBreaker, CircuitBreakerOpen
from wallet_history.services.constants import MAX_LEDGER_PAGE_SIZE, SUI_COIN_TYPE, SUI_DECIMALS
from wallet_history.services.exceptions import LedgerUnavailableError
from wallet_history.services.ledger.types import (
    Balance,
    Direction,
    LedgerPage,
    LedgerTransaction,
)

logger = logging.getLogger(__name__)


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, LedgerUnavailableError) and exc.retryable


class SuiLedgerSource:
    """
    LedgerSource implementation backed by a Sui full node.

    Configuration:
        rpc_url: JSON-RPC endpoint
        client: Shared httpx.AsyncClient (created and owned if omitted)
        timeout: Per-request timeout in seconds
        circuit_breaker: Breaker guarding the endpoint (created if omitted)
    """

    MAX_RETRY_ATTEMPTS: int = 3
    RETRY_MIN_WAIT: float = 1
    RETRY_MAX_WAIT: float = 10
    RETRY_MULTIPLIER: float = 1

    TRANSACTION_OPTIONS: dict[str, bool] = {
        "showBalanceChanges": True,
        "showEffects": True,
        "showInput": True,
    }

    def __init__(
            self,
            rpc_url: str,
            client: httpx.AsyncClient | None = None,
            timeout: float = 10.0,
            circuit_breaker: CircuitBreaker | None = None,
    ) -> None:
        self._rpc_url = rpc_url
        self._timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._breaker = circuit_breaker or CircuitBreaker(name="sui-rpc")
        self._request_ids = itertools.count(1)
        logger.info(f"SuiLedgerSource initialized (rpc_url={rpc_url}, timeout={timeout}s)")

    @classmethod
    def for_network(cls, network: str, **kwargs: Any) -> "SuiLedgerSource":
        """Build a source for a named public network (mainnet, testnet, devnet)."""
        try:
            rpc_url = SUI_NETWORK_URLS[network.lower()]
        except KeyError:
            raise ValueError(
                f"Unknown Sui network '{network}'. "
                f"Valid networks: {', '.join(SUI_NETWORK_URLS)}"
            ) from None
        return cls(rpc_url, **kwargs)

    @property
    def name(self) -> str:
        return "sui"

    @property
    def rpc_url(self) -> str:
        return self._rpc_url

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return self._breaker

    async def aclose(self) -> None:
        """Close the HTTP client if this source created it."""
        if self._owns_client:
            await self._client.aclose()

    # =========================================================================
    # LEDGER SOURCE API
    # =========================================================================

    async def list_balance_events(
            self,
            account: str,
            direction: Direction,
            cursor: str | None = None,
            limit: int = MAX_LEDGER_PAGE_SIZE,
    ) -> LedgerPage:
        """
        Fetch one page of transaction blocks touching `account`.

        Args:
            account: Canonical Sui address
            direction: OUTGOING (sender) or INCOMING (recipient)
            cursor: Continuation cursor from the previous page
            limit: Page size, capped at 50

        Returns:
            LedgerPage with parsed transactions, newest first

        Raises:
            LedgerUnavailableError: If the node cannot be queried
        """
        page_size = max(1, min(limit, MAX_LEDGER_PAGE_SIZE))
        query = {
            "filter": {direction.rpc_filter: account},
            "options": self.TRANSACTION_OPTIONS,
        }
        result = await self._call(
            "suix_queryTransactionBlocks",
            [query, cursor, page_size, True],
        )

        if not isinstance(result, dict):
            raise LedgerUnavailableError(
                "unexpected result shape", "suix_queryTransactionBlocks", retryable=False
            )

        transactions = self._parse_transactions(result.get("data") or [])
        page = LedgerPage(
            data=transactions,
            next_cursor=result.get("nextCursor"),
            has_next_page=bool(result.get("hasNextPage")),
        )
        logger.debug(
            f"Fetched {len(transactions)} {direction.value} transactions for {account} "
            f"(has_next_page={page.has_next_page})"
        )
        return page

    async def get_balance(
            self,
            account: str,
            coin_type: str = SUI_COIN_TYPE,
            decimals: int = SUI_DECIMALS,
    ) -> Balance:
        """
        Fetch the account's current total balance for a coin type.

        Raises:
            LedgerUnavailableError: If the node cannot be queried or the
                response cannot be parsed
        """
        result = await self._call("suix_getBalance", [account, coin_type])

        try:
            raw_total = int(result["totalBalance"])
            return Balance(
                coin_type=result.get("coinType", coin_type),
                raw_total=raw_total,
                decimals=decimals,
            )
        except (TypeError, KeyError, ValueError) as e:
            raise LedgerUnavailableError(
                f"malformed balance response: {e}", "suix_getBalance", retryable=False
            ) from e

    # =========================================================================
    # JSON-RPC TRANSPORT
    # =========================================================================

    async def _call(self, method: str, params: list[Any]) -> Any:
        """Execute a JSON-RPC call with retry on transient failures."""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.MAX_RETRY_ATTEMPTS),
            wait=wait_exponential(
                multiplier=self.RETRY_MULTIPLIER,
                min=self.RETRY_MIN_WAIT,
                max=self.RETRY_MAX_WAIT,
            ),
            retry=retry_if_exception(_is_retryable),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                return await self._post(method, params)

    async def _post(self, method: str, params: list[Any]) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._request_ids),
            "method": method,
            "params": params,
        }

        try:
            async with self._breaker:
                response = await self._send(method, payload)
        except CircuitBreakerOpen as e:
            raise LedgerUnavailableError(str(e), method, retryable=False) from e

        try:
            body = response.json()
        except ValueError as e:
            raise LedgerUnavailableError("response is not valid JSON", method) from e

        error = body.get("error") if isinstance(body, dict) else None
        if error:
            code = error.get("code") if isinstance(error, dict) else None
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise LedgerUnavailableError(f"RPC error {code}: {message}", method, retryable=False)

        if not isinstance(body, dict) or "result" not in body:
            raise LedgerUnavailableError("response has no result", method, retryable=False)

        return body["result"]

    async def _send(self, method: str, payload: dict[str, Any]) -> httpx.Response:
        """POST the payload; transport failures count against the breaker."""
        try:
            response = await self._client.post(self._rpc_url, json=payload, timeout=self._timeout)
        except httpx.TimeoutException as e:
            raise LedgerUnavailableError(f"timed out after {self._timeout}s", method) from e
        except httpx.RequestError as e:
            raise LedgerUnavailableError(f"network error: {e}", method) from e

        if response.status_code == 429 or response.status_code >= 500:
            raise LedgerUnavailableError(f"HTTP {response.status_code}", method)
        if response.status_code != 200:
            raise LedgerUnavailableError(f"HTTP {response.status_code}", method, retryable=False)

        return response

    @staticmethod
    def _parse_transactions(records: list[Any]) -> list[LedgerTransaction]:
        transactions = []
        for raw in records:
            try:
                transactions.append(LedgerTransaction.model_validate(raw))
            except PydanticValidationError as e:
                digest = raw.get("digest") if isinstance(raw, dict) else None
                logger.warning(
                    f"Skipping malformed ledger record {digest or '<unknown>'}: "
                    f"{e.error_count()} validation error(s)"
                )
        return transactions
