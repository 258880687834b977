# backend/tests/helpers.py
"""
Shared test data and in-memory doubles.

- A fixed "now" so windows and cutoffs are deterministic
- Sample raw Sui transaction factories
- FakeLedger / FakeOracle implementing the service protocols
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

from wallet_history.services.exceptions import LedgerUnavailableError, PriceNotFoundError
from wallet_history.services.ledger.types import (
    Balance,
    BalanceEvent,
    Direction,
    LedgerPage,
    LedgerTransaction,
)
from wallet_history.utils.time_utils import to_epoch_ms

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)

ACCOUNT = "0x" + "a1" * 32
OTHER_ACCOUNT = "0x" + "b2" * 32
SUI = "0x2::sui::SUI"
USDC = "0x5d4b302506645c37ff133b98c4b50a5ae14841659738d6d733d59d0d217a93bf::coin::COIN"

MIST_PER_SUI = 10 ** 9


# =============================================================================
# FACTORIES
# =============================================================================

def make_event(event_id: str, ago: timedelta, delta: str | int, now: datetime = NOW) -> BalanceEvent:
    """BalanceEvent `ago` before `now`."""
    return BalanceEvent(id=event_id, timestamp=now - ago, delta=Decimal(str(delta)))


def raw_transaction(
        digest: str,
        timestamp: datetime | None,
        changes: list[tuple[str, str, int]] | None,
        in_effects: bool = False,
        sender: str | None = None,
        status: str | None = None,
        gas: tuple[int, int, int] | None = None,
) -> dict[str, Any]:
    """
    Raw suix_queryTransactionBlocks record.

    Args:
        changes: (owner, coin_type, amount in base units) tuples; None omits
            balance changes entirely
        in_effects: Put the changes under effects instead of the top level
        sender: Transaction sender, reported under transaction.data
        status: Effects status ("success" or "failure")
        gas: (computation, storage, rebate) costs in base units
    """
    record: dict[str, Any] = {"digest": digest}
    effects: dict[str, Any] = {}
    if timestamp is not None:
        record["timestampMs"] = str(to_epoch_ms(timestamp))
    if changes is not None:
        payload = [
            {"owner": {"AddressOwner": owner}, "coinType": coin_type, "amount": str(amount)}
            for owner, coin_type, amount in changes
        ]
        if in_effects:
            effects["balanceChanges"] = payload
        else:
            record["balanceChanges"] = payload
    if sender is not None:
        record["transaction"] = {"data": {"sender": sender}}
    if status is not None:
        effects["status"] = {"status": status}
    if gas is not None:
        computation, storage, rebate = gas
        effects["gasUsed"] = {
            "computationCost": str(computation),
            "storageCost": str(storage),
            "storageRebate": str(rebate),
        }
    if effects:
        record["effects"] = effects
    return record


# =============================================================================
# TEST DOUBLES
# =============================================================================

class FakeLedger:
    """
    In-memory LedgerSource.

    Pages are served per direction from lists of raw records; failures can
    be injected per direction.
    """

    def __init__(
            self,
            outgoing: list[dict] | None = None,
            incoming: list[dict] | None = None,
            balance_mist: int = 0,
            page_size: int = 2,
    ) -> None:
        self._feeds = {
            Direction.OUTGOING: [LedgerTransaction.model_validate(r) for r in outgoing or []],
            Direction.INCOMING: [LedgerTransaction.model_validate(r) for r in incoming or []],
        }
        self._page_size = page_size
        self.balance_mist = balance_mist
        self.fail_directions: set[Direction] = set()
        self.fail_balance = False
        self.calls: list[tuple[Direction, str | None]] = []
        self.balance_calls = 0

    async def list_balance_events(self, account, direction, cursor=None, limit=50):
        self.calls.append((direction, cursor))
        if direction in self.fail_directions:
            raise LedgerUnavailableError("connection refused", "suix_queryTransactionBlocks")

        feed = self._feeds[direction]
        start = int(cursor) if cursor else 0
        size = min(limit, self._page_size)
        end = start + size
        has_next = end < len(feed)
        return LedgerPage(
            data=feed[start:end],
            next_cursor=str(end) if has_next else None,
            has_next_page=has_next,
        )

    async def get_balance(self, account, coin_type=SUI, decimals=9):
        self.balance_calls += 1
        if self.fail_balance:
            raise LedgerUnavailableError("connection refused", "suix_getBalance")
        return Balance(coin_type=coin_type, raw_total=self.balance_mist, decimals=decimals)


class FakeOracle:
    """
    In-memory PriceOracle.

    Historical prices are keyed by UTC date; a missing date raises
    PriceNotFoundError. Dates listed in `fail_days` raise too.
    """

    def __init__(
            self,
            spot: Decimal | None = Decimal("2"),
            daily: dict | None = None,
            default: Decimal | None = None,
    ) -> None:
        self.spot = spot
        self.daily = daily or {}
        self.default = default
        self.spot_calls = 0
        self.history_calls: list[datetime] = []

    async def current_price(self, symbol):
        self.spot_calls += 1
        if self.spot is None:
            raise PriceNotFoundError(symbol, "fake")
        return self.spot

    async def price_near(self, symbol, timestamp):
        self.history_calls.append(timestamp)
        price = self.daily.get(timestamp.date(), self.default)
        if price is None:
            raise PriceNotFoundError(symbol, "fake", timestamp.isoformat())
        return price

