# backend/wallet_history/services/ledger/collector.py
"""
Pagination driver for a direction-aware ledger source.

Sui indexes transactions by sender and by recipient separately, so a
complete account history needs both feeds. Both directions are paged
concurrently until each is exhausted or the combined transaction budget is
reached. Digests seen in one direction are dropped from the other as they
arrive (a self-transfer appears in both).

Collection is best-effort: if one direction fails part-way, the pages
already fetched are kept and the failure is reported as a warning.
"""

import asyncio
import logging
from dataclasses import dataclass, field

from wallet_history.services.constants import MAX_LEDGER_PAGE_SIZE, MAX_LEDGER_PAGES
from wallet_history.services.exceptions import UpstreamUnavailableError
from wallet_history.services.ledger.types import Direction, LedgerTransaction
from wallet_history.services.protocols import LedgerSource

logger = logging.getLogger(__name__)


@dataclass
class LedgerCollection:
    """
    Transactions gathered for one account.

    Attributes:
        transactions: Unique transactions, in arrival order
        truncated: True if the budget stopped collection early
        failed_directions: Directions that hit an upstream failure
        warnings: Human-readable data quality notes
        pages_fetched: Total pages requested across both directions
    """

    transactions: list[LedgerTransaction] = field(default_factory=list)
    truncated: bool = False
    failed_directions: list[Direction] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    pages_fetched: int = 0

    @property
    def complete(self) -> bool:
        """True if every direction was read to the end."""
        return not self.truncated and not self.failed_directions


async def collect_ledger_transactions(
        source: LedgerSource,
        account: str,
        max_transactions: int,
        page_size: int = MAX_LEDGER_PAGE_SIZE,
        directions: tuple[Direction, ...] = (Direction.OUTGOING, Direction.INCOMING),
) -> LedgerCollection:
    """
    Page through every direction of an account's ledger.

    Args:
        source: Ledger source to read from
        account: Canonical account address
        max_transactions: Combined budget of unique transactions
        page_size: Transactions requested per page
        directions: Feeds to read

    Returns:
        LedgerCollection (never raises for upstream failures)
    """
    if max_transactions < 1:
        raise ValueError("max_transactions must be at least 1")

    collection = LedgerCollection()
    seen: set[str] = set()

    async def drain(direction: Direction) -> None:
        cursor: str | None = None
        visited_cursors: set[str] = set()

        for _ in range(MAX_LEDGER_PAGES):
            if len(seen) >= max_transactions:
                collection.truncated = True
                return

            try:
                page = await source.list_balance_events(account, direction, cursor, page_size)
            except UpstreamUnavailableError as e:
                logger.warning(f"Ledger {direction.value} feed failed for {account}: {e}")
                collection.failed_directions.append(direction)
                collection.warnings.append(
                    f"Ledger {direction.value} history incomplete: {e.reason}"
                )
                return

            collection.pages_fetched += 1

            for tx in page.data:
                if tx.digest in seen:
                    continue
                if len(seen) >= max_transactions:
                    collection.truncated = True
                    return
                seen.add(tx.digest)
                collection.transactions.append(tx)

            if not page.has_next_page or not page.next_cursor:
                return
            if page.next_cursor in visited_cursors:
                logger.warning(f"Ledger returned a repeated cursor for {account}; stopping")
                return

            visited_cursors.add(page.next_cursor)
            cursor = page.next_cursor

        logger.warning(f"Ledger {direction.value} page limit reached for {account}")
        collection.truncated = True

    await asyncio.gather(*(drain(direction) for direction in directions))

    if collection.truncated:
        collection.warnings.append(
            f"Ledger history capped at {max_transactions} transactions; "
            "older activity is estimated"
        )

    logger.debug(
        f"Collected {len(collection.transactions)} ledger transactions for {account} "
        f"in {collection.pages_fetched} pages"
    )
    return collection
