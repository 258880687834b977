# backend/wallet_history/services/transactions/service.py
"""
Account Transaction Service - recent activity of one account.

Reads both ledger feeds, merges them newest first and classifies each
transaction from the account's point of view:

    | Account legs in the transaction  | Kind    |
    |----------------------------------|---------|
    | only debits                      | send    |
    | only credits                     | receive |
    | debits and credits (e.g. a swap) | mixed   |
    | none, but the account signed     | send    |
    | none                             | none    |

Each direction is read up to `limit` transactions on its own, so the
merged list holds the true newest `limit` even when one side is busier.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from decimal import Decimal

from wallet_history.services.constants import (
    DEFAULT_TRANSACTION_LIMIT,
    MAX_LEDGER_PAGE_SIZE,
    MAX_TRANSACTION_LIMIT,
    SUI_DECIMALS,
)
from wallet_history.services.exceptions import InvalidInputError
from wallet_history.services.ledger.collector import collect_ledger_transactions
from wallet_history.services.ledger.normalizer import validate_account, validate_asset
from wallet_history.services.ledger.types import Asset, Direction, LedgerTransaction
from wallet_history.services.protocols import LedgerSource
from wallet_history.services.transactions.types import (
    AccountTransaction,
    TransactionKind,
    TransactionList,
    TransactionStatus,
    TransferLeg,
)

logger = logging.getLogger(__name__)

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def classify_transaction(
        tx: LedgerTransaction,
        account: str,
        asset: Asset,
) -> AccountTransaction:
    """
    Describe a raw transaction from the perspective of `account`.

    Args:
        tx: Parsed ledger record
        account: Canonical account address
        asset: Tracked asset, used for `amount`

    Returns:
        AccountTransaction
    """
    changes = tx.resolved_balance_changes() or []
    legs = tuple(
        TransferLeg(owner=c.owner, coin_type=c.coin_type, raw_amount=c.amount)
        for c in changes
    )

    own = [leg for leg in legs if leg.owner == account]
    debited = any(leg.raw_amount < 0 for leg in own)
    credited = any(leg.raw_amount > 0 for leg in own)

    if debited and credited:
        kind = TransactionKind.MIXED
    elif debited:
        kind = TransactionKind.SEND
    elif credited:
        kind = TransactionKind.RECEIVE
    elif tx.sender == account:
        kind = TransactionKind.SEND
    else:
        kind = TransactionKind.NONE

    coin_type = asset.canonical_coin_type
    raw_net = sum(leg.raw_amount for leg in own if leg.coin_type == coin_type)

    recipient = next(
        (leg.owner for leg in legs if leg.owner and leg.owner != tx.sender and leg.raw_amount > 0),
        None,
    )

    effects = tx.effects
    status = (
        TransactionStatus.SUCCESS
        if effects is not None and effects.status == "success"
        else TransactionStatus.FAILED
    )
    gas_raw = effects.gas_used.total if effects is not None and effects.gas_used else 0

    return AccountTransaction(
        digest=tx.digest,
        timestamp=tx.timestamp,
        status=status,
        kind=kind,
        sender=tx.sender,
        recipient=recipient,
        amount=asset.to_natural_units(raw_net),
        gas_fee=Decimal(gas_raw).scaleb(-SUI_DECIMALS),
        legs=legs,
    )


class AccountTransactionService:
    """
    Lists an account's recent transactions.

    Args:
        ledger: Default ledger source
        asset: Tracked asset (defaults to native SUI)
        page_size: Ledger page size
        ledger_for_network: Factory resolving a network name to a ledger
            source; requests naming a network need one
    """

    def __init__(
            self,
            ledger: LedgerSource,
            asset: Asset | None = None,
            page_size: int = MAX_LEDGER_PAGE_SIZE,
            ledger_for_network: Callable[[str], LedgerSource] | None = None,
    ) -> None:
        self._ledger = ledger
        self._asset = validate_asset(asset or Asset())
        self._page_size = page_size
        self._ledger_for_network = ledger_for_network

    async def list_transactions(
            self,
            account: str,
            limit: int = DEFAULT_TRANSACTION_LIMIT,
            *,
            network: str | None = None,
    ) -> TransactionList:
        """
        Get up to `limit` of the account's most recent transactions.

        Raises:
            InvalidInputError: Malformed account, out-of-range limit or
                unknown network
        """
        account_key = validate_account(account)
        if not 1 <= limit <= MAX_TRANSACTION_LIMIT:
            raise InvalidInputError(
                f"limit must be between 1 and {MAX_TRANSACTION_LIMIT}, got {limit}",
                field="limit",
            )
        ledger = self._resolve_ledger(network)
        page_size = min(limit, self._page_size)

        collections = await asyncio.gather(*(
            collect_ledger_transactions(
                ledger,
                account_key,
                max_transactions=limit,
                page_size=page_size,
                directions=(direction,),
            )
            for direction in (Direction.OUTGOING, Direction.INCOMING)
        ))

        merged = _unique(tx for c in collections for tx in c.transactions)
        classified = sorted(
            (classify_transaction(tx, account_key, self._asset) for tx in merged),
            key=lambda t: t.timestamp or _OLDEST,
            reverse=True,
        )

        warnings = [
            f"Ledger {direction.value} feed failed; the list may be missing transactions"
            for c in collections
            for direction in c.failed_directions
        ]
        complete = all(c.complete for c in collections) and len(classified) <= limit

        logger.info(
            f"Listed {min(len(classified), limit)} transactions for {account_key}",
            extra={"limit": limit, "complete": complete},
        )
        return TransactionList(
            account=account_key,
            transactions=classified[:limit],
            complete=complete,
            warnings=warnings,
        )

    def _resolve_ledger(self, network: str | None) -> LedgerSource:
        if network is None:
            return self._ledger
        if self._ledger_for_network is None:
            raise InvalidInputError("network selection is not supported", field="network")
        try:
            return self._ledger_for_network(network)
        except ValueError as e:
            raise InvalidInputError(str(e), field="network") from e


def _unique(transactions: Iterable[LedgerTransaction]) -> list[LedgerTransaction]:
    seen: set[str] = set()
    unique = []
    for tx in transactions:
        if tx.digest not in seen:
            seen.add(tx.digest)
            unique.append(tx)
    return unique
