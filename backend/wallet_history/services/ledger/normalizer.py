# backend/wallet_history/services/ledger/normalizer.py
"""
Event normalizer: raw ledger transactions -> canonical BalanceEvents.

A raw transaction can move several coin types between several owners. The
normalizer reduces each transaction to one signed delta for the tracked
(account, asset) pair and drops everything else.

Rules:
    - Records without a resolvable timestamp are discarded
    - Balance changes come from the transaction, else from its effects;
      a record with neither carries no balance data and is discarded
      (object changes are never interpreted as balance movements)
    - All changes for the account and coin type within a record are summed;
      records that net to zero are discarded
    - Records with an already-seen digest collapse into the first one
    - Output is ordered by (timestamp, id), so repeated calls on the same
      input always return the same sequence

The normalizer is a pure function; it performs no I/O.
"""

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from wallet_history.services.exceptions import InvalidAccountError, InvalidAssetError
from wallet_history.services.ledger.types import (
    Asset,
    BalanceEvent,
    LedgerTransaction,
    canonical_address,
)

logger = logging.getLogger(__name__)


def validate_account(account: Any) -> str:
    """
    Validate and canonicalize an account address.

    Raises:
        InvalidAccountError: If the account is empty or not a 0x-hex address
    """
    canonical = canonical_address(account)
    if canonical is None:
        raise InvalidAccountError(account if isinstance(account, str) else repr(account))
    return canonical


def validate_asset(asset: Asset | None) -> Asset:
    """
    Ensure the asset is fully specified.

    Raises:
        InvalidAssetError: If the asset, its symbol or its coin type is missing
    """
    if asset is None:
        raise InvalidAssetError("no asset specified")
    if not asset.is_specified:
        raise InvalidAssetError("symbol and coin type are required")
    if asset.decimals < 0:
        raise InvalidAssetError(f"decimals cannot be negative, got {asset.decimals}")
    return asset


def normalize_events(
        raw_events: Iterable[LedgerTransaction | Mapping[str, Any]],
        account: str,
        asset: Asset,
) -> list[BalanceEvent]:
    """
    Convert raw ledger records into ordered BalanceEvents.

    Args:
        raw_events: Parsed LedgerTransactions or raw JSON-RPC records
        account: Account whose balance is tracked
        asset: Asset whose balance is tracked

    Returns:
        BalanceEvents sorted ascending by (timestamp, id)

    Raises:
        InvalidAccountError: If `account` is malformed
        InvalidAssetError: If `asset` is unspecified
    """
    account_key = validate_account(account)
    asset = validate_asset(asset)
    coin_type = asset.canonical_coin_type

    seen: set[str] = set()
    events: list[BalanceEvent] = []
    dropped = {"malformed": 0, "duplicate": 0, "no_timestamp": 0, "no_balance_data": 0, "zero_delta": 0}

    for record in raw_events:
        tx = _coerce(record)
        if tx is None:
            dropped["malformed"] += 1
            continue

        if tx.digest in seen:
            dropped["duplicate"] += 1
            continue
        seen.add(tx.digest)

        timestamp = tx.timestamp
        if timestamp is None:
            dropped["no_timestamp"] += 1
            continue

        changes = tx.resolved_balance_changes()
        if changes is None:
            dropped["no_balance_data"] += 1
            continue

        raw_delta = sum(
            change.amount
            for change in changes
            if change.owner == account_key and change.coin_type == coin_type
        )
        if raw_delta == 0:
            dropped["zero_delta"] += 1
            continue

        events.append(BalanceEvent(
            id=tx.digest,
            timestamp=timestamp,
            delta=asset.to_natural_units(raw_delta),
        ))

    events.sort(key=lambda e: (e.timestamp, e.id))

    logger.debug(
        f"Normalized {len(events)} {asset.symbol} events for {account_key}",
        extra={"dropped": dropped},
    )
    return events


def _coerce(record: LedgerTransaction | Mapping[str, Any]) -> LedgerTransaction | None:
    if isinstance(record, LedgerTransaction):
        return record
    try:
        return LedgerTransaction.model_validate(record)
    except PydanticValidationError as e:
        logger.warning(f"Ignoring malformed ledger record: {e.error_count()} validation error(s)")
        return None
