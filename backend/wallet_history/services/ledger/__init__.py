# backend/wallet_history/services/ledger/__init__.py
"""
Ledger layer: reading an account's transaction feed and reducing it to
balance events for one asset.

Components:
    - SuiLedgerSource: JSON-RPC adapter for a Sui full node
    - collect_ledger_transactions: paginates both directions concurrently
    - normalize_events: raw transactions -> ordered BalanceEvents

Usage:
    from wallet_history.services.ledger import (
        SuiLedgerSource,
        collect_ledger_transactions,
        normalize_events,
    )
"""

from wallet_history.services.ledger.collector import (
    LedgerCollection,
    collect_ledger_transactions,
)
from wallet_history.services.ledger.normalizer import (
    normalize_events,
    validate_account,
    validate_asset,
)
from wallet_history.services.ledger.sui import SuiLedgerSource
from wallet_history.services.ledger.types import (
    Asset,
    Balance,
    BalanceEvent,
    Direction,
    LedgerBalanceChange,
    LedgerEffects,
    LedgerGasCost,
    LedgerPage,
    LedgerTransaction,
)

__all__ = [
    "SuiLedgerSource",
    "LedgerCollection",
    "collect_ledger_transactions",
    "normalize_events",
    "validate_account",
    "validate_asset",
    "Asset",
    "Balance",
    "BalanceEvent",
    "Direction",
    "LedgerBalanceChange",
    "LedgerEffects",
    "LedgerGasCost",
    "LedgerPage",
    "LedgerTransaction",
]
