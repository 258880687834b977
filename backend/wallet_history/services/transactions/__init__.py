# backend/wallet_history/services/transactions/__init__.py
"""
Account transaction list: recent ledger activity, classified per account.

Usage:
    from wallet_history.services.transactions import AccountTransactionService
"""

from wallet_history.services.transactions.service import (
    AccountTransactionService,
    classify_transaction,
)
from wallet_history.services.transactions.types import (
    AccountTransaction,
    TransactionKind,
    TransactionList,
    TransactionStatus,
    TransferLeg,
)

__all__ = [
    "AccountTransactionService",
    "classify_transaction",
    "AccountTransaction",
    "TransactionKind",
    "TransactionList",
    "TransactionStatus",
    "TransferLeg",
]
