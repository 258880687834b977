# backend/wallet_history/services/transactions/types.py
"""
Data types for the account transaction list.

Design Principles:
- Use Decimal for ALL quantities (never float)
- Immutable value objects (frozen=True)
- Raw RPC shapes stay in the ledger layer; these are display-ready
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum


class TransactionKind(str, Enum):
    """How a transaction moved funds for the account."""
    SEND = "send"
    RECEIVE = "receive"
    MIXED = "mixed"
    NONE = "none"


class TransactionStatus(str, Enum):
    """Execution outcome reported in the transaction effects."""
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True)
class TransferLeg:
    """
    One owner's change in one coin within a transaction.

    Attributes:
        owner: Canonical owner address (None for non-address owners)
        coin_type: Canonical Move coin type
        raw_amount: Signed change in the coin's base units
    """

    owner: str | None
    coin_type: str
    raw_amount: int


@dataclass(frozen=True)
class AccountTransaction:
    """
    A transaction as seen from one account.

    Attributes:
        digest: Transaction digest
        timestamp: Checkpoint time (None if the node did not report one)
        status: Execution outcome
        kind: Send, receive, mixed or none, from the account's perspective
        sender: Address that signed the transaction
        recipient: First other address credited by the transaction
        amount: Net change of the tracked asset for the account
        gas_fee: Net gas paid by the sender, in SUI (zero if unreported)
        legs: Every balance change in the transaction
    """

    digest: str
    timestamp: datetime | None
    status: TransactionStatus
    kind: TransactionKind
    sender: str | None
    recipient: str | None
    amount: Decimal
    gas_fee: Decimal
    legs: tuple[TransferLeg, ...] = ()


@dataclass
class TransactionList:
    """
    Result of list_transactions, newest first.

    Attributes:
        account: Canonical account address
        transactions: Classified transactions
        complete: True if the whole ledger fit within the limit
        warnings: Data quality notes (truncation, failed feeds)
    """

    account: str
    transactions: list[AccountTransaction] = field(default_factory=list)
    complete: bool = True
    warnings: list[str] = field(default_factory=list)
