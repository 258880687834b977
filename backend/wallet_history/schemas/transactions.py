# backend/wallet_history/schemas/transactions.py
"""
Pydantic schemas for the account transaction list.
"""

import datetime as dt
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class TransferLegSchema(BaseModel):
    """One balance change inside a transaction."""

    model_config = ConfigDict(from_attributes=True)

    owner: str | None = Field(default=None, description="Address whose balance changed")
    coin_type: str = Field(..., description="Move coin type")
    raw_amount: int = Field(..., description="Signed change in raw (smallest) units")


class TransactionSchema(BaseModel):
    """A transaction as seen by the requested account."""

    model_config = ConfigDict(from_attributes=True)

    digest: str = Field(..., description="Transaction digest")
    timestamp: dt.datetime | None = Field(
        default=None,
        description="Checkpoint time (UTC); null if the ledger did not report one"
    )
    status: Literal["success", "failed"] = Field(..., description="Execution status")
    kind: Literal["send", "receive", "mixed", "none"] = Field(
        ...,
        description="Direction from the account's point of view"
    )
    sender: str | None = Field(default=None, description="Signer of the transaction")
    recipient: str | None = Field(
        default=None,
        description="First address other than the sender that was credited"
    )
    amount: Decimal = Field(
        ...,
        description="Signed net change of the tracked asset for the account (natural units)"
    )
    gas_fee: Decimal = Field(..., description="Net gas paid by the sender, in SUI")
    legs: list[TransferLegSchema] = Field(default_factory=list)


class TransactionListResponse(BaseModel):
    """Response for GET /accounts/{account}/transactions."""

    account: str = Field(..., description="Canonical account address")
    transactions: list[TransactionSchema] = Field(
        default_factory=list,
        description="Newest first"
    )
    total: int = Field(..., description="Number of transactions returned")
    complete: bool = Field(
        ...,
        description="False if older transactions exist or a ledger feed failed"
    )
    warnings: list[str] = Field(default_factory=list)
