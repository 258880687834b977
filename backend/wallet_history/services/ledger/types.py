# backend/wallet_history/services/ledger/types.py
"""
Data types for the ledger layer.

Two families live here:

- Parsed RPC payloads (Pydantic models). Raw Sui JSON-RPC responses are
  validated once at the adapter boundary; every shape quirk of the node
  (owner as string vs. object, balance changes on the transaction vs. inside
  effects, amounts as integer strings) is resolved here so nothing
  downstream has to sniff shapes.
- Domain values (frozen dataclasses): Asset, Balance and BalanceEvent.

Design Principles:
- Use Decimal for ALL quantities (never float)
- Use aware UTC datetimes for ALL instants
- Immutable value objects (frozen=True)
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from wallet_history.services.constants import (
    SUI_ADDRESS_HEX_LENGTH,
    SUI_COIN_TYPE,
    SUI_DECIMALS,
    SUI_SYMBOL,
)
from wallet_history.utils.time_utils import from_epoch_ms

_ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{1,64}$")


def canonical_address(value: Any) -> str | None:
    """
    Return the canonical form of a Sui address, or None if malformed.

    Canonical form is `0x` followed by 64 lowercase hex digits; short
    addresses such as `0x2` are left-padded with zeros.
    """
    if not isinstance(value, str):
        return None
    candidate = value.strip()
    if not _ADDRESS_PATTERN.match(candidate):
        return None
    return "0x" + candidate[2:].lower().rjust(SUI_ADDRESS_HEX_LENGTH, "0")


def canonical_coin_type(value: str) -> str:
    """
    Normalize the address part of a Move coin type.

    The node reports `0x2::sui::SUI` in both short and long address forms;
    comparing canonical forms makes them equal.
    """
    address, sep, rest = value.strip().partition("::")
    canonical = canonical_address(address)
    if not sep or canonical is None:
        return value.strip()
    return f"{canonical}::{rest}"


# =============================================================================
# RPC PAYLOAD MODELS
# =============================================================================

class Direction(str, Enum):
    """Which side of a transaction the account was on."""
    OUTGOING = "outgoing"
    INCOMING = "incoming"

    @property
    def rpc_filter(self) -> str:
        """Filter key used by suix_queryTransactionBlocks."""
        return "FromAddress" if self is Direction.OUTGOING else "ToAddress"


class LedgerBalanceChange(BaseModel):
    """One per-owner, per-coin balance change reported by the node."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    owner: str | None = None
    coin_type: str = Field(alias="coinType")
    amount: int

    @field_validator("owner", mode="before")
    @classmethod
    def _resolve_owner(cls, value: Any) -> str | None:
        # Owner is either a bare address or {"AddressOwner": "0x.."} and friends
        if isinstance(value, str):
            return canonical_address(value)
        if isinstance(value, dict):
            for key in ("AddressOwner", "ObjectOwner"):
                if key in value:
                    return canonical_address(value[key])
            consensus = value.get("ConsensusAddressOwner")
            if isinstance(consensus, dict):
                return canonical_address(consensus.get("owner"))
        return None

    @field_validator("coin_type", mode="after")
    @classmethod
    def _normalize_coin_type(cls, value: str) -> str:
        return canonical_coin_type(value)


class LedgerGasCost(BaseModel):
    """Gas summary of an executed transaction, in base units."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    computation_cost: int = Field(default=0, alias="computationCost")
    storage_cost: int = Field(default=0, alias="storageCost")
    storage_rebate: int = Field(default=0, alias="storageRebate")

    @property
    def total(self) -> int:
        """Net fee paid by the sender (may be negative after a large rebate)."""
        return self.computation_cost + self.storage_cost - self.storage_rebate


class LedgerEffects(BaseModel):
    """The subset of transaction effects the adapters can use."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    status: str | None = None
    gas_used: LedgerGasCost | None = Field(default=None, alias="gasUsed")
    balance_changes: list[LedgerBalanceChange] | None = Field(default=None, alias="balanceChanges")

    @field_validator("status", mode="before")
    @classmethod
    def _unwrap_status(cls, value: Any) -> str | None:
        # {"status": "success"} or {"status": "failure", "error": "..."}
        if isinstance(value, dict):
            value = value.get("status")
        return value.lower() if isinstance(value, str) else None


class LedgerTransaction(BaseModel):
    """
    A single transaction block as returned by suix_queryTransactionBlocks.

    Object changes are intentionally not modelled; they describe object
    ownership, not fungible balances, and must never be read as deltas.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    digest: str = Field(min_length=1)
    timestamp_ms: int | None = Field(default=None, alias="timestampMs")
    sender: str | None = None
    balance_changes: list[LedgerBalanceChange] | None = Field(default=None, alias="balanceChanges")
    effects: LedgerEffects | None = None

    @model_validator(mode="before")
    @classmethod
    def _lift_sender(cls, data: Any) -> Any:
        # The sender lives at transaction.data.sender when showInput is set
        if isinstance(data, dict) and "sender" not in data:
            tx_input = data.get("transaction")
            body = tx_input.get("data") if isinstance(tx_input, dict) else None
            if isinstance(body, dict) and "sender" in body:
                return {**data, "sender": body["sender"]}
        return data

    @field_validator("sender", mode="before")
    @classmethod
    def _canonical_sender(cls, value: Any) -> str | None:
        return canonical_address(value)

    @property
    def timestamp(self) -> datetime | None:
        return from_epoch_ms(self.timestamp_ms)

    def resolved_balance_changes(self) -> list[LedgerBalanceChange] | None:
        """
        Balance changes from the transaction, falling back to its effects.

        Returns None when the record carries no balance data at all.
        """
        if self.balance_changes is not None:
            return self.balance_changes
        if self.effects is not None and self.effects.balance_changes is not None:
            return self.effects.balance_changes
        return None


@dataclass(frozen=True)
class LedgerPage:
    """One page of transactions plus its continuation cursor."""

    data: list[LedgerTransaction]
    next_cursor: str | None = None
    has_next_page: bool = False


# =============================================================================
# DOMAIN VALUES
# =============================================================================

@dataclass(frozen=True)
class Asset:
    """
    The fungible asset whose valuation is tracked.

    Attributes:
        symbol: Symbol passed to price oracles (e.g., "SUI")
        coin_type: Fully qualified Move type (e.g., "0x2::sui::SUI")
        decimals: Base-unit exponent (SUI: 9, amounts are in MIST)
    """

    symbol: str = SUI_SYMBOL
    coin_type: str = SUI_COIN_TYPE
    decimals: int = SUI_DECIMALS

    @property
    def is_specified(self) -> bool:
        return bool(self.symbol and self.symbol.strip() and self.coin_type and self.coin_type.strip())

    @property
    def canonical_coin_type(self) -> str:
        return canonical_coin_type(self.coin_type)

    def to_natural_units(self, raw_amount: int) -> Decimal:
        """Convert base units (e.g., MIST) to natural units (e.g., SUI)."""
        return Decimal(raw_amount).scaleb(-self.decimals)


@dataclass(frozen=True)
class Balance:
    """
    A typed balance produced once at the ledger adapter boundary.

    Attributes:
        coin_type: Move coin type the balance is for
        raw_total: Total in base units, exactly as reported by the node
        decimals: Base-unit exponent used to derive `amount`
    """

    coin_type: str
    raw_total: int
    decimals: int = SUI_DECIMALS

    def __post_init__(self) -> None:
        if self.raw_total < 0:
            raise ValueError(f"raw_total cannot be negative, got {self.raw_total}")

    @property
    def amount(self) -> Decimal:
        """Balance in natural units."""
        return Decimal(self.raw_total).scaleb(-self.decimals)


class BalanceDirection(str, Enum):
    RECEIVE = "receive"
    SEND = "send"


@dataclass(frozen=True)
class BalanceEvent:
    """
    A single balance-affecting event for one account and one asset.

    Attributes:
        id: Unique event identifier (transaction digest)
        timestamp: Aware UTC instant of the event
        delta: Net signed change in natural units (never zero)
    """

    id: str
    timestamp: datetime
    delta: Decimal

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("id is required")
        if self.timestamp.tzinfo is None:
            raise ValueError("timestamp must be timezone-aware")
        if self.delta == 0:
            raise ValueError("delta cannot be zero")

    @property
    def direction(self) -> BalanceDirection:
        return BalanceDirection.RECEIVE if self.delta > 0 else BalanceDirection.SEND
