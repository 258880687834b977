# backend/wallet_history/routers/transactions.py
"""
Account transaction endpoints.

- GET /accounts/{account}/transactions - Recent activity, newest first
"""

from fastapi import APIRouter, Depends, Path, Query

from wallet_history.dependencies import get_transaction_service
from wallet_history.schemas.transactions import (
    TransactionListResponse,
    TransactionSchema,
    TransferLegSchema,
)
from wallet_history.services.constants import DEFAULT_TRANSACTION_LIMIT
from wallet_history.services.transactions import (
    AccountTransaction,
    AccountTransactionService,
    TransactionList,
)

router = APIRouter(
    prefix="/accounts",
    tags=["Transactions"],
)


def _map_transaction(tx: AccountTransaction) -> TransactionSchema:
    return TransactionSchema(
        digest=tx.digest,
        timestamp=tx.timestamp,
        status=tx.status.value,
        kind=tx.kind.value,
        sender=tx.sender,
        recipient=tx.recipient,
        amount=tx.amount,
        gas_fee=tx.gas_fee,
        legs=[
            TransferLegSchema(owner=leg.owner, coin_type=leg.coin_type, raw_amount=leg.raw_amount)
            for leg in tx.legs
        ],
    )


def _map_list(result: TransactionList) -> TransactionListResponse:
    return TransactionListResponse(
        account=result.account,
        transactions=[_map_transaction(tx) for tx in result.transactions],
        total=len(result.transactions),
        complete=result.complete,
        warnings=result.warnings,
    )


@router.get(
    "/{account}/transactions",
    response_model=TransactionListResponse,
    summary="List recent transactions",
)
async def list_transactions(
        account: str = Path(..., description="Sui address (0x-prefixed hex)"),
        limit: int = Query(
            default=DEFAULT_TRANSACTION_LIMIT,
            description="Maximum number of transactions (1-500)"
        ),
        network: str | None = Query(
            default=None,
            description="Sui network override: mainnet, testnet, devnet"
        ),
        service: AccountTransactionService = Depends(get_transaction_service),
) -> TransactionListResponse:
    """
    List the account's most recent transactions, sent and received.

    Each entry is classified from the account's side (`send`, `receive`,
    `mixed` or `none`) with the signed net change of the tracked asset.
    A failed ledger feed yields a partial list with `warnings`. Raises
    **400** on a malformed account, out-of-range limit or unknown network.
    """
    result = await service.list_transactions(account, limit, network=network)
    return _map_list(result)
