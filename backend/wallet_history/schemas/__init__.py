# backend/wallet_history/schemas/__init__.py
"""Pydantic schemas for API serialization."""

from wallet_history.schemas.errors import (
    ErrorDetail,
    FieldErrorDetails,
    UpstreamErrorDetails,
    ValidationErrorDetail,
)
from wallet_history.schemas.market_data import PriceHistoryResponse, PricePointSchema
from wallet_history.schemas.portfolio import (
    AssetSchema,
    PortfolioHistoryResponse,
    PortfolioPointSchema,
    PriceLookupSummary,
)
from wallet_history.schemas.transactions import (
    TransactionListResponse,
    TransactionSchema,
    TransferLegSchema,
)

__all__ = [
    "ErrorDetail",
    "FieldErrorDetails",
    "UpstreamErrorDetails",
    "ValidationErrorDetail",
    "PriceHistoryResponse",
    "PricePointSchema",
    "AssetSchema",
    "PortfolioHistoryResponse",
    "PortfolioPointSchema",
    "PriceLookupSummary",
    "TransactionListResponse",
    "TransactionSchema",
    "TransferLegSchema",
]
