"""
Pydantic schemas for API request/response validation.
"""
from creditledger.schemas.credit import (
    AdminAdjustRequest,
    AdminSetBalancesRequest,
    AdminSetBalancesResponse,
    AdminTransactionListResponse,
    AdminTransactionResponse,
    BalancesResponse,
    LedgerMutationResponse,
    TransactionHistoryResponse,
    TransactionResponse,
    ValidateCreditsRequest,
    ValidationResponse,
)

__all__ = [
    "AdminAdjustRequest",
    "AdminSetBalancesRequest",
    "AdminSetBalancesResponse",
    "AdminTransactionListResponse",
    "AdminTransactionResponse",
    "BalancesResponse",
    "LedgerMutationResponse",
    "TransactionHistoryResponse",
    "TransactionResponse",
    "ValidateCreditsRequest",
    "ValidationResponse",
]
