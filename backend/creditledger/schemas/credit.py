"""
Pydantic schemas for credit endpoints.
"""
from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime

from creditledger.models.credit_transaction import CreditKind, TransactionCategory


class BalancesResponse(BaseModel):
    """Both balances of a user."""
    user_id: str
    credits: int
    bg_removal_credits: int


class ValidateCreditsRequest(BaseModel):
    """Schema for an advisory balance check."""
    kind: CreditKind = CreditKind.GENERAL
    amount: int = Field(..., gt=0, description="Credits the next action will consume")


class ValidationResponse(BaseModel):
    """Schema for validation result."""
    is_valid: bool
    available: int
    required: int
    deficit: Optional[int] = None


class TransactionResponse(BaseModel):
    """Schema for a single ledger entry."""
    id: str
    user_id: str
    amount: int
    kind: CreditKind
    category: TransactionCategory
    description: Optional[str] = None
    balance_after: int
    created_at: datetime

    class Config:
        from_attributes = True


class TransactionHistoryResponse(BaseModel):
    """Schema for a user's ledger history."""
    transactions: List[TransactionResponse]


class AdminTransactionResponse(TransactionResponse):
    """Ledger entry with its owner, for the admin view."""
    user_email: Optional[str] = None
    user_name: Optional[str] = None


class AdminTransactionListResponse(BaseModel):
    transactions: List[AdminTransactionResponse]


class AdminAdjustRequest(BaseModel):
    """Signed admin adjustment of one balance."""
    user_id: str
    kind: CreditKind = CreditKind.GENERAL
    amount: int = Field(..., description="Positive adds credits, negative removes them")
    description: Optional[str] = None


class AdminSetBalancesRequest(BaseModel):
    """Target balances; omitted fields are left unchanged."""
    credits: Optional[int] = Field(None, ge=0)
    bg_removal_credits: Optional[int] = Field(None, ge=0)


class LedgerMutationResponse(BaseModel):
    """Result of a ledger mutation."""
    success: bool
    new_balance: int
    transaction_id: Optional[str] = None


class AdminSetBalancesResponse(BaseModel):
    user_id: str
    credits: int
    bg_removal_credits: int
    transaction_ids: List[str]
