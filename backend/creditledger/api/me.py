"""
Credit endpoints for the authenticated user.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from creditledger.models.credit_transaction import CreditKind
from creditledger.models.user import User
from creditledger.auth.dependencies import get_current_user
from creditledger.schemas.credit import (
    BalancesResponse,
    TransactionHistoryResponse,
    TransactionResponse,
    ValidateCreditsRequest,
    ValidationResponse,
)
from creditledger.services.credit_ledger import CreditLedger, get_credit_ledger

router = APIRouter()


@router.get("/credits", response_model=BalancesResponse)
async def get_credits(
    ledger: CreditLedger = Depends(get_credit_ledger),
    current_user: User = Depends(get_current_user)
):
    """
    Get both credit balances for the authenticated user.
    Requires valid Firebase JWT token.
    """
    return BalancesResponse(
        user_id=current_user.id,
        credits=await ledger.get_balance(current_user.id, CreditKind.GENERAL),
        bg_removal_credits=await ledger.get_balance(current_user.id, CreditKind.BG_REMOVAL),
    )


@router.post("/credits/validate", response_model=ValidationResponse)
async def validate_credits(
    request: ValidateCreditsRequest,
    ledger: CreditLedger = Depends(get_credit_ledger),
    current_user: User = Depends(get_current_user)
):
    """
    Check whether the user can afford an action before starting it.
    The answer is advisory: the debit re-checks the balance itself.
    """
    validation = await ledger.validate(current_user.id, request.kind, request.amount)
    return ValidationResponse(
        is_valid=validation.is_valid,
        available=validation.available,
        required=validation.required,
        deficit=validation.deficit,
    )


@router.get("/transactions", response_model=TransactionHistoryResponse)
async def get_transactions(
    limit: int = Query(50, ge=1, le=200),
    kind: Optional[CreditKind] = None,
    ledger: CreditLedger = Depends(get_credit_ledger),
    current_user: User = Depends(get_current_user)
):
    """Ledger history for the authenticated user, newest first."""
    entries = await ledger.get_transaction_history(current_user.id, limit=limit, kind=kind)
    return TransactionHistoryResponse(
        transactions=[TransactionResponse.model_validate(entry) for entry in entries]
    )
