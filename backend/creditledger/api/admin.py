"""
Admin endpoints for inspecting and adjusting credit balances.

Every balance change goes through the ledger so that it is recorded as an
ADMIN_ADJUSTMENT entry; nothing here writes a balance column directly.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status

from creditledger.exceptions import TransactionFailureError
from creditledger.models.credit_transaction import CreditKind
from creditledger.models.user import User
from creditledger.auth.dependencies import require_admin
from creditledger.schemas.credit import (
    AdminAdjustRequest,
    AdminSetBalancesRequest,
    AdminSetBalancesResponse,
    AdminTransactionListResponse,
    AdminTransactionResponse,
    LedgerMutationResponse,
    TransactionResponse,
)
from creditledger.services.credit_ledger import CreditLedger, CreditTransactionResult, get_credit_ledger

logger = logging.getLogger(__name__)

router = APIRouter()


def _ensure_applied(operation: str, result: CreditTransactionResult) -> CreditTransactionResult:
    """Turn a failed unit of work into a 503 with a generic message."""
    if not result.success:
        raise TransactionFailureError(operation, result.error or "unknown error")
    return result


@router.get("/credits/transactions", response_model=AdminTransactionListResponse)
async def list_transactions(
    limit: int = Query(100, ge=1, le=500),
    ledger: CreditLedger = Depends(get_credit_ledger),
    admin: User = Depends(require_admin)
):
    """Latest ledger entries across all users."""
    rows = await ledger.recent_transactions(limit=limit)
    return AdminTransactionListResponse(
        transactions=[
            AdminTransactionResponse(
                **TransactionResponse.model_validate(entry).model_dump(),
                user_email=owner.email,
                user_name=owner.name,
            )
            for entry, owner in rows
        ]
    )


@router.post("/credits", response_model=LedgerMutationResponse)
async def adjust_credits(
    request: AdminAdjustRequest,
    ledger: CreditLedger = Depends(get_credit_ledger),
    admin: User = Depends(require_admin)
):
    """
    Add (positive amount) or remove (negative amount) credits of one kind.
    Removing more than the user holds is rejected with 402.
    """
    result = _ensure_applied(
        "adjust",
        await ledger.adjust(request.user_id, request.kind, request.amount, request.description),
    )
    logger.info(
        f"Admin {admin.id} adjusted {request.kind.value} credits of user {request.user_id} "
        f"by {request.amount}"
    )
    return LedgerMutationResponse(
        success=True,
        new_balance=result.new_balance,
        transaction_id=result.transaction_id,
    )


@router.patch("/users/{user_id}/balances", response_model=AdminSetBalancesResponse)
async def set_balances(
    user_id: str,
    request: AdminSetBalancesRequest,
    ledger: CreditLedger = Depends(get_credit_ledger),
    admin: User = Depends(require_admin)
):
    """
    Set one or both balances to absolute values, all or nothing.
    Each changed balance produces one ADMIN_ADJUSTMENT entry for the difference.
    """
    targets = {
        kind: target
        for kind, target in (
            (CreditKind.GENERAL, request.credits),
            (CreditKind.BG_REMOVAL, request.bg_removal_credits),
        )
        if target is not None
    }
    if not targets:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Provide credits and/or bg_removal_credits"
        )

    results = await ledger.set_balances(user_id, targets)
    transaction_ids = []
    for result in results.values():
        _ensure_applied("set_balance", result)
        if result.transaction_id:
            transaction_ids.append(result.transaction_id)

    logger.info(f"Admin {admin.id} set balances of user {user_id}: {request.model_dump(exclude_none=True)}")
    return AdminSetBalancesResponse(
        user_id=user_id,
        credits=await ledger.get_balance(user_id, CreditKind.GENERAL),
        bg_removal_credits=await ledger.get_balance(user_id, CreditKind.BG_REMOVAL),
        transaction_ids=transaction_ids,
    )
