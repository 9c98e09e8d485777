"""
Database models package.
"""
from creditledger.models.base import Base
from creditledger.models.credit_transaction import (
    CreditKind,
    CreditTransaction,
    ImmutableTransactionError,
    TransactionCategory,
)
from creditledger.models.user import User

__all__ = [
    "Base",
    "User",
    "CreditKind",
    "CreditTransaction",
    "ImmutableTransactionError",
    "TransactionCategory",
]
