"""
Business logic services.
"""
from creditledger.services.balance_cache import BalanceCache
from creditledger.services.credit_ledger import (
    CreditLedger,
    CreditTransactionResult,
    CreditValidationResult,
    get_credit_ledger,
)

__all__ = [
    "BalanceCache",
    "CreditLedger",
    "CreditTransactionResult",
    "CreditValidationResult",
    "get_credit_ledger",
]
