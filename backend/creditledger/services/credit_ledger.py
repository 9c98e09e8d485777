"""
Credit ledger: the only code path allowed to change a user's balances.

Every mutation runs in its own unit of work (session + transaction) that
conditionally updates the balance row and appends a CreditTransaction, so the
balance and the audit trail commit or roll back together. Debits use a
compare-and-swap UPDATE (`WHERE balance >= amount ... RETURNING balance`), which
the database serializes per row; two concurrent debits can never both spend
the same credit.
"""
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Tuple
import asyncio
import logging
import time

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from creditledger.config import settings
from creditledger.database import AsyncSessionLocal
from creditledger.exceptions import (
    InsufficientCreditsError,
    InvalidAmountError,
    TransactionFailureError,
    UserNotFoundError,
)
from creditledger.models.credit_transaction import CreditKind, CreditTransaction, TransactionCategory
from creditledger.models.user import User
from creditledger.services.balance_cache import BalanceCache
from creditledger.utils.logging import (
    log_credits_added,
    log_credits_debited,
    log_insufficient_credits,
    log_ledger_failure,
)
from creditledger.utils.metrics import ledger_operation_duration_seconds, ledger_operations_total

logger = logging.getLogger(__name__)

# Errors meaning "the store failed", as opposed to a business-rule rejection
INFRASTRUCTURE_ERRORS = (SQLAlchemyError, OSError)

# Conditional UPDATE retries after a locked re-read found enough balance
MAX_APPLY_ATTEMPTS = 3

DEFAULT_USAGE_CATEGORY = {
    CreditKind.GENERAL: TransactionCategory.IMAGE_DESCRIPTION,
    CreditKind.BG_REMOVAL: TransactionCategory.BG_REMOVAL,
}


@dataclass
class CreditValidationResult:
    """Outcome of an advisory balance check. Reserves nothing."""
    is_valid: bool
    available: int
    required: int
    deficit: Optional[int] = None


@dataclass
class CreditTransactionResult:
    """Outcome of a debit/credit unit of work."""
    success: bool
    new_balance: Optional[int] = None
    transaction_id: Optional[str] = None
    error: Optional[str] = None


def _credit_noun(kind: CreditKind, amount: int) -> str:
    if kind is CreditKind.BG_REMOVAL:
        return f"{amount} BG removal credit(s)"
    return f"{amount} credit(s)"


def _require_positive(amount) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidAmountError(amount)


class CreditLedger:
    """
    Ledger over the two credit balances of every user.

    Usage:
        ledger = CreditLedger(AsyncSessionLocal)
        validation = await ledger.validate(user_id, CreditKind.BG_REMOVAL, 1)
        # ... call the external provider ...
        result = await ledger.debit(user_id, CreditKind.BG_REMOVAL, 1, "Background removed")
        if not result.success:
            # store failure; nothing was applied
            ...

    The balance cache belongs to this instance only. It is invalidated or
    replaced by every mutation issued through this instance; changes made by
    other instances or processes become visible once the TTL runs out or after
    clear_cache().
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cache_ttl: Optional[float] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        ttl = settings.balance_cache_ttl_seconds if cache_ttl is None else cache_ttl
        self._session_factory = session_factory
        self._cache = BalanceCache(ttl, clock) if clock else BalanceCache(ttl)

    # ------------------------------------------------------------------ reads

    async def get_balance(self, user_id: str, kind: CreditKind, force_refresh: bool = False) -> int:
        """
        Current balance of `kind` for the user.

        Served from the cache while fresh unless `force_refresh` is set.

        Raises:
            UserNotFoundError: If the user does not exist
            TransactionFailureError: If the store could not be read
        """
        if not force_refresh:
            cached = self._cache.get(user_id, kind)
            if cached is not None:
                return cached

        column = User.balance_column(kind)
        try:
            async with self._session_factory() as session:
                result = await session.execute(select(column).where(User.id == user_id))
                balance = result.scalar_one_or_none()
        except INFRASTRUCTURE_ERRORS as e:
            log_ledger_failure(logger, "get_balance", str(e), user_id=user_id, kind=kind.value)
            raise TransactionFailureError("get_balance", str(e)) from e

        if balance is None:
            raise UserNotFoundError(user_id)

        self._cache.put(user_id, kind, balance)
        return balance

    async def validate(self, user_id: str, kind: CreditKind, required_amount: int) -> CreditValidationResult:
        """
        Check whether the user can currently afford `required_amount`.

        Advisory only: the balance may change before the debit, which checks
        again inside its own transaction.
        """
        _require_positive(required_amount)
        available = await self.get_balance(user_id, kind)
        is_valid = available >= required_amount
        return CreditValidationResult(
            is_valid=is_valid,
            available=available,
            required=required_amount,
            deficit=None if is_valid else required_amount - available,
        )

    async def can_afford(self, user_id: str, kind: CreditKind, amount: int) -> bool:
        validation = await self.validate(user_id, kind, amount)
        return validation.is_valid

    async def validate_many(
        self,
        requests: Iterable[Tuple[str, int]],
        kind: CreditKind,
    ) -> List[Tuple[str, CreditValidationResult]]:
        """Validate several (user_id, required_amount) pairs concurrently."""
        requests = list(requests)
        validations = await asyncio.gather(
            *(self.validate(user_id, kind, required) for user_id, required in requests)
        )
        return [(user_id, validation) for (user_id, _), validation in zip(requests, validations)]

    async def get_transaction_history(
        self,
        user_id: str,
        limit: Optional[int] = None,
        kind: Optional[CreditKind] = None,
    ) -> List[CreditTransaction]:
        """Ledger entries of one user, newest first."""
        query = (
            select(CreditTransaction)
            .where(CreditTransaction.user_id == user_id)
            .order_by(CreditTransaction.created_at.desc())
            .limit(settings.transaction_history_limit if limit is None else limit)
        )
        if kind is not None:
            query = query.where(CreditTransaction.kind == kind)

        try:
            async with self._session_factory() as session:
                result = await session.execute(query)
                return list(result.scalars().all())
        except INFRASTRUCTURE_ERRORS as e:
            log_ledger_failure(logger, "get_transaction_history", str(e), user_id=user_id)
            raise TransactionFailureError("get_transaction_history", str(e)) from e

    async def recent_transactions(self, limit: Optional[int] = None) -> List[Tuple[CreditTransaction, User]]:
        """Latest ledger entries across all users, paired with their owner."""
        query = (
            select(CreditTransaction, User)
            .join(User, User.id == CreditTransaction.user_id)
            .order_by(CreditTransaction.created_at.desc())
            .limit(settings.admin_transactions_limit if limit is None else limit)
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(query)
                return [(entry, user) for entry, user in result.all()]
        except INFRASTRUCTURE_ERRORS as e:
            log_ledger_failure(logger, "recent_transactions", str(e))
            raise TransactionFailureError("recent_transactions", str(e)) from e

    # -------------------------------------------------------------- mutations

    async def debit(
        self,
        user_id: str,
        kind: CreditKind,
        amount: int,
        description: Optional[str] = None,
        category: Optional[TransactionCategory] = None,
    ) -> CreditTransactionResult:
        """
        Consume `amount` credits of `kind`.

        Raises:
            InvalidAmountError: If amount is not a positive integer
            UserNotFoundError: If the user does not exist
            InsufficientCreditsError: If the balance is below `amount` at commit time

        Returns:
            CreditTransactionResult; success=False only when the store failed,
            in which case nothing was applied.
        """
        _require_positive(amount)
        category = category or DEFAULT_USAGE_CATEGORY[kind]
        description = description or f"Deducted {_credit_noun(kind, amount)}"

        start_time = time.perf_counter()
        try:
            new_balance, transaction_id = await self._apply(user_id, kind, -amount, category, description)
        except InsufficientCreditsError as e:
            self._cache.invalidate(user_id, kind)
            ledger_operations_total.labels(operation="debit", kind=kind.value, outcome="insufficient").inc()
            log_insufficient_credits(logger, user_id, kind.value, e.required, e.available)
            raise
        except UserNotFoundError:
            self._cache.invalidate(user_id, kind)
            ledger_operations_total.labels(operation="debit", kind=kind.value, outcome="not_found").inc()
            raise
        except (TransactionFailureError, *INFRASTRUCTURE_ERRORS) as e:
            return self._failure("debit", e, user_id, kind, amount, start_time)

        duration = time.perf_counter() - start_time
        ledger_operation_duration_seconds.labels(operation="debit").observe(duration)
        ledger_operations_total.labels(operation="debit", kind=kind.value, outcome="success").inc()
        log_credits_debited(
            logger,
            user_id=user_id,
            kind=kind.value,
            amount=amount,
            new_balance=new_balance,
            transaction_id=transaction_id,
            category=category.value,
            duration_ms=duration * 1000,
        )
        return CreditTransactionResult(success=True, new_balance=new_balance, transaction_id=transaction_id)

    async def credit(
        self,
        user_id: str,
        kind: CreditKind,
        amount: int,
        description: Optional[str] = None,
        category: TransactionCategory = TransactionCategory.PURCHASE,
    ) -> CreditTransactionResult:
        """
        Add `amount` credits of `kind`. Always permitted for a positive amount.

        Raises:
            InvalidAmountError: If amount is not a positive integer
            UserNotFoundError: If the user does not exist
        """
        _require_positive(amount)
        description = description or f"Added {_credit_noun(kind, amount)}"

        start_time = time.perf_counter()
        try:
            new_balance, transaction_id = await self._apply(user_id, kind, amount, category, description)
        except UserNotFoundError:
            self._cache.invalidate(user_id, kind)
            ledger_operations_total.labels(operation="credit", kind=kind.value, outcome="not_found").inc()
            raise
        except (TransactionFailureError, *INFRASTRUCTURE_ERRORS) as e:
            return self._failure("credit", e, user_id, kind, amount, start_time)

        duration = time.perf_counter() - start_time
        ledger_operation_duration_seconds.labels(operation="credit").observe(duration)
        ledger_operations_total.labels(operation="credit", kind=kind.value, outcome="success").inc()
        log_credits_added(
            logger,
            user_id=user_id,
            kind=kind.value,
            amount=amount,
            new_balance=new_balance,
            transaction_id=transaction_id,
            category=category.value,
            duration_ms=duration * 1000,
        )
        return CreditTransactionResult(success=True, new_balance=new_balance, transaction_id=transaction_id)

    async def adjust(
        self,
        user_id: str,
        kind: CreditKind,
        delta: int,
        description: Optional[str] = None,
    ) -> CreditTransactionResult:
        """Signed admin adjustment, recorded as ADMIN_ADJUSTMENT."""
        if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0:
            raise InvalidAmountError(delta, "Adjustment must be a non-zero integer")

        description = description or _admin_description(kind, delta)
        if delta > 0:
            return await self.credit(user_id, kind, delta, description, TransactionCategory.ADMIN_ADJUSTMENT)
        return await self.debit(user_id, kind, -delta, description, TransactionCategory.ADMIN_ADJUSTMENT)

    async def set_balance(
        self,
        user_id: str,
        kind: CreditKind,
        target: int,
        description: Optional[str] = None,
    ) -> CreditTransactionResult:
        """
        Set a balance to `target` by recording the difference as a ledger entry.

        An unchanged target writes nothing and returns transaction_id=None.
        """
        results = await self.set_balances(user_id, {kind: target}, description)
        return results[kind]

    async def set_balances(
        self,
        user_id: str,
        targets: Dict[CreditKind, int],
        description: Optional[str] = None,
    ) -> Dict[CreditKind, CreditTransactionResult]:
        """
        Set several balances of one user in a single unit of work.

        Each current balance is read under a row lock and the write is guarded
        on that value, so a concurrent change makes the call fail instead of
        silently overwriting it. Either every target is applied or none is;
        on failure every kind maps to the same failed result.

        Raises:
            InvalidAmountError: If a target is not a non-negative integer
            UserNotFoundError: If the user does not exist
        """
        for target in targets.values():
            if isinstance(target, bool) or not isinstance(target, int) or target < 0:
                raise InvalidAmountError(target, "Target balance must be a non-negative integer")

        start_time = time.perf_counter()
        applied: Dict[CreditKind, Tuple[int, Optional[str]]] = {}
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    for kind, target in targets.items():
                        applied[kind] = await self._set_locked(session, user_id, kind, target, description)
        except UserNotFoundError:
            for kind in targets:
                self._cache.invalidate(user_id, kind)
                ledger_operations_total.labels(operation="set_balance", kind=kind.value, outcome="not_found").inc()
            raise
        except (TransactionFailureError, *INFRASTRUCTURE_ERRORS) as e:
            return {
                kind: self._failure("set_balance", e, user_id, kind, target, start_time)
                for kind, target in targets.items()
            }

        duration = time.perf_counter() - start_time
        ledger_operation_duration_seconds.labels(operation="set_balance").observe(duration)

        results = {}
        for kind, (delta, transaction_id) in applied.items():
            target = targets[kind]
            self._cache.put(user_id, kind, target)
            results[kind] = CreditTransactionResult(success=True, new_balance=target, transaction_id=transaction_id)
            if delta == 0:
                ledger_operations_total.labels(operation="set_balance", kind=kind.value, outcome="noop").inc()
                continue

            ledger_operations_total.labels(operation="set_balance", kind=kind.value, outcome="success").inc()
            log_fn = log_credits_added if delta > 0 else log_credits_debited
            log_fn(
                logger,
                user_id=user_id,
                kind=kind.value,
                amount=abs(delta),
                new_balance=target,
                transaction_id=transaction_id,
                category=TransactionCategory.ADMIN_ADJUSTMENT.value,
                duration_ms=duration * 1000,
            )
        return results

    def clear_cache(self) -> None:
        """Drop every cached balance, e.g. after an out-of-band change."""
        self._cache.clear()

    # -------------------------------------------------------------- internals

    async def _apply(
        self,
        user_id: str,
        kind: CreditKind,
        delta: int,
        category: TransactionCategory,
        description: str,
    ) -> Tuple[int, str]:
        """
        Apply a signed change and append its ledger entry in one transaction.

        Negative deltas only match rows whose balance covers them. When no row
        matches, the balance is re-read under a row lock: a missing row means
        no such user, a short balance is rejected, and a balance raised by a
        concurrent credit gets the UPDATE retried.
        """
        column = User.balance_column(kind)
        stmt = update(User).where(User.id == user_id)
        if delta < 0:
            stmt = stmt.where(column >= -delta)
        stmt = (
            stmt.values({column: column + delta})
            .returning(column)
            .execution_options(synchronize_session=False)
        )

        async with self._session_factory() as session:
            async with session.begin():
                for _ in range(MAX_APPLY_ATTEMPTS):
                    result = await session.execute(stmt)
                    new_balance = result.scalar_one_or_none()
                    if new_balance is not None:
                        break

                    # Locked re-read: a credit may have committed since the UPDATE
                    current = (
                        await session.execute(select(column).where(User.id == user_id).with_for_update())
                    ).scalar_one_or_none()
                    if current is None:
                        raise UserNotFoundError(user_id)
                    if current < -delta:
                        raise InsufficientCreditsError(required=-delta, available=current, kind=kind.value)
                else:
                    raise TransactionFailureError("apply", "balance changed concurrently")

                entry = CreditTransaction(
                    user_id=user_id,
                    amount=delta,
                    kind=kind,
                    category=category,
                    description=description,
                    balance_after=new_balance,
                )
                session.add(entry)
                await session.flush()
                transaction_id = entry.id

        self._cache.put(user_id, kind, new_balance)
        return new_balance, transaction_id

    async def _set_locked(
        self,
        session: AsyncSession,
        user_id: str,
        kind: CreditKind,
        target: int,
        description: Optional[str],
    ) -> Tuple[int, Optional[str]]:
        """Move one balance to `target` inside the caller's transaction. Returns (delta, transaction_id)."""
        column = User.balance_column(kind)
        result = await session.execute(select(column).where(User.id == user_id).with_for_update())
        current = result.scalar_one_or_none()
        if current is None:
            raise UserNotFoundError(user_id)

        delta = target - current
        if delta == 0:
            return 0, None

        result = await session.execute(
            update(User)
            .where(User.id == user_id, column == current)
            .values({column: target})
            .returning(column)
            .execution_options(synchronize_session=False)
        )
        if result.scalar_one_or_none() is None:
            raise TransactionFailureError("set_balance", "balance changed concurrently")

        entry = CreditTransaction(
            user_id=user_id,
            amount=delta,
            kind=kind,
            category=TransactionCategory.ADMIN_ADJUSTMENT,
            description=description or _admin_description(kind, delta),
            balance_after=target,
        )
        session.add(entry)
        await session.flush()
        return delta, entry.id

    def _failure(
        self,
        operation: str,
        error: Exception,
        user_id: str,
        kind: CreditKind,
        amount: int,
        start_time: float,
    ) -> CreditTransactionResult:
        self._cache.invalidate(user_id, kind)
        duration = time.perf_counter() - start_time
        ledger_operations_total.labels(operation=operation, kind=kind.value, outcome="failure").inc()
        log_ledger_failure(
            logger,
            operation,
            str(error),
            user_id=user_id,
            kind=kind.value,
            amount=amount,
            duration_ms=duration * 1000,
        )
        return CreditTransactionResult(
            success=False,
            error=f"Failed to {operation.replace('_', ' ')}: {error.__class__.__name__}",
        )


def _admin_description(kind: CreditKind, delta: int) -> str:
    sign = "+" if delta > 0 else ""
    return f"Admin adjustment: {sign}{delta} {kind.label} credits"


def get_credit_ledger() -> CreditLedger:
    """
    Dependency for FastAPI routes: one ledger (and cache) per request.
    Usage: ledger: CreditLedger = Depends(get_credit_ledger)
    """
    return CreditLedger(AsyncSessionLocal)
