"""
Production logging utility for structured JSON logging.

Provides event-specific logging functions with mandatory fields:
- timestamp (ISO8601)
- level
- service
- event

Optional fields (included when applicable):
- user_id
- kind
- amount
- transaction_id
- duration_ms

Usage:
    from creditledger.utils.logging import configure_logging, log_credits_debited

    configure_logging('creditledger-api', 'INFO')
    log_credits_debited(logger, user_id='123', kind='general', amount=1, new_balance=4)
"""
import logging
import sys
from typing import Optional, Dict, Any
from pythonjsonlogger import jsonlogger


class StructuredLogger:
    """Structured JSON logger with mandatory fields."""

    _service_name = None
    _configured = False

    @classmethod
    def configure(cls, service_name: str, log_level: str = "INFO"):
        """
        Configure structured JSON logging for the application.

        Args:
            service_name: Service identifier (e.g. creditledger-api)
            log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        """
        if cls._configured:
            return  # Already configured

        cls._service_name = service_name

        # Remove default handlers
        root_logger = logging.getLogger()
        root_logger.handlers = []

        formatter = jsonlogger.JsonFormatter(
            '%(timestamp)s %(levelname)s %(name)s %(message)s',
            timestamp=True,
            json_ensure_ascii=False
        )

        # Console handler (for docker logs)
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(formatter)

        root_logger.addHandler(handler)
        root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

        # Add service name to all log records via filter
        class ServiceFilter(logging.Filter):
            def filter(self, record):
                record.service = cls._service_name
                return True

        handler.addFilter(ServiceFilter())
        cls._configured = True


def _build_log_extra(
    event: str,
    user_id: Optional[str] = None,
    kind: Optional[str] = None,
    amount: Optional[int] = None,
    transaction_id: Optional[str] = None,
    duration_ms: Optional[float] = None,
    **kwargs
) -> Dict[str, Any]:
    """
    Build extra fields for structured logging.

    Args:
        event: Event name (mandatory)
        user_id: Optional user ID
        kind: Optional credit kind value
        amount: Optional credit amount
        transaction_id: Optional ledger entry ID
        duration_ms: Optional duration in milliseconds
        **kwargs: Additional fields

    Returns:
        Dictionary of extra fields
    """
    extra = {
        "event": event,
        **kwargs
    }

    if user_id:
        extra["user_id"] = user_id
    if kind:
        extra["kind"] = kind
    if amount is not None:
        extra["amount"] = amount
    if transaction_id:
        extra["transaction_id"] = transaction_id
    if duration_ms is not None:
        extra["duration_ms"] = round(duration_ms, 2)

    return extra


def log_credits_debited(
    logger: logging.Logger,
    user_id: str,
    kind: str,
    amount: int,
    new_balance: int,
    transaction_id: Optional[str] = None,
    category: Optional[str] = None,
    duration_ms: Optional[float] = None,
    **kwargs
):
    """Log a successful debit."""
    extra = _build_log_extra(
        event="credits_debited",
        user_id=user_id,
        kind=kind,
        amount=amount,
        transaction_id=transaction_id,
        duration_ms=duration_ms,
        new_balance=new_balance,
        **kwargs
    )
    if category:
        extra["category"] = category

    logger.info(f"Debited {amount} {kind} credit(s) from user {user_id}", extra=extra)


def log_credits_added(
    logger: logging.Logger,
    user_id: str,
    kind: str,
    amount: int,
    new_balance: int,
    transaction_id: Optional[str] = None,
    category: Optional[str] = None,
    duration_ms: Optional[float] = None,
    **kwargs
):
    """Log a successful credit grant (purchase or admin adjustment)."""
    extra = _build_log_extra(
        event="credits_added",
        user_id=user_id,
        kind=kind,
        amount=amount,
        transaction_id=transaction_id,
        duration_ms=duration_ms,
        new_balance=new_balance,
        **kwargs
    )
    if category:
        extra["category"] = category

    logger.info(f"Added {amount} {kind} credit(s) to user {user_id}", extra=extra)


def log_insufficient_credits(
    logger: logging.Logger,
    user_id: str,
    kind: str,
    required: int,
    available: int,
    **kwargs
):
    """
    Log a debit rejected for lack of credits.

    Business-rule rejection, so it is logged at WARNING without a traceback.
    """
    extra = _build_log_extra(
        event="insufficient_credits",
        user_id=user_id,
        kind=kind,
        amount=required,
        available=available,
        deficit=required - available,
        **kwargs
    )

    logger.warning(
        f"Insufficient {kind} credits for user {user_id}: "
        f"required {required}, available {available}",
        extra=extra
    )


def log_ledger_failure(
    logger: logging.Logger,
    operation: str,
    error: str,
    user_id: Optional[str] = None,
    kind: Optional[str] = None,
    amount: Optional[int] = None,
    duration_ms: Optional[float] = None,
    include_traceback: bool = True,
    **kwargs
):
    """
    Log an infrastructure failure inside a ledger unit of work.

    Args:
        logger: Logger instance
        operation: Ledger operation name (debit, credit, set_balance, ...)
        error: Error message
        user_id: Optional user ID
        kind: Optional credit kind value
        amount: Optional amount involved
        duration_ms: Optional duration in milliseconds
        include_traceback: Whether to include stack trace (default: True)
        **kwargs: Additional fields
    """
    extra = _build_log_extra(
        event="ledger_failure",
        user_id=user_id,
        kind=kind,
        amount=amount,
        duration_ms=duration_ms,
        operation=operation,
        error=str(error),
        **kwargs
    )

    message = f"Ledger {operation} failed: {error}"

    if include_traceback:
        exc_info = sys.exc_info()
        if exc_info[0] is not None:
            logger.error(message, extra=extra, exc_info=exc_info)
            return
    logger.error(message, extra=extra)


# Convenience alias
def configure_logging(service_name: str, log_level: str = "INFO"):
    """Configure logging (alias for StructuredLogger.configure)."""
    StructuredLogger.configure(service_name, log_level)
