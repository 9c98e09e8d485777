"""
CreditTransaction model: the append-only audit trail of balance changes.

One row per balance mutation. Rows are never updated or deleted, so the sum of
`amount` for a (user, kind) always equals that user's balance of that kind.
"""
from sqlalchemy import Column, DateTime, Enum, ForeignKey, Index, Integer, String, Text, event
import enum

from creditledger.models.base import Base, generate_uuid, utcnow


class CreditKind(enum.Enum):
    """Which of the two independently-metered balances a change applies to."""
    GENERAL = "general"
    BG_REMOVAL = "bg_removal"

    @property
    def label(self) -> str:
        if self is CreditKind.BG_REMOVAL:
            return "BG removal"
        return "general"


class TransactionCategory(enum.Enum):
    """Reason for a balance change."""
    PURCHASE = "purchase"
    ADMIN_ADJUSTMENT = "admin_adjustment"
    IMAGE_DESCRIPTION = "image_description"
    RUNWAY_PROMPT = "runway_prompt"
    METADATA_GENERATION = "metadata_generation"
    BG_REMOVAL = "bg_removal"


class CreditTransaction(Base):
    """Immutable ledger entry."""

    __tablename__ = "credit_transactions"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    amount = Column(Integer, nullable=False)  # Positive = added, negative = consumed
    kind = Column(Enum(CreditKind, name="credit_kind"), nullable=False)
    category = Column(Enum(TransactionCategory, name="transaction_category"), nullable=False)
    description = Column(Text, nullable=True)
    balance_after = Column(Integer, nullable=False)  # Balance of `kind` after this entry

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_credit_tx_user_created", "user_id", "created_at"),
    )

    def __repr__(self):
        return (
            f"<CreditTransaction(id={self.id}, user_id={self.user_id}, "
            f"amount={self.amount}, kind={self.kind}, category={self.category})>"
        )


class ImmutableTransactionError(Exception):
    """Raised when code tries to modify a flushed ledger entry."""


@event.listens_for(CreditTransaction, "before_update")
def _reject_update(mapper, connection, target):
    raise ImmutableTransactionError(f"Credit transaction {target.id} is append-only")


@event.listens_for(CreditTransaction, "before_delete")
def _reject_delete(mapper, connection, target):
    raise ImmutableTransactionError(f"Credit transaction {target.id} is append-only")
