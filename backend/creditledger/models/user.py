"""
User model holding the two credit balances.
Authenticated via Firebase (firebase_uid).

Balances are only ever changed through CreditLedger, so every change has a
matching CreditTransaction row.
"""
from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Index, Integer, String

from creditledger.models.base import Base, generate_uuid, utcnow
from creditledger.models.credit_transaction import CreditKind


class User(Base):
    """User with general and background-removal credit balances."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    firebase_uid = Column(String(128), nullable=True, unique=True)  # Firebase user ID
    email = Column(String(255), nullable=True)
    name = Column(String(255), nullable=True)
    is_admin = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)

    credits = Column(Integer, nullable=False, default=0)  # General credits
    bg_removal_credits = Column(Integer, nullable=False, default=0)  # Background-removal credits

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("credits >= 0", name="ck_users_credits_non_negative"),
        CheckConstraint("bg_removal_credits >= 0", name="ck_users_bg_removal_credits_non_negative"),
        Index("idx_user_firebase_uid", "firebase_uid"),
    )

    @classmethod
    def balance_column(cls, kind: CreditKind):
        """Column backing the balance of the given credit kind."""
        if kind is CreditKind.BG_REMOVAL:
            return cls.bg_removal_credits
        return cls.credits

    def __repr__(self):
        return (
            f"<User(id={self.id}, credits={self.credits}, "
            f"bg_removal_credits={self.bg_removal_credits})>"
        )
