# backend/treatbook/models/user.py
"""
User model and credit history.

A user's ``credit_balance`` is store credit that can be spent on any
appointment. The balance and the ordered credit history are only ever
changed together, by the credit ledger service, so the balance always
equals the sum of credits minus the sum of debits.
"""

from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..core.enums import CreditEntryType
from ..database import Base


class User(Base):
    """Patient account, identified at the front desk by phone number."""

    __tablename__ = "users"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    name = Column(String(255), nullable=False)
    phone = Column(String(32), nullable=False, unique=True, index=True)
    image = Column(String(500), nullable=False, default="")
    credit_balance = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    credit_history = relationship(
        "CreditHistoryEntry",
        back_populates="user",
        order_by="CreditHistoryEntry.position",
        cascade="all, delete-orphan",
    )

    __table_args__ = (CheckConstraint("credit_balance >= 0", name="ck_users_credit_balance"),)

    def __repr__(self) -> str:
        return f"<User {self.id} {self.phone} credit={self.credit_balance}>"


class CreditHistoryEntry(Base):
    """One movement on a user's credit balance."""

    __tablename__ = "credit_history"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    user_id = Column(
        String(26), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position = Column(Integer, nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    entry_type = Column(String(10), nullable=False)
    # Not a foreign key: history outlives hard-deleted appointments.
    appointment_id = Column(String(26), nullable=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    user = relationship("User", back_populates="credit_history")

    __table_args__ = (
        UniqueConstraint("user_id", "position", name="uq_credit_history_user_position"),
        CheckConstraint("amount > 0", name="ck_credit_history_amount_positive"),
        CheckConstraint(
            f"entry_type IN ('{CreditEntryType.CREDIT.value}', '{CreditEntryType.DEBIT.value}')",
            name="ck_credit_history_entry_type",
        ),
    )

    @property
    def signed_amount(self) -> Decimal:
        amount = Decimal(self.amount)
        return amount if self.entry_type == CreditEntryType.CREDIT.value else -amount
