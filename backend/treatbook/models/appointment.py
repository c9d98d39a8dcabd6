# backend/treatbook/models/appointment.py
"""
Appointment model and its payment records.

An appointment is a self-contained record: practitioner, date and time are
stored directly and user/treatment details are snapshotted at booking time
so later edits to either never rewrite history.

Payment state lives in three places that the reconciliation services keep
consistent:
- ``paid_amount`` / ``payment_status`` on the appointment
- the append-only ``transaction_details`` list
- an optional ``pending_payment`` while a gateway checkout is outstanding
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
import ulid

from ..core.enums import PaymentStatus, PaymentType
from ..database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Appointment(Base):
    """
    A booked treatment for one user with one practitioner.

    Invariants maintained by the services layer:
    - 0 <= paid_amount <= amount
    - payment_status is derived from paid_amount and amount
    - no two non-cancelled appointments for a practitioner sit closer than the buffer
    """

    __tablename__ = "appointments"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    booking_number = Column(Integer, nullable=False, unique=True)

    user_id = Column(String(26), ForeignKey("users.id"), nullable=False, index=True)
    treatment_id = Column(
        String(26), ForeignKey("treatments.id", ondelete="SET NULL"), nullable=True
    )
    practitioner = Column(String(255), nullable=False)

    slot_date = Column(Date, nullable=False)
    slot_time = Column(Time, nullable=False)
    duration_minutes = Column(Integer, nullable=False)

    amount = Column(Numeric(10, 2), nullable=False)
    paid_amount = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    payment_status = Column(String(10), nullable=False, default=PaymentStatus.NONE.value)

    cancelled = Column(Boolean, nullable=False, default=False)
    cancelled_at_checkout = Column(Boolean, nullable=False, default=False)
    is_completed = Column(Boolean, nullable=False, default=False)
    credit_processed = Column(Boolean, nullable=False, default=False)

    user_snapshot = Column(JSON, nullable=False, default=dict)
    treatment_snapshot = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    user = relationship("User")
    treatment = relationship("Treatment")
    transaction_details = relationship(
        "TransactionDetail",
        back_populates="appointment",
        order_by="TransactionDetail.position",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    pending_payment = relationship(
        "PendingPayment",
        back_populates="appointment",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("ix_appointments_practitioner_date", "practitioner", "slot_date", "cancelled"),
        CheckConstraint("amount > 0", name="ck_appointments_amount_positive"),
        CheckConstraint("duration_minutes > 0", name="ck_appointments_duration_positive"),
        CheckConstraint(
            "paid_amount >= 0 AND paid_amount <= amount", name="ck_appointments_paid_range"
        ),
        CheckConstraint(
            "payment_status IN ('none', 'partial', 'full')", name="ck_appointments_payment_status"
        ),
    )

    @property
    def start_minutes(self) -> int:
        """Start time as minutes since midnight."""
        return self.slot_time.hour * 60 + self.slot_time.minute

    @property
    def end_minutes(self) -> int:
        """End time as minutes since midnight (may exceed 1440 for late bookings)."""
        return self.start_minutes + int(self.duration_minutes)

    @property
    def remaining_balance(self) -> Decimal:
        return max(Decimal(self.amount) - Decimal(self.paid_amount), Decimal("0.00"))

    @property
    def has_credit_refund(self) -> bool:
        return any(
            detail.payment_type == PaymentType.CREDIT_REFUND.value
            for detail in self.transaction_details
        )

    @property
    def treatment_name(self) -> Optional[str]:
        return (self.treatment_snapshot or {}).get("name")

    def __repr__(self) -> str:
        return (
            f"<Appointment #{self.booking_number} {self.practitioner} "
            f"{self.slot_date} {self.slot_time} status={self.payment_status}>"
        )


class TransactionDetail(Base):
    """
    One immutable money movement recorded against an appointment.

    ``position`` gives the chronological order within the appointment.
    """

    __tablename__ = "appointment_transactions"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    appointment_id = Column(
        String(26), ForeignKey("appointments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position = Column(Integer, nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    payment_method = Column(String(20), nullable=False)
    payment_type = Column(String(20), nullable=False)
    description = Column(Text, nullable=True)
    reference = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    appointment = relationship("Appointment", back_populates="transaction_details")

    __table_args__ = (
        UniqueConstraint("appointment_id", "position", name="uq_appointment_transactions_position"),
        CheckConstraint("amount > 0", name="ck_appointment_transactions_amount_positive"),
        CheckConstraint(
            "(payment_type IN ('credit', 'credit_refund') AND payment_method = 'credit_balance')"
            " OR (payment_type IN ('full', 'partial', 'balance')"
            " AND payment_method IN ('cash', 'speed_point', 'payfast', 'admin_credit'))",
            name="ck_appointment_transactions_variant",
        ),
    )


class PendingPayment(Base):
    """
    A gateway checkout that has been started but not yet confirmed.

    Advisory only: a newer initiation replaces it, and confirmation always
    recomputes the amount from the appointment's own ledger.
    """

    __tablename__ = "pending_payments"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    appointment_id = Column(
        String(26),
        ForeignKey("appointments.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    correlation_id = Column(String(100), nullable=False, unique=True)
    amount = Column(Numeric(10, 2), nullable=False)
    gateway_amount = Column(Numeric(10, 2), nullable=False)
    payment_type = Column(String(20), nullable=False)
    use_credit = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    appointment = relationship("Appointment", back_populates="pending_payment")


class BookingCounter(Base):
    """Named monotonic counter; booking numbers are taken by atomic increment."""

    __tablename__ = "booking_counters"

    name = Column(String(50), primary_key=True)
    value = Column(Integer, nullable=False, default=0)
