# backend/treatbook/services/payment_ledger.py
"""
Payment Ledger for Treatbook

Tracks how much of an appointment's price has been settled. All payment
paths (new booking, balance payment, gateway confirmation) go through
``apply_payment`` so credit is always spent before any external instrument
and ``payment_status`` is always derived the same way:

    paid <= 0            -> none
    0 < paid < amount    -> partial
    paid >= amount       -> full

The ledger never commits; it runs inside the caller's unit of work.
"""

from dataclasses import dataclass
from decimal import Decimal
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.enums import DIRECT_PAYMENT_METHODS, PaymentMethod, PaymentStatus, PaymentType
from ..core.exceptions import ValidationException
from ..models.appointment import Appointment
from ..models.user import User
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories import RepositoryFactory
from ..repositories.appointment_repository import AppointmentRepository
from ..schemas.base import to_money
from ..schemas.transaction import CreditRefundTransaction, transactions_from_details
from .base import BaseService
from .credit_ledger import CreditLedger

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")

_METHOD_LABELS = {
    PaymentMethod.CASH.value: "Cash",
    PaymentMethod.SPEED_POINT.value: "Speed Point",
    PaymentMethod.CREDIT_BALANCE.value: "Credit",
    PaymentMethod.PAYFAST.value: "PayFast",
    PaymentMethod.ADMIN_CREDIT.value: "Admin Credit",
}

# Instruments the ledger records for the non-credit part of a payment.
EXTERNAL_METHODS = frozenset(m.value for m in DIRECT_PAYMENT_METHODS) | {PaymentMethod.PAYFAST.value}


@dataclass(frozen=True)
class PaymentApplication:
    """Outcome of applying one payment to an appointment."""

    required: Decimal
    credit_used: Decimal
    external_amount: Decimal
    remaining: Decimal

    @property
    def total_applied(self) -> Decimal:
        return self.credit_used + self.external_amount


class PaymentLedger(BaseService):
    """Applies payments to appointments and derives their payment state."""

    def __init__(
        self,
        db: Session,
        appointment_repository: Optional[AppointmentRepository] = None,
        credit_ledger: Optional[CreditLedger] = None,
    ):
        super().__init__(db)
        self.appointment_repository = (
            appointment_repository or RepositoryFactory.create_appointment_repository(db)
        )
        self.credit_ledger = credit_ledger or CreditLedger(db)

    # Derived state

    @staticmethod
    def compute_status(paid_amount: Decimal, amount: Decimal) -> PaymentStatus:
        paid = to_money(paid_amount)
        if paid <= ZERO:
            return PaymentStatus.NONE
        if paid < to_money(amount):
            return PaymentStatus.PARTIAL
        return PaymentStatus.FULL

    @classmethod
    def recompute_status(cls, appointment: Appointment) -> PaymentStatus:
        status = cls.compute_status(appointment.paid_amount, appointment.amount)
        appointment.payment_status = status.value
        return status

    @staticmethod
    def effective_paid(appointment: Appointment) -> Decimal:
        """
        Money the business actually holds for this appointment.

        Zero once any of it has been returned to the user as credit,
        otherwise the stored paid amount.
        """
        records = transactions_from_details(appointment.transaction_details)
        if any(isinstance(record, CreditRefundTransaction) for record in records):
            return ZERO
        return to_money(appointment.paid_amount or ZERO)

    @classmethod
    def remaining_balance(cls, appointment: Appointment) -> Decimal:
        """What the appointment still shows as owed, measured against effective paid."""
        return max(to_money(appointment.amount) - cls.effective_paid(appointment), ZERO)

    @staticmethod
    def payment_methods(appointment: Appointment) -> List[str]:
        """Distinct instruments used to pay, in first-use order, refunds excluded."""
        seen: List[str] = []
        for detail in appointment.transaction_details:
            if detail.payment_type == PaymentType.CREDIT_REFUND.value:
                continue
            label = _METHOD_LABELS.get(detail.payment_method, detail.payment_method)
            if label not in seen:
                seen.append(label)
        return seen

    @classmethod
    def display_status(cls, appointment: Appointment) -> str:
        """Front-desk label for an appointment's payment state."""
        if appointment.has_credit_refund:
            return f"Credited {to_money(appointment.paid_amount):.2f} back to user"
        if appointment.cancelled and appointment.cancelled_at_checkout:
            return "Unpaid - cancelled on checkout"

        status = cls.compute_status(appointment.paid_amount, appointment.amount)
        if status == PaymentStatus.FULL:
            methods = cls.payment_methods(appointment)
            return f"Paid in Full (via {', '.join(methods)})" if methods else "Paid in Full"
        if status == PaymentStatus.PARTIAL:
            return "Partially paid"
        return "Unpaid"

    # Mutation

    def apply_payment(
        self,
        appointment: Appointment,
        user: User,
        requested_amount: Decimal,
        *,
        use_credit: bool,
        payment_type: str,
        payment_method: Optional[str] = None,
        credit_description: str = "Used for payment",
        description: Optional[str] = None,
        reference: Optional[str] = None,
        source: str = "booking",
    ) -> PaymentApplication:
        """
        Apply a payment of up to ``requested_amount`` to the appointment.

        Credit is spent first (up to the user's balance). The rest is
        recorded against ``payment_method`` when one is given; otherwise it
        is returned as ``remaining`` for the caller to collect. The request
        is clipped to the outstanding balance so paid never exceeds amount.

        Raises:
            ValidationException: for unknown payment methods or non-positive amounts
        """
        if payment_method is not None and payment_method not in EXTERNAL_METHODS:
            raise ValidationException(
                f"Unsupported payment method: {payment_method}",
                code="INVALID_PAYMENT_METHOD",
            )

        outstanding = to_money(appointment.amount) - to_money(appointment.paid_amount)
        required = min(to_money(requested_amount), outstanding)
        if required <= ZERO:
            raise ValidationException(
                "Payment amount must be positive", code="INVALID_PAYMENT_AMOUNT"
            )

        credit_used = ZERO
        balance = self.credit_ledger.balance(user)
        if use_credit and balance > ZERO:
            credit_used = min(balance, required)
            self.credit_ledger.debit(
                user,
                credit_used,
                appointment_id=appointment.id,
                description=credit_description,
            )
            self.appointment_repository.append_transaction(
                appointment,
                amount=credit_used,
                payment_method=PaymentMethod.CREDIT_BALANCE.value,
                payment_type=PaymentType.CREDIT.value,
                description=credit_description,
            )
            appointment.paid_amount = to_money(appointment.paid_amount) + credit_used
            prometheus_metrics.inc_credits_applied(source)

        remaining = required - credit_used
        external_amount = ZERO
        if remaining > ZERO and payment_method is not None:
            self.appointment_repository.append_transaction(
                appointment,
                amount=remaining,
                payment_method=payment_method,
                payment_type=payment_type,
                description=description,
                reference=reference,
            )
            appointment.paid_amount = to_money(appointment.paid_amount) + remaining
            external_amount = remaining
            remaining = ZERO
            prometheus_metrics.inc_payment_recorded(payment_method, payment_type)

        self.recompute_status(appointment)
        self.appointment_repository.flush()

        self.logger.info(
            f"Applied payment to appointment #{appointment.booking_number}: "
            f"credit={credit_used} external={external_amount} remaining={remaining} "
            f"status={appointment.payment_status}"
        )
        return PaymentApplication(
            required=required,
            credit_used=credit_used,
            external_amount=external_amount,
            remaining=remaining,
        )
