"""
Appointment request and response schemas.

Response models are built from ORM rows with ``from_model`` so the typed
transaction variants and derived amounts are computed in one place.
"""

from datetime import date, datetime, time
from typing import TYPE_CHECKING, Any, Dict, List, Literal, Optional

from pydantic import Field

from .base import Money, StandardizedModel, StrictModel
from .transaction import TransactionRecord, transactions_from_details

if TYPE_CHECKING:
    from ..models.appointment import Appointment, PendingPayment

DirectPaymentMethod = Literal["cash", "speed_point", "admin_credit"]
BookingPaymentType = Literal["full", "partial"]


# Requests


class AvailabilityCheckRequest(StrictModel):
    practitioner: str = Field(min_length=1)
    slot_date: date
    slot_time: time
    duration_minutes: int = Field(gt=0, le=24 * 60)


class BookingCreateRequest(StrictModel):
    """New booking. ``payment_method`` is only sent by the front desk."""

    user_id: str
    treatment_id: str
    practitioner: str = Field(min_length=1)
    slot_date: date
    slot_time: time
    duration_minutes: int = Field(gt=0, le=24 * 60)
    amount: Money = Field(gt=0)
    payment_type: BookingPaymentType
    use_credit: bool = True
    payment_method: Optional[DirectPaymentMethod] = None


class BalancePaymentRequest(StrictModel):
    use_credit: bool = True
    payment_method: Optional[DirectPaymentMethod] = None


class GatewayInitiateRequest(StrictModel):
    payment_type: BookingPaymentType = "full"
    use_credit: bool = True


class GatewayConfirmRequest(StrictModel):
    success: bool
    correlation_id: Optional[str] = None


class CancelAppointmentRequest(StrictModel):
    user_id: Optional[str] = Field(
        default=None, description="Caller's user id; when given it must own the appointment"
    )


# Responses


class SlotConflict(StandardizedModel):
    appointment_id: str
    booking_number: int
    start_time: str
    end_time: str
    reason: Literal["overlap", "buffer_after", "buffer_before"]


class AvailabilityCheckResponse(StandardizedModel):
    available: bool
    practitioner: str
    slot_date: date
    slot_time: time
    duration_minutes: int
    conflicts: List[SlotConflict] = Field(default_factory=list)


class PendingPaymentResponse(StandardizedModel):
    correlation_id: str
    amount: Money
    gateway_amount: Money
    payment_type: str
    use_credit: bool
    created_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, pending: "PendingPayment") -> "PendingPaymentResponse":
        return cls(
            correlation_id=pending.correlation_id,
            amount=pending.amount,
            gateway_amount=pending.gateway_amount,
            payment_type=pending.payment_type,
            use_credit=pending.use_credit,
            created_at=pending.created_at,
        )


class AppointmentResponse(StandardizedModel):
    id: str
    booking_number: int
    user_id: str
    treatment_id: Optional[str] = None
    practitioner: str
    slot_date: date
    slot_time: time
    duration_minutes: int
    amount: Money
    paid_amount: Money
    payment_status: Literal["none", "partial", "full"]
    cancelled: bool
    cancelled_at_checkout: bool
    is_completed: bool
    credit_processed: bool
    effective_paid: Money
    remaining_balance: Money
    user_snapshot: Dict[str, Any] = Field(default_factory=dict)
    treatment_snapshot: Dict[str, Any] = Field(default_factory=dict)
    transaction_details: List[TransactionRecord] = Field(default_factory=list)
    pending_payment: Optional[PendingPaymentResponse] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, appointment: "Appointment") -> "AppointmentResponse":
        from ..services.payment_ledger import PaymentLedger

        return cls(
            id=appointment.id,
            booking_number=appointment.booking_number,
            user_id=appointment.user_id,
            treatment_id=appointment.treatment_id,
            practitioner=appointment.practitioner,
            slot_date=appointment.slot_date,
            slot_time=appointment.slot_time,
            duration_minutes=appointment.duration_minutes,
            amount=appointment.amount,
            paid_amount=appointment.paid_amount,
            payment_status=appointment.payment_status,
            cancelled=appointment.cancelled,
            cancelled_at_checkout=appointment.cancelled_at_checkout,
            is_completed=appointment.is_completed,
            credit_processed=appointment.credit_processed,
            effective_paid=PaymentLedger.effective_paid(appointment),
            remaining_balance=PaymentLedger.remaining_balance(appointment),
            user_snapshot=dict(appointment.user_snapshot or {}),
            treatment_snapshot=dict(appointment.treatment_snapshot or {}),
            transaction_details=transactions_from_details(appointment.transaction_details),
            pending_payment=(
                PendingPaymentResponse.from_model(appointment.pending_payment)
                if appointment.pending_payment is not None
                else None
            ),
            created_at=appointment.created_at,
        )


class BookingResult(StandardizedModel):
    success: bool = True
    message: str
    appointment: AppointmentResponse
    credit_used: Money
    remaining_payment: Money
    credit_balance: Money


class PaymentResult(StandardizedModel):
    success: bool = True
    message: str
    appointment: AppointmentResponse
    credit_used: Money
    external_amount: Money
    remaining_payment: Money
    credit_balance: Money


class CheckoutResult(StandardizedModel):
    success: bool = True
    message: str
    appointment_id: str
    correlation_id: str
    amount: Money
    gateway_amount: Money
    credit_available: Money
    redirect_url: str
    form_fields: Dict[str, str] = Field(default_factory=dict)


class CreditRefundResult(StandardizedModel):
    success: bool = True
    message: str
    appointment: AppointmentResponse
    credit_balance: Money


class AppointmentActionResult(StandardizedModel):
    success: bool = True
    message: str
    appointment: Optional[AppointmentResponse] = None


class AppointmentListResponse(StandardizedModel):
    success: bool = True
    appointments: List[AppointmentResponse] = Field(default_factory=list)
