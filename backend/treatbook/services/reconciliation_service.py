# backend/treatbook/services/reconciliation_service.py
"""
Reconciliation Service for Treatbook

The only component that touches the slot calendar, the booking counter,
the credit ledger and the payment ledger together. Each public operation
is one unit of work: everything it changes commits together, or the
session is rolled back and nothing changes.

New bookings additionally hold the practitioner-day lock from before the
availability check until the commit, so two concurrent bookings for the
same practitioner can never both pass the check.
"""

from datetime import date, datetime, time, timezone
from decimal import Decimal
import logging
import time as time_module
from typing import List, Mapping, Optional, Union

from sqlalchemy.orm import Session

from ..core.booking_lock import practitioner_day_lock
from ..core.config import settings
from ..core.enums import (
    BOOKING_PAYMENT_TYPES,
    PaymentMethod,
    PaymentStatus,
    PaymentType,
)
from ..core.exceptions import (
    AlreadyFinalException,
    ConflictException,
    CreditAlreadyProcessedException,
    ForbiddenException,
    NotFoundException,
    PaymentAlreadyCompleteException,
    PaymentMismatchException,
    SlotUnavailableException,
    ValidationException,
)
from ..models.appointment import Appointment
from ..models.user import User
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories import RepositoryFactory
from ..repositories.appointment_repository import AppointmentRepository
from ..repositories.availability_repository import AvailabilityRepository
from ..repositories.treatment_repository import TreatmentRepository
from ..repositories.user_repository import UserRepository
from ..schemas.appointment import (
    AppointmentActionResult,
    AppointmentListResponse,
    AppointmentResponse,
    AvailabilityCheckResponse,
    BookingCreateRequest,
    BookingResult,
    CheckoutResult,
    CreditRefundResult,
    PaymentResult,
)
from ..schemas.base import to_money
from ..schemas.dashboard import AppointmentDisplay, DashboardSummary
from .base import BaseService
from .booking_number import BookingNumberAllocator
from .credit_ledger import CreditLedger
from .gateway import CheckoutRequest, PaymentGateway, create_payment_gateway
from .payment_ledger import PaymentLedger
from .slot_availability import SlotAvailabilityChecker, parse_slot_time, to_minutes

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")

_METHOD_NAMES = {
    PaymentMethod.CASH.value: "cash",
    PaymentMethod.SPEED_POINT.value: "speed point",
    PaymentMethod.ADMIN_CREDIT.value: "admin credit",
    PaymentMethod.PAYFAST.value: "PayFast",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReconciliationService(BaseService):
    """
    Booking and payment use cases.

    Collaborators are injectable for tests; by default they are built on
    the same session so they share the unit of work.
    """

    def __init__(
        self,
        db: Session,
        appointment_repository: Optional[AppointmentRepository] = None,
        user_repository: Optional[UserRepository] = None,
        treatment_repository: Optional[TreatmentRepository] = None,
        availability_repository: Optional[AvailabilityRepository] = None,
        availability_checker: Optional[SlotAvailabilityChecker] = None,
        booking_numbers: Optional[BookingNumberAllocator] = None,
        credit_ledger: Optional[CreditLedger] = None,
        payment_ledger: Optional[PaymentLedger] = None,
        gateway: Optional[PaymentGateway] = None,
    ):
        super().__init__(db)
        self.appointment_repository = (
            appointment_repository or RepositoryFactory.create_appointment_repository(db)
        )
        self.user_repository = user_repository or RepositoryFactory.create_user_repository(db)
        self.treatment_repository = (
            treatment_repository or RepositoryFactory.create_treatment_repository(db)
        )
        self.availability_repository = (
            availability_repository or RepositoryFactory.create_availability_repository(db)
        )
        self.availability_checker = availability_checker or SlotAvailabilityChecker(
            db, repository=self.availability_repository
        )
        self.booking_numbers = booking_numbers or BookingNumberAllocator(db)
        self.credit_ledger = credit_ledger or CreditLedger(db, user_repository=self.user_repository)
        self.payment_ledger = payment_ledger or PaymentLedger(
            db,
            appointment_repository=self.appointment_repository,
            credit_ledger=self.credit_ledger,
        )
        self.gateway = gateway or create_payment_gateway()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _get_appointment(self, appointment_id: str, for_update: bool = True) -> Appointment:
        appointment = self.appointment_repository.get_by_id(appointment_id, for_update=for_update)
        if not appointment:
            raise NotFoundException(
                "Appointment not found",
                code="APPOINTMENT_NOT_FOUND",
                details={"appointment_id": appointment_id},
            )
        return appointment

    def _get_user(self, user_id: str, for_update: bool = True) -> User:
        user = self.user_repository.get_by_id(user_id, for_update=for_update)
        if not user:
            raise NotFoundException(
                "User not found", code="USER_NOT_FOUND", details={"user_id": user_id}
            )
        return user

    def get_appointment(self, appointment_id: str) -> AppointmentResponse:
        appointment = self._get_appointment(appointment_id, for_update=False)
        return AppointmentResponse.from_model(appointment)

    # ------------------------------------------------------------------
    # Availability and booking
    # ------------------------------------------------------------------

    @BaseService.measure_operation("check_availability")
    def check_availability(
        self,
        practitioner: str,
        slot_date: Optional[date],
        slot_time: Union[str, time, None],
        duration_minutes: Optional[int],
    ) -> AvailabilityCheckResponse:
        """Report whether a practitioner can take the proposed range, and what blocks it."""
        if not practitioner or slot_date is None or slot_time is None or not duration_minutes:
            raise ValidationException("Missing required fields", code="MISSING_FIELDS")

        start_time = parse_slot_time(slot_time)
        conflicts = self.availability_checker.find_conflicts(
            practitioner, slot_date, start_time, duration_minutes
        )
        return AvailabilityCheckResponse(
            available=not conflicts,
            practitioner=practitioner,
            slot_date=slot_date,
            slot_time=start_time,
            duration_minutes=duration_minutes,
            conflicts=conflicts,
        )

    def _validate_booking_request(self, booking_data: BookingCreateRequest) -> None:
        if booking_data.payment_type not in {t.value for t in BOOKING_PAYMENT_TYPES}:
            raise ValidationException(
                "Invalid payment type", code="INVALID_PAYMENT_TYPE",
                details={"payment_type": booking_data.payment_type},
            )
        if not booking_data.duration_minutes or booking_data.duration_minutes <= 0:
            raise ValidationException("Duration is required", code="INVALID_DURATION")
        if not booking_data.amount or to_money(booking_data.amount) <= ZERO:
            raise ValidationException("Amount is required", code="INVALID_AMOUNT")

        start = to_minutes(booking_data.slot_time)
        end = start + booking_data.duration_minutes
        opens = to_minutes(settings.business_open_time)
        closes = to_minutes(settings.business_close_time)
        if start < opens or end > closes:
            raise ValidationException(
                "Appointment must fall within business hours",
                code="OUTSIDE_BUSINESS_HOURS",
                details={
                    "open": settings.business_open_time.strftime("%H:%M"),
                    "close": settings.business_close_time.strftime("%H:%M"),
                },
            )

    @BaseService.measure_operation("create_booking")
    def create_booking(self, booking_data: BookingCreateRequest) -> BookingResult:
        """
        Book a treatment and apply the first payment.

        ``full`` bookings aim to settle the whole amount, ``partial`` half of
        it. Credit is spent first. With a ``payment_method`` (front desk) the
        rest is recorded immediately; otherwise it is returned as
        ``remaining_payment`` for the gateway.

        Raises:
            ValidationException: invalid type, duration, amount or hours
            NotFoundException: unknown user, or missing/unavailable treatment
            SlotUnavailableException: the range conflicts with the calendar
            SlotLockTimeoutException: a concurrent booking held the calendar too long
        """
        self._validate_booking_request(booking_data)
        amount = to_money(booking_data.amount)
        if booking_data.payment_type == PaymentType.FULL.value:
            required = amount
        else:
            required = to_money(amount / 2)

        with practitioner_day_lock(booking_data.practitioner, booking_data.slot_date):
            with self.transaction():
                user = self._get_user(booking_data.user_id)
                treatment = self.treatment_repository.get_by_id(booking_data.treatment_id)
                if not treatment or not treatment.available:
                    raise NotFoundException(
                        "Treatment not available",
                        code="TREATMENT_UNAVAILABLE",
                        details={"treatment_id": booking_data.treatment_id},
                    )

                self.availability_repository.lock_practitioner_day(
                    booking_data.practitioner, booking_data.slot_date
                )
                conflicts = self.availability_checker.find_conflicts(
                    booking_data.practitioner,
                    booking_data.slot_date,
                    booking_data.slot_time,
                    booking_data.duration_minutes,
                )
                if conflicts:
                    raise SlotUnavailableException(
                        details={"conflicts": [c.model_dump() for c in conflicts]}
                    )

                booking_number = self.booking_numbers.next_booking_number()
                appointment = self.appointment_repository.create(
                    booking_number=booking_number,
                    user_id=user.id,
                    treatment_id=treatment.id,
                    practitioner=booking_data.practitioner,
                    slot_date=booking_data.slot_date,
                    slot_time=booking_data.slot_time,
                    duration_minutes=booking_data.duration_minutes,
                    amount=amount,
                    paid_amount=ZERO,
                    payment_status=PaymentStatus.NONE.value,
                    user_snapshot={
                        "id": user.id,
                        "name": user.name,
                        "phone": user.phone,
                        "image": user.image,
                    },
                    treatment_snapshot={
                        "id": treatment.id,
                        "name": treatment.name,
                        "speciality": treatment.speciality,
                        "image": treatment.image,
                    },
                )

                application = self.payment_ledger.apply_payment(
                    appointment,
                    user,
                    required,
                    use_credit=booking_data.use_credit,
                    payment_type=booking_data.payment_type,
                    payment_method=booking_data.payment_method,
                    credit_description="Used for new appointment",
                    source="booking",
                )

                self.log_operation(
                    "create_booking",
                    appointment_id=appointment.id,
                    booking_number=booking_number,
                    practitioner=booking_data.practitioner,
                    credit_used=str(application.credit_used),
                    remaining=str(application.remaining),
                )

        if application.remaining > ZERO:
            message = "Appointment booked, payment pending"
        else:
            message = "Appointment booked"
        return BookingResult(
            message=message,
            appointment=AppointmentResponse.from_model(appointment),
            credit_used=application.credit_used,
            remaining_payment=application.remaining,
            credit_balance=self.credit_ledger.balance(user),
        )

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def _ensure_payable(self, appointment: Appointment) -> None:
        if appointment.cancelled:
            raise AlreadyFinalException(
                "Appointment Cancelled",
                code="APPOINTMENT_CANCELLED",
                details={"appointment_id": appointment.id},
            )
        if appointment.payment_status == PaymentStatus.FULL.value:
            raise PaymentAlreadyCompleteException(appointment.id)

    @BaseService.measure_operation("apply_balance_payment")
    def apply_balance_payment(
        self,
        appointment_id: str,
        use_credit: bool = True,
        payment_method: Optional[str] = None,
    ) -> PaymentResult:
        """
        Pay what is still owed on an appointment.

        Credit is spent first; with a ``payment_method`` the rest is recorded
        as a ``balance`` transaction, otherwise it is returned as
        ``remaining_payment``.

        Raises:
            NotFoundException: unknown appointment or user
            AlreadyFinalException: cancelled or already fully paid
        """
        with self.transaction():
            appointment = self._get_appointment(appointment_id)
            self._ensure_payable(appointment)
            user = self._get_user(appointment.user_id)

            application = self.payment_ledger.apply_payment(
                appointment,
                user,
                appointment.remaining_balance,
                use_credit=use_credit,
                payment_type=PaymentType.BALANCE.value,
                payment_method=payment_method,
                credit_description="Used for balance payment",
                source="balance",
            )
            self.log_operation(
                "apply_balance_payment",
                appointment_id=appointment.id,
                credit_used=str(application.credit_used),
                external_amount=str(application.external_amount),
                payment_method=payment_method,
            )

        method_name = _METHOD_NAMES.get(payment_method or "", payment_method)
        if application.external_amount > ZERO and application.credit_used > ZERO:
            message = (
                f"Payment completed: {application.credit_used:.2f} credits used and remaining "
                f"paid by {method_name}"
            )
        elif application.external_amount > ZERO:
            message = f"Payment completed by {method_name}"
        elif application.remaining > ZERO:
            message = (
                f"{application.credit_used:.2f} credits applied, "
                f"{application.remaining:.2f} remaining"
            )
        else:
            message = "Payment completed using credits"

        return PaymentResult(
            message=message,
            appointment=AppointmentResponse.from_model(appointment),
            credit_used=application.credit_used,
            external_amount=application.external_amount,
            remaining_payment=application.remaining,
            credit_balance=self.credit_ledger.balance(user),
        )

    @staticmethod
    def _amount_due(appointment: Appointment, payment_type: str) -> Decimal:
        paid = to_money(appointment.paid_amount)
        if payment_type == PaymentType.PARTIAL.value:
            return to_money(to_money(appointment.amount) / 2) - paid
        return to_money(appointment.amount) - paid

    @BaseService.measure_operation("initiate_gateway_payment")
    def initiate_gateway_payment(
        self,
        appointment_id: str,
        payment_type: str = PaymentType.FULL.value,
        use_credit: bool = True,
    ) -> CheckoutResult:
        """
        Start a gateway checkout for what is owed.

        Records the pending payment (replacing any earlier one) and returns
        the signed checkout form. When credit covers everything due, the
        credit is applied straight away and no checkout is needed.

        Raises:
            NotFoundException: unknown appointment or user
            AlreadyFinalException: cancelled or already fully paid
            ValidationException: invalid payment type or nothing due
        """
        if payment_type not in {t.value for t in BOOKING_PAYMENT_TYPES}:
            raise ValidationException(
                "Invalid payment type", code="INVALID_PAYMENT_TYPE",
                details={"payment_type": payment_type},
            )

        with self.transaction():
            appointment = self._get_appointment(appointment_id)
            self._ensure_payable(appointment)
            user = self._get_user(appointment.user_id)

            due = self._amount_due(appointment, payment_type)
            if due <= ZERO:
                raise ValidationException(
                    "Nothing is due for this payment type",
                    code="NOTHING_DUE",
                    details={"payment_type": payment_type},
                )

            balance = self.credit_ledger.balance(user)
            credit_available = min(balance, due) if use_credit else ZERO
            gateway_amount = due - credit_available
            correlation_id = f"PF_{int(time_module.time() * 1000)}_{appointment.id}"

            if gateway_amount <= ZERO:
                self.appointment_repository.clear_pending_payment(appointment)
                self.payment_ledger.apply_payment(
                    appointment,
                    user,
                    due,
                    use_credit=True,
                    payment_type=payment_type,
                    credit_description="Used for online payment",
                    source="gateway",
                )
                self.log_operation(
                    "initiate_gateway_payment",
                    appointment_id=appointment.id,
                    settled_with_credit=True,
                )
                return CheckoutResult(
                    message="Payment completed using credits",
                    appointment_id=appointment.id,
                    correlation_id=correlation_id,
                    amount=due,
                    gateway_amount=ZERO,
                    credit_available=credit_available,
                    redirect_url="",
                )

            self.appointment_repository.set_pending_payment(
                appointment,
                correlation_id=correlation_id,
                amount=due,
                gateway_amount=gateway_amount,
                payment_type=payment_type,
                use_credit=use_credit,
            )
            checkout = self.gateway.build_checkout(
                CheckoutRequest(
                    correlation_id=correlation_id,
                    appointment_id=appointment.id,
                    booking_number=appointment.booking_number,
                    amount=gateway_amount,
                    item_name=(
                        f"{appointment.treatment_name or 'Treatment'} - "
                        f"Booking #{appointment.booking_number}"
                    ),
                    payment_type=payment_type,
                    use_credit=use_credit,
                    customer_name=(appointment.user_snapshot or {}).get("name"),
                )
            )
            self.log_operation(
                "initiate_gateway_payment",
                appointment_id=appointment.id,
                correlation_id=correlation_id,
                gateway_amount=str(gateway_amount),
            )

        return CheckoutResult(
            message="Checkout created",
            appointment_id=appointment.id,
            correlation_id=correlation_id,
            amount=due,
            gateway_amount=gateway_amount,
            credit_available=credit_available,
            redirect_url=checkout.redirect_url,
            form_fields=checkout.form_fields,
        )

    @BaseService.measure_operation("confirm_gateway_payment")
    def confirm_gateway_payment(
        self,
        appointment_id: str,
        success: bool,
        correlation_id: Optional[str] = None,
    ) -> PaymentResult:
        """
        Settle (or abandon) the outstanding gateway checkout.

        On failure an appointment with nothing paid yet is cancelled at
        checkout; one with earlier payments only loses its pending record.
        On success the owed amount is recomputed from the ledger: credit is
        spent first and the rest recorded as a PayFast transaction.

        Raises:
            NotFoundException: unknown appointment or user
            PaymentMismatchException: no pending payment, or a different one
        """
        with self.transaction():
            appointment = self._get_appointment(appointment_id)
            pending = appointment.pending_payment

            if not success:
                if (
                    correlation_id
                    and pending is not None
                    and pending.correlation_id != correlation_id
                ):
                    raise PaymentMismatchException(appointment.id)
                self.appointment_repository.clear_pending_payment(appointment)
                first_payment = appointment.payment_status == PaymentStatus.NONE.value
                if first_payment and not appointment.cancelled:
                    appointment.cancelled = True
                    appointment.cancelled_at_checkout = True
                    appointment.cancelled_at = _utcnow()
                    message = "Payment cancelled and appointment cancelled"
                else:
                    message = "Additional payment cancelled"
                self.appointment_repository.flush()
                self.log_operation(
                    "confirm_gateway_payment", appointment_id=appointment.id, success=False
                )
                owner = self._get_user(appointment.user_id, for_update=False)
                return PaymentResult(
                    success=True,
                    message=message,
                    appointment=AppointmentResponse.from_model(appointment),
                    credit_used=ZERO,
                    external_amount=ZERO,
                    remaining_payment=appointment.remaining_balance,
                    credit_balance=self.credit_ledger.balance(owner),
                )

            if pending is None:
                raise PaymentMismatchException(appointment.id, "No pending payment found")
            if correlation_id and pending.correlation_id != correlation_id:
                raise PaymentMismatchException(appointment.id)

            user = self._get_user(appointment.user_id)
            if appointment.payment_status == PaymentStatus.FULL.value:
                self.appointment_repository.clear_pending_payment(appointment)
                return PaymentResult(
                    message="Payment already completed",
                    appointment=AppointmentResponse.from_model(appointment),
                    credit_used=ZERO,
                    external_amount=ZERO,
                    remaining_payment=ZERO,
                    credit_balance=self.credit_ledger.balance(user),
                )
            if appointment.cancelled:
                self.logger.warning(
                    "Gateway payment confirmed for cancelled appointment "
                    f"#{appointment.booking_number}"
                )

            reference = pending.correlation_id
            application = self.payment_ledger.apply_payment(
                appointment,
                user,
                to_money(pending.amount),
                use_credit=pending.use_credit,
                payment_type=pending.payment_type,
                payment_method=PaymentMethod.PAYFAST.value,
                credit_description="Used for online payment",
                description="PayFast payment",
                reference=reference,
                source="gateway",
            )
            self.appointment_repository.clear_pending_payment(appointment)
            self.log_operation(
                "confirm_gateway_payment",
                appointment_id=appointment.id,
                success=True,
                correlation_id=reference,
                external_amount=str(application.external_amount),
            )

        return PaymentResult(
            message="Payment verified and updated successfully",
            appointment=AppointmentResponse.from_model(appointment),
            credit_used=application.credit_used,
            external_amount=application.external_amount,
            remaining_payment=appointment.remaining_balance,
            credit_balance=self.credit_ledger.balance(user),
        )

    def handle_gateway_notification(self, fields: Mapping[str, str]) -> PaymentResult:
        """
        Apply a server-to-server gateway notification.

        Raises:
            ValidationException: bad signature or missing payment id
            NotFoundException: no appointment waits on this payment id
        """
        if not self.gateway.verify_notification(fields):
            raise ValidationException("Invalid gateway signature", code="INVALID_SIGNATURE")
        correlation_id = fields.get("m_payment_id")
        if not correlation_id:
            raise ValidationException("Missing payment reference", code="MISSING_PAYMENT_ID")

        appointment = self.appointment_repository.get_by_correlation_id(correlation_id)
        if appointment is None:
            raise NotFoundException(
                "No pending payment for this reference",
                code="PENDING_PAYMENT_NOT_FOUND",
                details={"correlation_id": correlation_id},
            )
        success = str(fields.get("payment_status", "")).upper() == "COMPLETE"
        return self.confirm_gateway_payment(appointment.id, success, correlation_id=correlation_id)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @BaseService.measure_operation("cancel_appointment")
    def cancel_appointment(
        self, appointment_id: str, user_id: Optional[str] = None
    ) -> AppointmentActionResult:
        """
        Cancel an appointment, freeing its slot. Paid money stays recorded
        until a separate credit refund is issued. An outstanding gateway
        checkout is left in place so a late confirmation is still recorded.

        Raises:
            NotFoundException: unknown appointment
            ForbiddenException: ``user_id`` given and not the owner
            AlreadyFinalException: already cancelled or completed
        """
        with self.transaction():
            appointment = self._get_appointment(appointment_id)
            if user_id is not None and appointment.user_id != user_id:
                raise ForbiddenException("Unauthorized action", code="NOT_APPOINTMENT_OWNER")
            if appointment.is_completed:
                raise AlreadyFinalException(
                    "Completed appointments cannot be cancelled", code="APPOINTMENT_COMPLETED"
                )
            if appointment.cancelled:
                raise AlreadyFinalException(
                    "Appointment already cancelled", code="APPOINTMENT_CANCELLED"
                )

            appointment.cancelled = True
            appointment.cancelled_at = _utcnow()
            self.appointment_repository.flush()
            self.log_operation(
                "cancel_appointment", appointment_id=appointment.id, by_owner=user_id is not None
            )

        return AppointmentActionResult(
            message="Appointment Cancelled", appointment=AppointmentResponse.from_model(appointment)
        )

    @BaseService.measure_operation("complete_appointment")
    def complete_appointment(self, appointment_id: str) -> AppointmentActionResult:
        with self.transaction():
            appointment = self._get_appointment(appointment_id)
            if appointment.cancelled:
                raise AlreadyFinalException(
                    "Cancelled appointments cannot be completed", code="APPOINTMENT_CANCELLED"
                )
            if appointment.is_completed:
                raise AlreadyFinalException(
                    "Appointment already completed", code="APPOINTMENT_COMPLETED"
                )
            appointment.is_completed = True
            appointment.completed_at = _utcnow()
            self.appointment_repository.flush()
            self.log_operation("complete_appointment", appointment_id=appointment.id)

        return AppointmentActionResult(
            message="Appointment Completed", appointment=AppointmentResponse.from_model(appointment)
        )

    @BaseService.measure_operation("delete_appointment")
    def delete_appointment(self, appointment_id: str) -> AppointmentActionResult:
        """Hard-delete an appointment. Its booking number is never handed out again."""
        with self.transaction():
            appointment = self._get_appointment(appointment_id)
            booking_number = appointment.booking_number
            self.appointment_repository.delete(appointment.id)
            self.log_operation(
                "delete_appointment", appointment_id=appointment_id, booking_number=booking_number
            )

        return AppointmentActionResult(message="Appointment Deleted")

    @BaseService.measure_operation("issue_credit_refund")
    def issue_credit_refund(self, appointment_id: str) -> CreditRefundResult:
        """
        Return a cancelled appointment's paid amount to the user as credit.

        One-shot: the appointment's ``credit_processed`` latch is set and a
        ``credit_refund`` transaction recorded; ``paid_amount`` and
        ``payment_status`` are left as they were.

        Raises:
            NotFoundException: unknown appointment or user
            CreditAlreadyProcessedException: credit was already issued
            ConflictException: a gateway checkout is still pending
            ValidationException: not cancelled, or nothing was paid
        """
        with self.transaction():
            appointment = self._get_appointment(appointment_id)
            if appointment.credit_processed:
                raise CreditAlreadyProcessedException(appointment.id)
            if not appointment.cancelled:
                raise ValidationException(
                    "Only cancelled appointments can be credited",
                    code="APPOINTMENT_NOT_CANCELLED",
                )
            if appointment.pending_payment is not None:
                raise ConflictException(
                    "A gateway payment is still pending for this appointment",
                    code="PAYMENT_PENDING",
                    details={"correlation_id": appointment.pending_payment.correlation_id},
                )
            paid = to_money(appointment.paid_amount)
            if paid <= ZERO:
                raise ValidationException("No amount to credit", code="NOTHING_TO_CREDIT")

            user = self._get_user(appointment.user_id)
            self.credit_ledger.credit(
                user,
                paid,
                appointment_id=appointment.id,
                description="Credit refund from cancelled appointment",
            )
            self.appointment_repository.append_transaction(
                appointment,
                amount=paid,
                payment_method=PaymentMethod.CREDIT_BALANCE.value,
                payment_type=PaymentType.CREDIT_REFUND.value,
                description="Amount credited to user account",
            )
            appointment.credit_processed = True
            self.appointment_repository.flush()
            prometheus_metrics.inc_credit_refund()
            self.log_operation(
                "issue_credit_refund",
                appointment_id=appointment.id,
                user_id=user.id,
                amount=str(paid),
            )

        return CreditRefundResult(
            message=f"Credited {paid:.2f} to user account",
            appointment=AppointmentResponse.from_model(appointment),
            credit_balance=self.credit_ledger.balance(user),
        )

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def _to_display(self, appointment: Appointment) -> AppointmentDisplay:
        effective = PaymentLedger.effective_paid(appointment)
        return AppointmentDisplay(
            appointment=AppointmentResponse.from_model(appointment),
            status_label=PaymentLedger.display_status(appointment),
            effective_paid=effective,
            remaining_balance=PaymentLedger.remaining_balance(appointment),
            payment_methods=PaymentLedger.payment_methods(appointment),
            can_issue_credit=(
                appointment.cancelled
                and to_money(appointment.paid_amount) > ZERO
                and not appointment.credit_processed
                and appointment.pending_payment is None
            ),
            can_accept_balance=(
                not appointment.cancelled
                and appointment.payment_status != PaymentStatus.FULL.value
            ),
        )

    @BaseService.measure_operation("get_dashboard_summary")
    def get_dashboard_summary(self, limit: Optional[int] = None) -> DashboardSummary:
        """Counts, money totals and the latest appointments for the front desk."""
        total_received, total_invoiced = self.appointment_repository.get_ledger_totals()
        latest = self.appointment_repository.list_all(
            limit=limit or settings.dashboard_latest_limit
        )
        return DashboardSummary(
            treatments=self.treatment_repository.count(),
            appointments=self.appointment_repository.count(),
            patients=self.user_repository.count(),
            total_received=total_received,
            total_invoiced=total_invoiced,
            latest_appointments=[self._to_display(a) for a in latest],
        )

    @BaseService.measure_operation("list_appointments")
    def list_appointments(self, user_id: Optional[str] = None) -> AppointmentListResponse:
        """A user's appointments (latest slot first), or all of them (latest booking first)."""
        if user_id is not None:
            self._get_user(user_id, for_update=False)
            appointments = self.appointment_repository.list_for_user(user_id)
        else:
            appointments = self.appointment_repository.list_all()
        return AppointmentListResponse(
            appointments=[AppointmentResponse.from_model(a) for a in appointments]
        )

    def list_appointment_displays(self) -> List[AppointmentDisplay]:
        return [self._to_display(a) for a in self.appointment_repository.list_all()]
