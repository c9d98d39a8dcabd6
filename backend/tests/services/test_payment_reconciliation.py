# backend/tests/services/test_payment_reconciliation.py
"""
Payment reconciliation tests: balance payments, gateway checkout and
credit refunds. Every test checks the credit balance against its history.
"""

from datetime import time
from decimal import Decimal
from unittest.mock import patch

import pytest

from treatbook.core.exceptions import (
    AlreadyFinalException,
    ConflictException,
    CreditAlreadyProcessedException,
    NotFoundException,
    PaymentAlreadyCompleteException,
    PaymentMismatchException,
    ValidationException,
)
from treatbook.services.credit_ledger import CreditLedger
from treatbook.services.payment_ledger import PaymentLedger

CLOCK = "treatbook.services.reconciliation_service.time_module.time"


@pytest.fixture
def ledger(db):
    return CreditLedger(db)


@pytest.fixture
def booked(service, booking_request):
    """Book for ``user`` without spending credit, leaving everything owed."""

    def _book(user, **overrides):
        overrides.setdefault("use_credit", False)
        return service.create_booking(booking_request(user, **overrides)).appointment

    return _book


class TestBalancePayment:
    def test_credit_then_cash_settles_in_full(self, service, ledger, create_user, booked):
        user = create_user(credit="150")
        appointment = booked(user)

        result = service.apply_balance_payment(
            appointment.id, use_credit=True, payment_method="cash"
        )

        assert result.credit_used == Decimal("150.00")
        assert result.external_amount == Decimal("50.00")
        assert result.remaining_payment == Decimal("0.00")
        assert result.credit_balance == Decimal("0.00")
        assert result.appointment.payment_status == "full"
        assert result.appointment.paid_amount == Decimal("200.00")
        assert [d.payment_type for d in result.appointment.transaction_details] == [
            "credit",
            "balance",
        ]
        assert result.message == (
            "Payment completed: 150.00 credits used and remaining paid by cash"
        )
        assert ledger.balance_matches_history(user)

    def test_credit_only_leaves_remainder(self, service, ledger, create_user, booked):
        user = create_user(credit="80")
        appointment = booked(user)

        result = service.apply_balance_payment(appointment.id)

        assert result.credit_used == Decimal("80.00")
        assert result.external_amount == Decimal("0.00")
        assert result.remaining_payment == Decimal("120.00")
        assert result.appointment.payment_status == "partial"
        assert ledger.balance_matches_history(user)

    def test_sufficient_credit_needs_no_external_payment(self, service, create_user, booked):
        user = create_user(credit="500")
        appointment = booked(user)

        result = service.apply_balance_payment(appointment.id, payment_method="speed_point")

        assert result.external_amount == Decimal("0.00")
        assert result.message == "Payment completed using credits"
        assert [d.payment_method for d in result.appointment.transaction_details] == [
            "credit_balance"
        ]

    def test_balance_after_partial(self, service, test_user, booked):
        appointment = booked(test_user, payment_type="partial", payment_method="cash")
        assert appointment.paid_amount == Decimal("100.00")

        result = service.apply_balance_payment(appointment.id, payment_method="speed_point")

        assert result.external_amount == Decimal("100.00")
        assert result.appointment.paid_amount == Decimal("200.00")
        assert result.message == "Payment completed by speed point"

    def test_fully_paid_rejected(self, service, test_user, booked):
        appointment = booked(test_user, payment_method="cash")

        with pytest.raises(PaymentAlreadyCompleteException):
            service.apply_balance_payment(appointment.id, payment_method="cash")

    def test_cancelled_rejected(self, service, test_user, booked):
        appointment = booked(test_user)
        service.cancel_appointment(appointment.id)

        with pytest.raises(AlreadyFinalException) as exc_info:
            service.apply_balance_payment(appointment.id, payment_method="cash")
        assert exc_info.value.code == "APPOINTMENT_CANCELLED"

    def test_unknown_method_rejected(self, service, test_user, booked):
        appointment = booked(test_user)

        with pytest.raises(ValidationException):
            service.apply_balance_payment(appointment.id, payment_method="cheque")

    def test_unknown_appointment(self, service):
        with pytest.raises(NotFoundException):
            service.apply_balance_payment("missing")


class TestGatewayCheckout:
    def test_initiate_and_confirm(self, service, gateway, ledger, create_user, booked):
        user = create_user(credit="50")
        appointment = booked(user)

        checkout = service.initiate_gateway_payment(appointment.id, payment_type="full")

        assert checkout.amount == Decimal("200.00")
        assert checkout.credit_available == Decimal("50.00")
        assert checkout.gateway_amount == Decimal("150.00")
        assert checkout.correlation_id.startswith("PF_")
        assert checkout.correlation_id.endswith(appointment.id)
        assert checkout.redirect_url.endswith(checkout.correlation_id)
        assert gateway.requests[-1].amount == Decimal("150.00")
        pending = service.get_appointment(appointment.id).pending_payment
        assert pending.correlation_id == checkout.correlation_id

        result = service.confirm_gateway_payment(
            appointment.id, True, correlation_id=checkout.correlation_id
        )

        assert result.credit_used == Decimal("50.00")
        assert result.external_amount == Decimal("150.00")
        assert result.appointment.payment_status == "full"
        assert result.appointment.pending_payment is None
        payfast = result.appointment.transaction_details[-1]
        assert payfast.payment_method == "payfast"
        assert payfast.reference == checkout.correlation_id
        assert ledger.balance_matches_history(user)

    def test_partial_checkout_amount(self, service, test_user, booked):
        appointment = booked(test_user)

        checkout = service.initiate_gateway_payment(appointment.id, payment_type="partial")
        result = service.confirm_gateway_payment(appointment.id, True)

        assert checkout.gateway_amount == Decimal("100.00")
        assert result.appointment.payment_status == "partial"
        with pytest.raises(ValidationException) as exc_info:
            service.initiate_gateway_payment(appointment.id, payment_type="partial")
        assert exc_info.value.code == "NOTHING_DUE"

    def test_credit_covering_everything_skips_gateway(self, service, gateway, create_user, booked):
        user = create_user(credit="250")
        appointment = booked(user)

        checkout = service.initiate_gateway_payment(appointment.id)

        assert checkout.redirect_url == ""
        assert checkout.gateway_amount == Decimal("0.00")
        assert gateway.requests == []
        refreshed = service.get_appointment(appointment.id)
        assert refreshed.payment_status == "full"
        assert refreshed.pending_payment is None

    def test_reinitiating_replaces_pending(self, service, test_user, booked):
        appointment = booked(test_user)
        with patch(CLOCK, return_value=1700000000.0):
            first = service.initiate_gateway_payment(appointment.id)
        with patch(CLOCK, return_value=1700000001.0):
            second = service.initiate_gateway_payment(appointment.id)
        assert first.correlation_id != second.correlation_id

        with pytest.raises(PaymentMismatchException):
            service.confirm_gateway_payment(
                appointment.id, True, correlation_id=first.correlation_id
            )

        result = service.confirm_gateway_payment(
            appointment.id, True, correlation_id=second.correlation_id
        )
        assert result.appointment.payment_status == "full"

    def test_confirm_without_pending(self, service, test_user, booked):
        appointment = booked(test_user)

        with pytest.raises(PaymentMismatchException):
            service.confirm_gateway_payment(appointment.id, True)

    def test_failure_on_first_payment_cancels_at_checkout(self, service, test_user, booked):
        appointment = booked(test_user)
        service.initiate_gateway_payment(appointment.id)

        result = service.confirm_gateway_payment(appointment.id, False)

        assert result.message == "Payment cancelled and appointment cancelled"
        assert result.appointment.cancelled is True
        assert result.appointment.cancelled_at_checkout is True
        assert result.appointment.pending_payment is None
        display = service.list_appointment_displays()[0]
        assert display.status_label == "Unpaid - cancelled on checkout"

    def test_failure_after_partial_keeps_appointment(self, service, test_user, booked):
        appointment = booked(test_user, payment_type="partial", payment_method="cash")
        service.initiate_gateway_payment(appointment.id)

        result = service.confirm_gateway_payment(appointment.id, False)

        assert result.message == "Additional payment cancelled"
        assert result.appointment.cancelled is False
        assert result.appointment.payment_status == "partial"
        assert result.appointment.pending_payment is None

    def test_confirm_after_already_paid(self, service, test_user, booked):
        appointment = booked(test_user)
        checkout = service.initiate_gateway_payment(appointment.id)
        service.apply_balance_payment(appointment.id, payment_method="cash")

        result = service.confirm_gateway_payment(
            appointment.id, True, correlation_id=checkout.correlation_id
        )

        assert result.message == "Payment already completed"
        assert result.external_amount == Decimal("0.00")
        assert result.appointment.paid_amount == Decimal("200.00")

    def test_confirm_after_cancellation_is_still_recorded(self, service, ledger, test_user, booked):
        appointment = booked(test_user, payment_type="partial", payment_method="cash")
        checkout = service.initiate_gateway_payment(appointment.id, payment_type="full")
        service.cancel_appointment(appointment.id)

        result = service.confirm_gateway_payment(
            appointment.id, True, correlation_id=checkout.correlation_id
        )

        assert result.external_amount == Decimal("100.00")
        assert result.appointment.cancelled is True
        assert result.appointment.paid_amount == Decimal("200.00")
        assert result.appointment.payment_status == "full"
        assert result.appointment.pending_payment is None
        assert result.appointment.transaction_details[-1].payment_method == "payfast"

        refund = service.issue_credit_refund(appointment.id)
        assert refund.credit_balance == Decimal("200.00")
        assert ledger.balance_matches_history(test_user)

    def test_notification_settles_payment(self, service, test_user, booked):
        appointment = booked(test_user)
        checkout = service.initiate_gateway_payment(appointment.id)

        result = service.handle_gateway_notification(
            {
                "m_payment_id": checkout.correlation_id,
                "payment_status": "COMPLETE",
                "signature": "mock-valid",
            }
        )

        assert result.appointment.payment_status == "full"

    def test_notification_with_bad_signature(self, service, test_user, booked):
        appointment = booked(test_user)
        checkout = service.initiate_gateway_payment(appointment.id)

        with pytest.raises(ValidationException) as exc_info:
            service.handle_gateway_notification(
                {"m_payment_id": checkout.correlation_id, "payment_status": "COMPLETE"}
            )
        assert exc_info.value.code == "INVALID_SIGNATURE"

    def test_notification_for_unknown_payment(self, service):
        with pytest.raises(NotFoundException):
            service.handle_gateway_notification(
                {
                    "m_payment_id": "PF_0_missing",
                    "payment_status": "COMPLETE",
                    "signature": "mock-valid",
                }
            )


class TestCreditRefund:
    def test_refund_once(self, db, service, ledger, test_user, booked):
        appointment = booked(test_user, payment_type="partial", payment_method="cash")
        service.cancel_appointment(appointment.id)

        result = service.issue_credit_refund(appointment.id)

        assert result.message == "Credited 100.00 to user account"
        assert result.credit_balance == Decimal("100.00")
        refunded = result.appointment
        assert refunded.credit_processed is True
        assert refunded.paid_amount == Decimal("100.00")
        assert refunded.payment_status == "partial"
        assert refunded.effective_paid == Decimal("0.00")
        assert refunded.remaining_balance == Decimal("200.00")
        assert refunded.transaction_details[-1].payment_type == "credit_refund"
        assert refunded.transaction_details[-1].amount == Decimal("100.00")

        with pytest.raises(CreditAlreadyProcessedException):
            service.issue_credit_refund(appointment.id)

        db.refresh(test_user)
        assert test_user.credit_balance == Decimal("100.00")
        assert ledger.balance_matches_history(test_user)
        display = service.list_appointment_displays()[0]
        assert display.status_label == "Credited 100.00 back to user"
        assert display.can_issue_credit is False

    def test_refunded_credit_can_pay_next_booking(self, service, test_user, booked, booking_request):
        appointment = booked(test_user, payment_method="cash")
        service.cancel_appointment(appointment.id)
        service.issue_credit_refund(appointment.id)

        result = service.create_booking(booking_request(test_user, slot_time=time(14, 0)))

        assert result.credit_used == Decimal("200.00")
        assert result.appointment.payment_status == "full"
        assert result.credit_balance == Decimal("0.00")

    def test_credited_appointment_shows_full_amount_owed(self, service, test_user, booked):
        appointment = booked(test_user, payment_method="cash")
        service.cancel_appointment(appointment.id)

        result = service.issue_credit_refund(appointment.id)

        assert result.appointment.paid_amount == Decimal("200.00")
        assert result.appointment.effective_paid == Decimal("0.00")
        assert result.appointment.remaining_balance == Decimal("200.00")
        display = service.list_appointment_displays()[0]
        assert display.effective_paid == Decimal("0.00")
        assert display.remaining_balance == Decimal("200.00")

    def test_refund_waits_for_pending_checkout(self, service, ledger, test_user, booked):
        appointment = booked(test_user, payment_type="partial", payment_method="cash")
        service.initiate_gateway_payment(appointment.id)
        service.cancel_appointment(appointment.id)
        assert service.list_appointment_displays()[0].can_issue_credit is False

        with pytest.raises(ConflictException) as exc_info:
            service.issue_credit_refund(appointment.id)
        assert exc_info.value.code == "PAYMENT_PENDING"

        service.confirm_gateway_payment(appointment.id, False)
        result = service.issue_credit_refund(appointment.id)

        assert result.credit_balance == Decimal("100.00")
        assert ledger.balance_matches_history(test_user)

    def test_requires_cancellation(self, service, test_user, booked):
        appointment = booked(test_user, payment_method="cash")

        with pytest.raises(ValidationException) as exc_info:
            service.issue_credit_refund(appointment.id)
        assert exc_info.value.code == "APPOINTMENT_NOT_CANCELLED"

    def test_requires_paid_amount(self, service, test_user, booked):
        appointment = booked(test_user)
        service.cancel_appointment(appointment.id)

        with pytest.raises(ValidationException) as exc_info:
            service.issue_credit_refund(appointment.id)
        assert exc_info.value.code == "NOTHING_TO_CREDIT"


def test_effective_paid_matches_model(service, test_user, booked):
    appointment = booked(test_user, payment_method="cash")

    assert PaymentLedger.effective_paid(
        service.appointment_repository.get_by_id(appointment.id)
    ) == Decimal("200.00")
