# backend/tests/unit/test_payment_status.py
"""Unit tests for payment status derivation and display helpers."""

from decimal import Decimal
from types import SimpleNamespace

import pytest

from treatbook.core.enums import PaymentStatus
from treatbook.services.payment_ledger import PaymentApplication, PaymentLedger


def _detail(amount, method, payment_type):
    return SimpleNamespace(
        amount=Decimal(amount),
        payment_method=method,
        payment_type=payment_type,
        created_at=None,
        description=None,
        reference=None,
        position=None,
    )


def _appointment(amount="200", paid="0", details=(), cancelled=False, at_checkout=False):
    details = list(details)
    return SimpleNamespace(
        amount=Decimal(amount),
        paid_amount=Decimal(paid),
        cancelled=cancelled,
        cancelled_at_checkout=at_checkout,
        transaction_details=details,
        has_credit_refund=any(d.payment_type == "credit_refund" for d in details),
    )


@pytest.mark.parametrize(
    "paid,amount,expected",
    [
        ("0", "200", PaymentStatus.NONE),
        ("-5", "200", PaymentStatus.NONE),
        ("0.01", "200", PaymentStatus.PARTIAL),
        ("199.99", "200", PaymentStatus.PARTIAL),
        ("200", "200", PaymentStatus.FULL),
        ("250", "200", PaymentStatus.FULL),
    ],
)
def test_compute_status(paid, amount, expected):
    assert PaymentLedger.compute_status(Decimal(paid), Decimal(amount)) == expected


def test_recompute_status_writes_value():
    appointment = SimpleNamespace(
        amount=Decimal("100"), paid_amount=Decimal("50"), payment_status="none"
    )

    PaymentLedger.recompute_status(appointment)

    assert appointment.payment_status == "partial"


def test_effective_paid_is_zero_after_credit_refund():
    appointment = _appointment(
        paid="100",
        details=[
            _detail("100", "cash", "partial"),
            _detail("100", "credit_balance", "credit_refund"),
        ],
        cancelled=True,
    )

    assert PaymentLedger.effective_paid(appointment) == Decimal("0.00")


def test_effective_paid_without_refund():
    appointment = _appointment(paid="100", details=[_detail("100", "cash", "partial")])

    assert PaymentLedger.effective_paid(appointment) == Decimal("100.00")


def test_remaining_balance_follows_effective_paid():
    credited = _appointment(
        paid="200",
        details=[
            _detail("200", "cash", "full"),
            _detail("200", "credit_balance", "credit_refund"),
        ],
        cancelled=True,
    )
    partly_paid = _appointment(paid="50", details=[_detail("50", "cash", "partial")])

    assert PaymentLedger.remaining_balance(credited) == Decimal("200.00")
    assert PaymentLedger.remaining_balance(partly_paid) == Decimal("150.00")


def test_payment_methods_are_distinct_and_skip_refunds():
    appointment = _appointment(
        paid="200",
        details=[
            _detail("50", "credit_balance", "credit"),
            _detail("100", "payfast", "full"),
            _detail("50", "credit_balance", "credit"),
            _detail("200", "credit_balance", "credit_refund"),
        ],
    )

    assert PaymentLedger.payment_methods(appointment) == ["Credit", "PayFast"]


class TestDisplayStatus:
    def test_credited_back(self):
        appointment = _appointment(
            paid="100",
            details=[_detail("100", "credit_balance", "credit_refund")],
            cancelled=True,
        )
        assert PaymentLedger.display_status(appointment) == "Credited 100.00 back to user"

    def test_cancelled_on_checkout(self):
        appointment = _appointment(cancelled=True, at_checkout=True)
        assert PaymentLedger.display_status(appointment) == "Unpaid - cancelled on checkout"

    def test_paid_in_full_lists_methods(self):
        appointment = _appointment(
            paid="200",
            details=[_detail("150", "credit_balance", "credit"), _detail("50", "cash", "balance")],
        )
        assert PaymentLedger.display_status(appointment) == "Paid in Full (via Credit, Cash)"

    def test_partial_and_unpaid(self):
        assert PaymentLedger.display_status(_appointment(paid="10")) == "Partially paid"
        assert PaymentLedger.display_status(_appointment()) == "Unpaid"


def test_payment_application_total():
    application = PaymentApplication(
        required=Decimal("200"),
        credit_used=Decimal("150"),
        external_amount=Decimal("50"),
        remaining=Decimal("0"),
    )
    assert application.total_applied == Decimal("200")
