# backend/tests/unit/test_payfast_signature.py
"""PayFast form building and signature checks."""

from decimal import Decimal
import hashlib
import json

import pytest

from treatbook.services.gateway import (
    CheckoutRequest,
    MockPaymentGateway,
    PayFastGateway,
    create_payment_gateway,
)
from treatbook.services.gateway.payfast_provider import generate_signature


@pytest.fixture
def gateway():
    return PayFastGateway(
        merchant_id="10000100",
        merchant_key="46f0cd694581a",
        passphrase="jt7NOE43FZPn",
        host="sandbox.payfast.co.za",
        frontend_url="http://localhost:5173/",
        backend_url="http://localhost:8000",
    )


@pytest.fixture
def checkout_request():
    return CheckoutRequest(
        correlation_id="PF_1700000000000_01HZAPPT",
        appointment_id="01HZAPPT",
        booking_number=1001,
        amount=Decimal("50"),
        item_name="Deep Tissue Massage - Booking #1001",
        payment_type="full",
        use_credit=True,
        customer_name="Thandi",
    )


def test_signature_skips_blank_fields_and_appends_passphrase():
    fields = {"merchant_id": "10000100", "name_first": "", "amount": "50.00", "item_name": "A B"}

    expected = hashlib.md5(
        b"merchant_id=10000100&amount=50.00&item_name=A+B&passphrase=secret"
    ).hexdigest()

    assert generate_signature(fields, "secret") == expected


def test_signature_without_passphrase_ignores_signature_field():
    fields = {"merchant_id": "10000100", "signature": "abc"}

    assert generate_signature(fields) == hashlib.md5(b"merchant_id=10000100").hexdigest()


def test_build_checkout(gateway, checkout_request):
    session = gateway.build_checkout(checkout_request)
    fields = session.form_fields

    assert session.redirect_url == "https://sandbox.payfast.co.za/eng/process"
    assert fields["m_payment_id"] == checkout_request.correlation_id
    assert fields["amount"] == "50.00"
    assert fields["notify_url"] == "http://localhost:8000/api/v1/appointments/payfast/notify"
    assert fields["return_url"].startswith("http://localhost:5173/verify?appointmentId=01HZAPPT")
    assert fields["return_url"].endswith("&success=true")
    assert fields["cancel_url"].endswith("&success=false")
    assert "email_address" not in fields
    assert json.loads(fields["custom_str1"]) == {
        "appointmentId": "01HZAPPT",
        "paymentType": "full",
        "amount": "50.00",
        "useCredit": True,
    }
    assert fields["signature"] == generate_signature(fields, "jt7NOE43FZPn")


def test_verify_notification_round_trip(gateway, checkout_request):
    fields = dict(gateway.build_checkout(checkout_request).form_fields)
    assert gateway.verify_notification(fields) is True

    fields["amount"] = "1.00"
    assert gateway.verify_notification(fields) is False


def test_verify_notification_requires_signature(gateway):
    assert gateway.verify_notification({"m_payment_id": "PF_1"}) is False


def test_factory_selects_provider():
    assert isinstance(create_payment_gateway("mock"), MockPaymentGateway)
    assert isinstance(create_payment_gateway("payfast"), PayFastGateway)
