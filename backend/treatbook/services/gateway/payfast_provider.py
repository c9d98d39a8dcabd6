"""PayFast checkout form builder and signature verification."""

import hashlib
import hmac
import json
import logging
from typing import Dict, Mapping, Optional
from urllib.parse import quote_plus

from ...core.config import settings
from .base import CheckoutRequest, CheckoutSession, PaymentGateway

logger = logging.getLogger(__name__)


def generate_signature(fields: Mapping[str, str], passphrase: Optional[str] = None) -> str:
    """
    MD5 signature over the non-empty fields in their given order.

    Values are trimmed and URL-encoded with spaces as ``+``; the passphrase,
    when set, is appended as a final ``passphrase`` pair.
    """
    pairs = [
        f"{key}={quote_plus(str(value).strip())}"
        for key, value in fields.items()
        if key != "signature" and value is not None and str(value).strip() != ""
    ]
    if passphrase:
        pairs.append(f"passphrase={quote_plus(passphrase.strip())}")
    return hashlib.md5("&".join(pairs).encode("utf-8")).hexdigest()


class PayFastGateway(PaymentGateway):
    name = "payfast"

    def __init__(
        self,
        merchant_id: Optional[str] = None,
        merchant_key: Optional[str] = None,
        passphrase: Optional[str] = None,
        host: Optional[str] = None,
        frontend_url: Optional[str] = None,
        backend_url: Optional[str] = None,
    ):
        self.merchant_id = merchant_id or settings.payfast_merchant_id
        self.merchant_key = merchant_key or settings.payfast_merchant_key.get_secret_value()
        if passphrase is None and settings.payfast_passphrase is not None:
            passphrase = settings.payfast_passphrase.get_secret_value()
        self.passphrase = passphrase
        self.host = host or settings.payfast_host
        self.frontend_url = (frontend_url or settings.frontend_url).rstrip("/")
        self.backend_url = (backend_url or settings.backend_url).rstrip("/")

    @property
    def process_url(self) -> str:
        return f"https://{self.host}/eng/process"

    def build_checkout(self, request: CheckoutRequest) -> CheckoutSession:
        verify_base = (
            f"{self.frontend_url}/verify?appointmentId={request.appointment_id}"
            f"&payfast=true&pfPaymentId={request.correlation_id}"
        )
        fields: Dict[str, str] = {
            "merchant_id": self.merchant_id,
            "merchant_key": self.merchant_key,
            "return_url": f"{verify_base}&success=true",
            "cancel_url": f"{verify_base}&success=false",
            "notify_url": f"{self.backend_url}/api/v1/appointments/payfast/notify",
            "name_first": request.customer_name or "",
            "email_address": request.customer_email or "",
            "m_payment_id": request.correlation_id,
            "amount": f"{request.amount:.2f}",
            "item_name": request.item_name,
            "custom_str1": json.dumps(
                {
                    "appointmentId": request.appointment_id,
                    "paymentType": request.payment_type,
                    "amount": f"{request.amount:.2f}",
                    "useCredit": request.use_credit,
                },
                separators=(",", ":"),
            ),
        }
        fields = {key: value for key, value in fields.items() if value != ""}
        fields["signature"] = generate_signature(fields, self.passphrase)
        logger.info(
            "payfast_checkout_built",
            extra={
                "appointment_id": request.appointment_id,
                "m_payment_id": request.correlation_id,
                "amount": fields["amount"],
            },
        )
        return CheckoutSession(redirect_url=self.process_url, form_fields=fields)

    def verify_notification(self, fields: Mapping[str, str]) -> bool:
        received = fields.get("signature")
        if not received:
            return False
        expected = generate_signature(fields, self.passphrase)
        return hmac.compare_digest(expected, str(received))
