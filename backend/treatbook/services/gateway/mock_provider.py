"""Mock payment gateway for unit tests and local development (no network calls)."""

from typing import List, Mapping

from .base import CheckoutRequest, CheckoutSession, PaymentGateway


class MockPaymentGateway(PaymentGateway):
    name = "mock"

    def __init__(self) -> None:
        self.requests: List[CheckoutRequest] = []

    def build_checkout(self, request: CheckoutRequest) -> CheckoutSession:
        self.requests.append(request)
        return CheckoutSession(
            redirect_url=f"https://gateway.invalid/checkout/{request.correlation_id}",
            form_fields={
                "m_payment_id": request.correlation_id,
                "amount": f"{request.amount:.2f}",
                "item_name": request.item_name,
            },
            provider_data={"source": "mock"},
        )

    def verify_notification(self, fields: Mapping[str, str]) -> bool:
        return fields.get("signature") == "mock-valid"
