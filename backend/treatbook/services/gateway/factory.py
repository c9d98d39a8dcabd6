"""Factory for payment gateways."""

from typing import Optional

from ...core.config import settings
from .base import PaymentGateway
from .mock_provider import MockPaymentGateway
from .payfast_provider import PayFastGateway


def create_payment_gateway(provider_override: Optional[str] = None) -> PaymentGateway:
    name = (provider_override or settings.payment_gateway or "payfast").lower()
    if name == "mock":
        return MockPaymentGateway()
    return PayFastGateway()
