from .base import CheckoutRequest, CheckoutSession, PaymentGateway
from .factory import create_payment_gateway
from .mock_provider import MockPaymentGateway
from .payfast_provider import PayFastGateway, generate_signature

__all__ = [
    "CheckoutRequest",
    "CheckoutSession",
    "MockPaymentGateway",
    "PayFastGateway",
    "PaymentGateway",
    "create_payment_gateway",
    "generate_signature",
]
