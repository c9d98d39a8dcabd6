"""Provider-agnostic payment gateway interfaces."""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, Field


class CheckoutRequest(BaseModel):
    """What the engine asks a gateway to collect."""

    correlation_id: str
    appointment_id: str
    booking_number: int
    amount: Decimal
    item_name: str
    payment_type: str
    use_credit: bool = True
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None


class CheckoutSession(BaseModel):
    """Where to send the customer, and the signed fields to post there."""

    redirect_url: str
    form_fields: Dict[str, str] = Field(default_factory=dict)
    provider_data: Dict[str, Any] = Field(default_factory=dict)


class PaymentGateway(ABC):
    name: str = "gateway"

    @abstractmethod
    def build_checkout(self, request: CheckoutRequest) -> CheckoutSession:
        pass

    @abstractmethod
    def verify_notification(self, fields: Mapping[str, str]) -> bool:
        """True when a gateway callback's fields carry a valid signature."""
