"""
Transaction detail variants.

Each money movement on an appointment is one of three shapes, told apart by
``payment_type``:

- ``PaymentTransaction``: money from an external instrument (full, partial, balance)
- ``CreditTransaction``: store credit spent on the appointment
- ``CreditRefundTransaction``: the appointment's paid amount returned as credit
"""

from datetime import datetime
from typing import TYPE_CHECKING, Annotated, Any, Dict, Iterable, Literal, Optional, Union

from pydantic import Field, TypeAdapter

from .base import Money, StandardizedModel

if TYPE_CHECKING:
    from ..models.appointment import TransactionDetail


class _TransactionBase(StandardizedModel):
    amount: Money = Field(gt=0)
    created_at: Optional[datetime] = None
    description: Optional[str] = None
    reference: Optional[str] = None
    position: Optional[int] = None


class PaymentTransaction(_TransactionBase):
    payment_type: Literal["full", "partial", "balance"]
    payment_method: Literal["cash", "speed_point", "payfast", "admin_credit"]


class CreditTransaction(_TransactionBase):
    payment_type: Literal["credit"] = "credit"
    payment_method: Literal["credit_balance"] = "credit_balance"


class CreditRefundTransaction(_TransactionBase):
    payment_type: Literal["credit_refund"] = "credit_refund"
    payment_method: Literal["credit_balance"] = "credit_balance"


TransactionRecord = Annotated[
    Union[PaymentTransaction, CreditTransaction, CreditRefundTransaction],
    Field(discriminator="payment_type"),
]

_transaction_adapter: TypeAdapter[Any] = TypeAdapter(TransactionRecord)


def transaction_from_detail(detail: "TransactionDetail") -> Any:
    """Build the typed variant for a stored transaction detail row."""
    data: Dict[str, Any] = {
        "amount": detail.amount,
        "payment_method": detail.payment_method,
        "payment_type": detail.payment_type,
        "created_at": detail.created_at,
        "description": detail.description,
        "reference": detail.reference,
        "position": detail.position,
    }
    return _transaction_adapter.validate_python(data)


def transactions_from_details(details: Iterable["TransactionDetail"]) -> list:
    return [transaction_from_detail(detail) for detail in details]

