"""Enumerations shared by models, schemas and services."""

from enum import Enum


class PaymentStatus(str, Enum):
    """How much of an appointment's price has been settled."""

    NONE = "none"
    PARTIAL = "partial"
    FULL = "full"


class PaymentMethod(str, Enum):
    """Instrument a transaction was settled with."""

    CASH = "cash"
    SPEED_POINT = "speed_point"
    CREDIT_BALANCE = "credit_balance"
    PAYFAST = "payfast"
    ADMIN_CREDIT = "admin_credit"


class PaymentType(str, Enum):
    """Purpose of a transaction on an appointment."""

    FULL = "full"
    PARTIAL = "partial"
    CREDIT = "credit"
    CREDIT_REFUND = "credit_refund"
    BALANCE = "balance"


class CreditEntryType(str, Enum):
    """Direction of a credit history entry."""

    CREDIT = "credit"
    DEBIT = "debit"


# Methods a caller may settle with directly (not via the credit ledger or gateway).
DIRECT_PAYMENT_METHODS = frozenset(
    {PaymentMethod.CASH, PaymentMethod.SPEED_POINT, PaymentMethod.ADMIN_CREDIT}
)

# Payment types a booking can be opened with.
BOOKING_PAYMENT_TYPES = frozenset({PaymentType.FULL, PaymentType.PARTIAL})
