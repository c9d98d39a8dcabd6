# backend/treatbook/models/__init__.py
"""
SQLAlchemy models for Treatbook.

Importing this package registers every mapper on ``Base.metadata``.
"""

from .appointment import Appointment, BookingCounter, PendingPayment, TransactionDetail
from .treatment import Treatment
from .user import CreditHistoryEntry, User

__all__ = [
    "Appointment",
    "BookingCounter",
    "CreditHistoryEntry",
    "PendingPayment",
    "TransactionDetail",
    "Treatment",
    "User",
]
