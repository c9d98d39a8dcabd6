# backend/treatbook/services/credit_ledger.py
"""
Credit Ledger for Treatbook

Store credit lives on the user as ``credit_balance`` plus an ordered credit
history. Every movement goes through this ledger, which updates both in the
same flush so the balance always equals credits minus debits.

The ledger never commits; it runs inside the caller's unit of work.
"""

from decimal import Decimal
import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..core.enums import CreditEntryType
from ..core.exceptions import BusinessRuleException, ValidationException
from ..models.user import CreditHistoryEntry, User
from ..repositories import RepositoryFactory
from ..repositories.user_repository import UserRepository
from ..schemas.base import to_money
from .base import BaseService

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


class CreditLedger(BaseService):
    """Debits and credits against a user's store-credit balance."""

    def __init__(self, db: Session, user_repository: Optional[UserRepository] = None):
        super().__init__(db)
        self.user_repository = user_repository or RepositoryFactory.create_user_repository(db)

    @staticmethod
    def balance(user: User) -> Decimal:
        return to_money(user.credit_balance or ZERO)

    @staticmethod
    def history_total(user: User) -> Decimal:
        """Credits minus debits over the user's whole history."""
        return to_money(sum((entry.signed_amount for entry in user.credit_history), ZERO))

    def balance_matches_history(self, user: User) -> bool:
        return self.balance(user) == self.history_total(user)

    def debit(
        self,
        user: User,
        amount: Decimal,
        *,
        appointment_id: Optional[str],
        description: str,
    ) -> CreditHistoryEntry:
        """
        Spend ``amount`` of the user's credit.

        Raises:
            ValidationException: if amount is not positive
            BusinessRuleException: if the balance does not cover amount
        """
        amount = self._validated_amount(amount)
        balance = self.balance(user)
        if amount > balance:
            raise BusinessRuleException(
                "Insufficient credit balance",
                code="INSUFFICIENT_CREDIT",
                details={"requested": str(amount), "available": str(balance)},
            )

        user.credit_balance = balance - amount
        entry = self.user_repository.append_credit_entry(
            user,
            amount=amount,
            entry_type=CreditEntryType.DEBIT.value,
            appointment_id=appointment_id,
            description=description,
        )
        self.logger.info(
            f"Debited {amount} credit from user {user.id} (balance {user.credit_balance})"
        )
        return entry

    def credit(
        self,
        user: User,
        amount: Decimal,
        *,
        appointment_id: Optional[str],
        description: str,
    ) -> CreditHistoryEntry:
        """Add ``amount`` to the user's credit balance."""
        amount = self._validated_amount(amount)
        user.credit_balance = self.balance(user) + amount
        entry = self.user_repository.append_credit_entry(
            user,
            amount=amount,
            entry_type=CreditEntryType.CREDIT.value,
            appointment_id=appointment_id,
            description=description,
        )
        self.logger.info(
            f"Credited {amount} to user {user.id} (balance {user.credit_balance})"
        )
        return entry

    @staticmethod
    def _validated_amount(amount: Decimal) -> Decimal:
        amount = to_money(amount)
        if amount <= ZERO:
            raise ValidationException(
                "Credit amount must be positive", code="INVALID_CREDIT_AMOUNT"
            )
        return amount
