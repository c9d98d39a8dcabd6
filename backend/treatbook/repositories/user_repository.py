# backend/treatbook/repositories/user_repository.py
"""User Repository for Treatbook."""

from decimal import Decimal
import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..models.user import CreditHistoryEntry, User
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class UserRepository(BaseRepository[User]):
    """User lookups and credit history writes."""

    def __init__(self, db: Session):
        super().__init__(db, User)

    def get_by_phone(self, phone: str) -> Optional[User]:
        return self.find_one_by(phone=phone)

    def append_credit_entry(
        self,
        user: User,
        *,
        amount: Decimal,
        entry_type: str,
        appointment_id: Optional[str],
        description: str,
    ) -> CreditHistoryEntry:
        """Append a credit history entry after the user's last one."""
        position = max((e.position for e in user.credit_history), default=0) + 1
        entry = CreditHistoryEntry(
            position=position,
            amount=amount,
            entry_type=entry_type,
            appointment_id=appointment_id,
            description=description,
        )
        user.credit_history.append(entry)
        self.flush()
        return entry
