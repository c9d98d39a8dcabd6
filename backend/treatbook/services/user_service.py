# backend/treatbook/services/user_service.py
"""
User Service for Treatbook

Front-desk registration and lookup of patients by phone number.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import DuplicatePhoneException, NotFoundException
from ..repositories import RepositoryFactory
from ..repositories.user_repository import UserRepository
from ..schemas.base import to_money
from ..schemas.user import UserResponse, UserResult
from .base import BaseService

logger = logging.getLogger(__name__)


class UserService(BaseService):
    def __init__(self, db: Session, repository: Optional[UserRepository] = None):
        super().__init__(db)
        self.repository = repository or RepositoryFactory.create_user_repository(db)

    @BaseService.measure_operation("register_user")
    def register_user(self, name: str, phone: str) -> UserResult:
        """
        Create a patient with a zero credit balance.

        Raises:
            DuplicatePhoneException: the phone number already has an account
        """
        with self.transaction():
            if self.repository.exists(phone=phone):
                raise DuplicatePhoneException(phone)
            user = self.repository.create(
                name=name,
                phone=phone,
                image=settings.default_profile_image,
                credit_balance=to_money(0),
            )
            self.log_operation("register_user", user_id=user.id)

        return UserResult(
            message="User registered successfully", user=UserResponse.model_validate(user)
        )

    @BaseService.measure_operation("find_user_by_phone")
    def find_by_phone(self, phone: str) -> UserResult:
        """
        Look a patient up by phone number.

        Raises:
            NotFoundException: no account uses this phone number
        """
        user = self.repository.get_by_phone(phone)
        if not user:
            raise NotFoundException(
                "User not found. Please register first.",
                code="USER_NOT_FOUND",
                details={"phone": phone},
            )
        return UserResult(message="User found", user=UserResponse.model_validate(user))

    def get_user(self, user_id: str) -> UserResponse:
        user = self.repository.get_by_id(user_id)
        if not user:
            raise NotFoundException(
                "User not found", code="USER_NOT_FOUND", details={"user_id": user_id}
            )
        return UserResponse.model_validate(user)
