"""User and treatment schemas."""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import Field, field_validator

from .base import Money, StandardizedModel, StrictModel


class UserRegisterRequest(StrictModel):
    name: str = Field(min_length=1, max_length=255)
    phone: str = Field(min_length=3, max_length=32)

    @field_validator("name", "phone")
    @classmethod
    def _strip(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class UserLoginRequest(StrictModel):
    phone: str = Field(min_length=3, max_length=32)


class CreditHistoryResponse(StandardizedModel):
    amount: Money
    entry_type: Literal["credit", "debit"]
    appointment_id: Optional[str] = None
    description: Optional[str] = None
    created_at: Optional[datetime] = None


class UserResponse(StandardizedModel):
    id: str
    name: str
    phone: str
    image: str = ""
    credit_balance: Money
    credit_history: List[CreditHistoryResponse] = Field(default_factory=list)


class UserResult(StandardizedModel):
    success: bool = True
    message: str
    user: UserResponse


class TreatmentCreateRequest(StrictModel):
    name: str = Field(min_length=1, max_length=255)
    speciality: str = ""
    image: str = ""
    available: bool = True


class TreatmentResponse(StandardizedModel):
    id: str
    name: str
    speciality: str
    image: str
    available: bool
