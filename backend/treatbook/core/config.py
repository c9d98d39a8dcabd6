# backend/treatbook/core/config.py
from datetime import time
import logging
import os
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def is_running_tests() -> bool:
    """
    Detect if code is running under pytest.

    PYTEST_CURRENT_TEST is set automatically by pytest during test runs, and is
    not expected to be present in production environments.
    """
    return os.getenv("PYTEST_CURRENT_TEST") is not None


logger = logging.getLogger(__name__)

# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"  # Goes up to backend/.env
    logger.debug(f"[CONFIG] Looking for .env at: {env_path}")
    load_dotenv(env_path)


class Settings(BaseSettings):
    environment: str = Field(default="development", description="Deployment environment name")
    is_testing: bool = False  # Set to True when running tests

    # Database
    database_url: str = Field(
        default="sqlite:///./treatbook.db",
        description="SQLAlchemy URL for the primary database",
    )
    test_database_url: str = Field(
        default="sqlite+pysqlite:///:memory:",
        description="SQLAlchemy URL used by the test suite",
    )
    database_echo: bool = False

    # Redis (optional, enables cross-process slot locks)
    redis_url: Optional[str] = Field(default=None, description="Redis URL for distributed locks")
    lock_namespace: str = "treatbook"

    # Scheduling
    slot_buffer_minutes: int = Field(
        default=15, ge=0, description="Gap required between consecutive appointments"
    )
    business_open_time: time = Field(default=time(8, 0), description="First bookable minute")
    business_close_time: time = Field(default=time(18, 0), description="Latest appointment end")
    slot_lock_ttl_seconds: int = Field(default=30, ge=1)
    slot_lock_wait_seconds: float = Field(default=5.0, ge=0)
    slot_lock_poll_interval_seconds: float = Field(default=0.05, gt=0)

    # Booking numbers
    booking_counter_name: str = "appointment"
    booking_number_start: int = Field(default=1000, ge=0, description="Value before the first number")

    # Dashboard
    dashboard_latest_limit: int = Field(default=10, ge=1, le=100)

    # Users
    default_profile_image: str = Field(
        default="", description="Image assigned to users registered at the front desk"
    )

    # Payment gateway
    payment_gateway: Literal["payfast", "mock"] = Field(
        default="payfast", alias="PAYMENT_GATEWAY", description="Checkout provider"
    )
    payfast_merchant_id: str = Field(default="10000100", alias="PAYFAST_MERCHANT_ID")
    payfast_merchant_key: SecretStr = Field(
        default=SecretStr("46f0cd694581a"), alias="PAYFAST_MERCHANT_KEY"
    )
    payfast_passphrase: Optional[SecretStr] = Field(default=None, alias="PAYFAST_PASSPHRASE")
    payfast_sandbox: bool = Field(default=True, alias="PAYFAST_SANDBOX")
    frontend_url: str = Field(default="http://localhost:5173", alias="FRONTEND_URL")
    backend_url: str = Field(default="http://localhost:8000", alias="BACKEND_URL")
    currency: str = "ZAR"

    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("payfast_passphrase", mode="before")
    @classmethod
    def _blank_passphrase_is_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def _validate_business_hours(self) -> "Settings":
        if self.business_close_time <= self.business_open_time:
            raise ValueError("business_close_time must be later than business_open_time")
        return self

    @property
    def payfast_host(self) -> str:
        """PayFast host for the configured mode."""
        return "sandbox.payfast.co.za" if self.payfast_sandbox else "www.payfast.co.za"

    def get_database_url(self) -> str:
        """Get the appropriate database URL based on context."""
        if self.is_testing or is_running_tests():
            return self.test_database_url
        return self.database_url


settings = Settings()
