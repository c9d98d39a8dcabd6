"""
Service layer dependencies for dependency injection.

This module provides factory functions that create service instances
with their required dependencies properly injected.
"""

from functools import lru_cache
import logging

from fastapi import Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..services.gateway import PaymentGateway, create_payment_gateway
from ..services.reconciliation_service import ReconciliationService
from ..services.treatment_service import TreatmentService
from ..services.user_service import UserService

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_payment_gateway() -> PaymentGateway:
    """Get singleton payment gateway instance."""
    return create_payment_gateway()


def get_reconciliation_service(
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> ReconciliationService:
    """Get reconciliation service instance for dependency injection."""
    return ReconciliationService(db, gateway=gateway)


def get_user_service(db: Session = Depends(get_db)) -> UserService:
    return UserService(db)


def get_treatment_service(db: Session = Depends(get_db)) -> TreatmentService:
    return TreatmentService(db)
