# backend/treatbook/repositories/appointment_repository.py
"""
Appointment Repository for Treatbook

Data access for appointments, their transaction details and the pending
gateway payment. Nothing here commits.
"""

from decimal import Decimal
import logging
from typing import List, Optional, Tuple

from sqlalchemy import and_, exists, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from ..core.enums import PaymentType
from ..core.exceptions import RepositoryException
from ..database.session_utils import supports_row_locks
from ..models.appointment import Appointment, PendingPayment, TransactionDetail
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class AppointmentRepository(BaseRepository[Appointment]):
    """Repository for appointment reads and ledger writes."""

    def __init__(self, db: Session):
        super().__init__(db, Appointment)
        self.logger = logging.getLogger(__name__)

    def get_by_id(self, id: str, for_update: bool = False) -> Optional[Appointment]:
        try:
            query = (
                self.db.query(Appointment)
                .options(
                    selectinload(Appointment.transaction_details),
                    selectinload(Appointment.pending_payment),
                )
                .filter(Appointment.id == id)
            )
            if for_update and supports_row_locks(self.db):
                query = query.with_for_update(of=Appointment)
            return query.first()
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting appointment {id}: {str(e)}")
            raise RepositoryException(f"Failed to retrieve appointment: {str(e)}")

    def get_by_booking_number(self, booking_number: int) -> Optional[Appointment]:
        return self.find_one_by(booking_number=booking_number)

    def list_for_user(self, user_id: str) -> List[Appointment]:
        """A user's appointments, most recent slot first."""
        query = (
            self.db.query(Appointment)
            .options(selectinload(Appointment.transaction_details))
            .filter(Appointment.user_id == user_id)
            .order_by(Appointment.slot_date.desc(), Appointment.slot_time.desc())
        )
        return self._execute_query(query)

    def list_all(self, limit: Optional[int] = None) -> List[Appointment]:
        """All appointments, newest booking first."""
        query = (
            self.db.query(Appointment)
            .options(selectinload(Appointment.transaction_details))
            .order_by(Appointment.booking_number.desc())
        )
        if limit is not None:
            query = query.limit(limit)
        return self._execute_query(query)

    def get_ledger_totals(self) -> Tuple[Decimal, Decimal]:
        """
        Return (total received, total invoiced) across all appointments.

        Received uses the effective paid amount: appointments whose payment
        was returned as credit count as zero.
        """
        refunded = exists().where(
            and_(
                TransactionDetail.appointment_id == Appointment.id,
                TransactionDetail.payment_type == PaymentType.CREDIT_REFUND.value,
            )
        )
        try:
            received = self.db.execute(
                select(func.coalesce(func.sum(Appointment.paid_amount), 0)).where(~refunded)
            ).scalar_one()
            invoiced = self.db.execute(
                select(func.coalesce(func.sum(Appointment.amount), 0))
            ).scalar_one()
        except SQLAlchemyError as e:
            self.logger.error(f"Error computing ledger totals: {str(e)}")
            raise RepositoryException(f"Failed to compute ledger totals: {str(e)}")
        return Decimal(str(received)), Decimal(str(invoiced))

    # Ledger writes

    def append_transaction(
        self,
        appointment: Appointment,
        *,
        amount: Decimal,
        payment_method: str,
        payment_type: str,
        description: Optional[str] = None,
        reference: Optional[str] = None,
    ) -> TransactionDetail:
        """Append a transaction detail after the appointment's last one."""
        position = max((d.position for d in appointment.transaction_details), default=0) + 1
        detail = TransactionDetail(
            position=position,
            amount=amount,
            payment_method=payment_method,
            payment_type=payment_type,
            description=description,
            reference=reference,
        )
        appointment.transaction_details.append(detail)
        self.flush()
        return detail

    def set_pending_payment(
        self,
        appointment: Appointment,
        *,
        correlation_id: str,
        amount: Decimal,
        gateway_amount: Decimal,
        payment_type: str,
        use_credit: bool,
    ) -> PendingPayment:
        """Record the outstanding checkout, replacing any earlier one."""
        if appointment.pending_payment is not None:
            self.clear_pending_payment(appointment)
        pending = PendingPayment(
            correlation_id=correlation_id,
            amount=amount,
            gateway_amount=gateway_amount,
            payment_type=payment_type,
            use_credit=use_credit,
        )
        appointment.pending_payment = pending
        self.flush()
        return pending

    def clear_pending_payment(self, appointment: Appointment) -> None:
        if appointment.pending_payment is None:
            return
        appointment.pending_payment = None
        self.flush()

    def get_by_correlation_id(self, correlation_id: str) -> Optional[Appointment]:
        """Find the appointment whose pending payment carries this correlation id."""
        try:
            pending = (
                self.db.query(PendingPayment)
                .filter(PendingPayment.correlation_id == correlation_id)
                .first()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error finding pending payment {correlation_id}: {str(e)}")
            raise RepositoryException(f"Failed to find pending payment: {str(e)}")
        return pending.appointment if pending else None
