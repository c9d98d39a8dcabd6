"""Front-desk dashboard schemas."""

from typing import List

from pydantic import Field

from .appointment import AppointmentResponse
from .base import Money, StandardizedModel


class AppointmentDisplay(StandardizedModel):
    """An appointment with its reconciled payment presentation."""

    appointment: AppointmentResponse
    status_label: str
    effective_paid: Money
    remaining_balance: Money
    payment_methods: List[str] = Field(default_factory=list)
    can_issue_credit: bool = False
    can_accept_balance: bool = False


class DashboardSummary(StandardizedModel):
    success: bool = True
    treatments: int
    appointments: int
    patients: int
    total_received: Money
    total_invoiced: Money
    latest_appointments: List[AppointmentDisplay] = Field(default_factory=list)
