# backend/treatbook/routes/v1/admin.py
"""
Front-desk routes - API v1

Registration, lookup, booking on behalf of patients, payments taken at the
desk, credit refunds and treatment management.

Endpoints:
    POST /register-user - Register a patient
    POST /login-user - Look a patient up by phone
    GET /users/{user_id} - Patient details with credit history
    POST /book-appointment - Book on a patient's behalf (may take cash/speed point)
    GET /dashboard - Counts, totals and latest appointments
    GET /appointments - All appointments with their payment presentation
    POST /appointments/{appointment_id}/cancel - Cancel
    POST /appointments/{appointment_id}/complete - Mark completed
    DELETE /appointments/{appointment_id} - Delete
    POST /appointments/{appointment_id}/accept-balance - Take the balance at the desk
    POST /appointments/{appointment_id}/credit-user - Refund paid money as credit
    POST /treatments - Add a treatment
    GET /treatments - List bookable treatments
    DELETE /treatments/{treatment_id} - Remove a treatment
"""

import asyncio
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from ...api.dependencies import (
    get_reconciliation_service,
    get_treatment_service,
    get_user_service,
)
from ...core.exceptions import DomainException
from ...schemas.appointment import (
    AppointmentActionResult,
    BalancePaymentRequest,
    BookingCreateRequest,
    BookingResult,
    CreditRefundResult,
    PaymentResult,
)
from ...schemas.base_responses import SuccessResponse
from ...schemas.dashboard import AppointmentDisplay, DashboardSummary
from ...schemas.user import (
    TreatmentCreateRequest,
    TreatmentResponse,
    UserLoginRequest,
    UserRegisterRequest,
    UserResponse,
    UserResult,
)
from ...services.reconciliation_service import ReconciliationService
from ...services.treatment_service import TreatmentService
from ...services.user_service import UserService
from . import handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(tags=["admin-v1"])


# ============================================================================
# Patients
# ============================================================================


@router.post("/register-user", response_model=UserResult, status_code=status.HTTP_201_CREATED)
async def register_user(
    payload: UserRegisterRequest,
    service: UserService = Depends(get_user_service),
) -> UserResult:
    try:
        return await asyncio.to_thread(service.register_user, payload.name, payload.phone)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/login-user", response_model=UserResult)
async def login_user(
    payload: UserLoginRequest,
    service: UserService = Depends(get_user_service),
) -> UserResult:
    try:
        return await asyncio.to_thread(service.find_by_phone, payload.phone)
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/users/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: str,
    service: UserService = Depends(get_user_service),
) -> UserResponse:
    try:
        return await asyncio.to_thread(service.get_user, user_id)
    except DomainException as e:
        handle_domain_exception(e)


# ============================================================================
# Appointments
# ============================================================================


@router.post(
    "/book-appointment", response_model=BookingResult, status_code=status.HTTP_201_CREATED
)
async def book_appointment(
    payload: BookingCreateRequest,
    service: ReconciliationService = Depends(get_reconciliation_service),
) -> BookingResult:
    """Book for a patient; with a ``payment_method`` the rest is taken at the desk."""
    try:
        return await asyncio.to_thread(service.create_booking, payload)
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/dashboard", response_model=DashboardSummary)
async def dashboard(
    limit: Optional[int] = Query(None, ge=1, le=100),
    service: ReconciliationService = Depends(get_reconciliation_service),
) -> DashboardSummary:
    try:
        return await asyncio.to_thread(service.get_dashboard_summary, limit)
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/appointments", response_model=List[AppointmentDisplay])
async def list_appointments(
    service: ReconciliationService = Depends(get_reconciliation_service),
) -> List[AppointmentDisplay]:
    try:
        return await asyncio.to_thread(service.list_appointment_displays)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/appointments/{appointment_id}/cancel", response_model=AppointmentActionResult)
async def cancel_appointment(
    appointment_id: str,
    service: ReconciliationService = Depends(get_reconciliation_service),
) -> AppointmentActionResult:
    try:
        return await asyncio.to_thread(service.cancel_appointment, appointment_id)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/appointments/{appointment_id}/complete", response_model=AppointmentActionResult)
async def complete_appointment(
    appointment_id: str,
    service: ReconciliationService = Depends(get_reconciliation_service),
) -> AppointmentActionResult:
    try:
        return await asyncio.to_thread(service.complete_appointment, appointment_id)
    except DomainException as e:
        handle_domain_exception(e)


@router.delete("/appointments/{appointment_id}", response_model=AppointmentActionResult)
async def delete_appointment(
    appointment_id: str,
    service: ReconciliationService = Depends(get_reconciliation_service),
) -> AppointmentActionResult:
    try:
        return await asyncio.to_thread(service.delete_appointment, appointment_id)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/appointments/{appointment_id}/accept-balance", response_model=PaymentResult)
async def accept_balance(
    appointment_id: str,
    payload: BalancePaymentRequest,
    service: ReconciliationService = Depends(get_reconciliation_service),
) -> PaymentResult:
    """Take the outstanding balance at the desk, credit first if asked."""
    try:
        return await asyncio.to_thread(
            service.apply_balance_payment,
            appointment_id,
            use_credit=payload.use_credit,
            payment_method=payload.payment_method or "cash",
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/appointments/{appointment_id}/credit-user", response_model=CreditRefundResult)
async def credit_user(
    appointment_id: str,
    service: ReconciliationService = Depends(get_reconciliation_service),
) -> CreditRefundResult:
    try:
        return await asyncio.to_thread(service.issue_credit_refund, appointment_id)
    except DomainException as e:
        handle_domain_exception(e)


# ============================================================================
# Treatments
# ============================================================================


@router.post("/treatments", response_model=TreatmentResponse, status_code=status.HTTP_201_CREATED)
async def create_treatment(
    payload: TreatmentCreateRequest,
    service: TreatmentService = Depends(get_treatment_service),
) -> TreatmentResponse:
    try:
        return await asyncio.to_thread(service.create_treatment, payload)
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/treatments", response_model=List[TreatmentResponse])
async def list_treatments(
    service: TreatmentService = Depends(get_treatment_service),
) -> List[TreatmentResponse]:
    return await asyncio.to_thread(service.list_available)


@router.delete("/treatments/{treatment_id}", response_model=SuccessResponse)
async def delete_treatment(
    treatment_id: str,
    service: TreatmentService = Depends(get_treatment_service),
) -> SuccessResponse:
    try:
        return await asyncio.to_thread(service.delete_treatment, treatment_id)
    except DomainException as e:
        handle_domain_exception(e)
