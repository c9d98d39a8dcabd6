# backend/treatbook/routes/v1/appointments.py
"""
Patient appointment routes - API v1

Versioned appointment endpoints under /api/v1/appointments.
All business logic delegated to ReconciliationService.

Endpoints:
    POST /check-availability - Check whether a practitioner can take a time range
    POST / - Book a treatment (credit applied first, rest left for checkout)
    GET / - List a user's appointments
    POST /payfast/notify - PayFast server-to-server notification
    GET /{appointment_id} - Appointment details
    POST /{appointment_id}/pay-balance - Spend credit on what is still owed
    POST /{appointment_id}/payfast - Start a PayFast checkout
    POST /{appointment_id}/payfast/verify - Settle or abandon the checkout
    POST /{appointment_id}/cancel - Cancel an appointment
"""

import asyncio
import logging
from urllib.parse import parse_qsl

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from ...api.dependencies import get_reconciliation_service
from ...core.exceptions import DomainException
from ...schemas.appointment import (
    AppointmentActionResult,
    AppointmentListResponse,
    AppointmentResponse,
    AvailabilityCheckRequest,
    AvailabilityCheckResponse,
    BalancePaymentRequest,
    BookingCreateRequest,
    BookingResult,
    CancelAppointmentRequest,
    CheckoutResult,
    GatewayConfirmRequest,
    GatewayInitiateRequest,
    PaymentResult,
)
from ...services.reconciliation_service import ReconciliationService
from . import handle_domain_exception

logger = logging.getLogger(__name__)

# V1 router - no prefix here, will be added when mounting in main.py
router = APIRouter(tags=["appointments-v1"])


# ============================================================================
# SECTION 1: Static routes (no path parameters)
# ============================================================================


@router.post("/check-availability", response_model=AvailabilityCheckResponse)
async def check_availability(
    payload: AvailabilityCheckRequest,
    service: ReconciliationService = Depends(get_reconciliation_service),
) -> AvailabilityCheckResponse:
    try:
        return await asyncio.to_thread(
            service.check_availability,
            payload.practitioner,
            payload.slot_date,
            payload.slot_time,
            payload.duration_minutes,
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.post("", response_model=BookingResult, status_code=status.HTTP_201_CREATED)
async def book_appointment(
    payload: BookingCreateRequest,
    service: ReconciliationService = Depends(get_reconciliation_service),
) -> BookingResult:
    """Book a treatment. The unpaid part is settled through checkout."""
    if payload.payment_method is not None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "message": "Direct payment methods are only accepted at the front desk",
                "code": "PAYMENT_METHOD_NOT_ALLOWED",
            },
        )
    try:
        return await asyncio.to_thread(service.create_booking, payload)
    except DomainException as e:
        handle_domain_exception(e)


@router.get("", response_model=AppointmentListResponse)
async def list_appointments(
    user_id: str = Query(..., min_length=1),
    service: ReconciliationService = Depends(get_reconciliation_service),
) -> AppointmentListResponse:
    try:
        return await asyncio.to_thread(service.list_appointments, user_id)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/payfast/notify", response_model=PaymentResult)
async def payfast_notify(
    request: Request,
    service: ReconciliationService = Depends(get_reconciliation_service),
) -> PaymentResult:
    """PayFast ITN callback (form-encoded)."""
    body = (await request.body()).decode("utf-8")
    fields = dict(parse_qsl(body, keep_blank_values=True))
    try:
        return await asyncio.to_thread(service.handle_gateway_notification, fields)
    except DomainException as e:
        logger.warning("payfast_notify_rejected: %s", e.message)
        handle_domain_exception(e)


# ============================================================================
# SECTION 2: Appointment routes
# ============================================================================


@router.get("/{appointment_id}", response_model=AppointmentResponse)
async def get_appointment(
    appointment_id: str,
    service: ReconciliationService = Depends(get_reconciliation_service),
) -> AppointmentResponse:
    try:
        return await asyncio.to_thread(service.get_appointment, appointment_id)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{appointment_id}/pay-balance", response_model=PaymentResult)
async def pay_balance(
    appointment_id: str,
    payload: BalancePaymentRequest,
    service: ReconciliationService = Depends(get_reconciliation_service),
) -> PaymentResult:
    """Spend credit on what is still owed; anything left goes through checkout."""
    if payload.payment_method is not None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "message": "Direct payment methods are only accepted at the front desk",
                "code": "PAYMENT_METHOD_NOT_ALLOWED",
            },
        )
    try:
        return await asyncio.to_thread(
            service.apply_balance_payment, appointment_id, use_credit=payload.use_credit
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{appointment_id}/payfast", response_model=CheckoutResult)
async def start_payfast_checkout(
    appointment_id: str,
    payload: GatewayInitiateRequest,
    service: ReconciliationService = Depends(get_reconciliation_service),
) -> CheckoutResult:
    try:
        return await asyncio.to_thread(
            service.initiate_gateway_payment,
            appointment_id,
            payment_type=payload.payment_type,
            use_credit=payload.use_credit,
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{appointment_id}/payfast/verify", response_model=PaymentResult)
async def verify_payfast_checkout(
    appointment_id: str,
    payload: GatewayConfirmRequest,
    service: ReconciliationService = Depends(get_reconciliation_service),
) -> PaymentResult:
    try:
        return await asyncio.to_thread(
            service.confirm_gateway_payment,
            appointment_id,
            payload.success,
            correlation_id=payload.correlation_id,
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{appointment_id}/cancel", response_model=AppointmentActionResult)
async def cancel_appointment(
    appointment_id: str,
    payload: CancelAppointmentRequest,
    service: ReconciliationService = Depends(get_reconciliation_service),
) -> AppointmentActionResult:
    try:
        return await asyncio.to_thread(
            service.cancel_appointment, appointment_id, user_id=payload.user_id
        )
    except DomainException as e:
        handle_domain_exception(e)
