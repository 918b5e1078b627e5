"""
Payment endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from .system import TrackerSystem, get_tracker_system, http_error
from .schemas import RecordPaymentRequest, UpdatePaymentRequest, parse_amount, parse_date, parse_enum
from ..errors import InvestmentError
from ..payments import PaymentMethod, PaymentStatus, PaymentType


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def record_payment(
    request: RecordPaymentRequest,
    system: TrackerSystem = Depends(get_tracker_system)
):
    """Record a payment against one schedule period"""
    try:
        outcome = system.investment_manager.record_payment(
            investment_id=request.investment_id,
            period_index=request.period_index,
            amount=parse_amount(request.amount, "amount"),
            method=parse_enum(PaymentMethod, request.payment_method, "payment_method"),
            breakdown=request.breakdown.to_breakdown() if request.breakdown else None,
            payment_date=parse_date(request.payment_date, "payment_date"),
            reference_number=request.reference_number,
            payment_type=parse_enum(PaymentType, request.payment_type, "payment_type"),
            notes=request.notes
        )

        return {
            "payment": outcome.payment.to_dict(),
            "schedule_item": outcome.item.to_dict(),
            "investment": {
                "id": outcome.investment.id,
                "status": outcome.investment.status.value,
                "total_paid_amount": str(outcome.investment.total_paid_amount),
                "total_interest_paid": str(outcome.investment.total_interest_paid),
                "total_principal_paid": str(outcome.investment.total_principal_paid),
                "remaining_amount": str(outcome.investment.remaining_amount)
            },
            "message": "Payment recorded successfully"
        }

    except InvestmentError as e:
        raise http_error(e)


@router.get("")
async def list_payments(
    status_filter: Optional[str] = Query(None, alias="status"),
    investment_id: Optional[str] = None,
    investor_id: Optional[str] = None,
    payment_method: Optional[str] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    search: Optional[str] = None,
    system: TrackerSystem = Depends(get_tracker_system)
):
    """List payments with optional filters"""
    try:
        payments = system.payment_registry.list_payments(
            status=parse_enum(PaymentStatus, status_filter, "status") if status_filter else None,
            investment_id=investment_id,
            investor_id=investor_id,
            method=parse_enum(PaymentMethod, payment_method, "payment_method") if payment_method else None,
            date_from=parse_date(date_from, "date_from"),
            date_to=parse_date(date_to, "date_to"),
            search=search
        )
        return {"payments": [payment.to_dict() for payment in payments], "count": len(payments)}
    except InvestmentError as e:
        raise http_error(e)


@router.get("/stats/overview")
async def get_payment_statistics(system: TrackerSystem = Depends(get_tracker_system)):
    """Payment counts by status and completed amounts by method"""
    return system.reporting_engine.payment_statistics().to_dict()


@router.get("/{payment_id}")
async def get_payment(
    payment_id: str,
    system: TrackerSystem = Depends(get_tracker_system)
):
    """Get payment details"""
    try:
        return system.payment_registry.get_payment_or_raise(payment_id).to_dict()
    except InvestmentError as e:
        raise http_error(e)


@router.put("/{payment_id}")
async def update_payment(
    payment_id: str,
    request: UpdatePaymentRequest,
    system: TrackerSystem = Depends(get_tracker_system)
):
    """Update payment status, method, reference, notes or verification"""
    try:
        payment = system.investment_manager.update_payment(
            payment_id,
            status=parse_enum(PaymentStatus, request.status, "status") if request.status else None,
            method=parse_enum(PaymentMethod, request.payment_method, "payment_method")
            if request.payment_method else None,
            reference_number=request.reference_number,
            notes=request.notes,
            verified_by=request.verified_by
        )
        return payment.to_dict()
    except InvestmentError as e:
        raise http_error(e)
