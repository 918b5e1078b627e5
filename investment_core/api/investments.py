"""
Investment endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from .system import TrackerSystem, get_tracker_system, http_error
from .schemas import (
    CreateInvestmentRequest, StatusChangeRequest, NoteRequest,
    parse_amount, parse_date, parse_enum
)
from ..errors import InvestmentError
from ..investment import InvestmentStatus


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_investment(
    request: CreateInvestmentRequest,
    system: TrackerSystem = Depends(get_tracker_system)
):
    """Create an investment and its payment schedule"""
    try:
        investment = system.investment_manager.create_investment(
            investor_id=request.investor_id,
            plan_id=request.plan_id,
            principal=parse_amount(request.principal, "principal"),
            investment_date=parse_date(request.investment_date, "investment_date"),
            notes=request.notes
        )
        return investment.to_dict()

    except InvestmentError as e:
        raise http_error(e)


@router.get("")
async def list_investments(
    investor_id: Optional[str] = None,
    plan_id: Optional[str] = None,
    status_filter: Optional[str] = Query(None, alias="status"),
    system: TrackerSystem = Depends(get_tracker_system)
):
    """List investments with optional filters"""
    try:
        investment_status = parse_enum(InvestmentStatus, status_filter, "status") if status_filter else None
        investments = system.investment_manager.list_investments(
            investor_id=investor_id, plan_id=plan_id, status=investment_status
        )
        return {"investments": [investment.to_dict() for investment in investments]}
    except InvestmentError as e:
        raise http_error(e)


@router.get("/{investment_id}")
async def get_investment(
    investment_id: str,
    system: TrackerSystem = Depends(get_tracker_system)
):
    """Get investment details including the schedule"""
    try:
        return system.investment_manager.get_investment_or_raise(investment_id).to_dict()
    except InvestmentError as e:
        raise http_error(e)


@router.get("/{investment_id}/schedule")
async def get_investment_schedule(
    investment_id: str,
    system: TrackerSystem = Depends(get_tracker_system)
):
    """Get the payment schedule"""
    try:
        schedule = system.investment_manager.get_schedule(investment_id)
        return {"investment_id": investment_id, "schedule": [item.to_dict() for item in schedule]}
    except InvestmentError as e:
        raise http_error(e)


@router.post("/{investment_id}/refresh")
async def refresh_investment(
    investment_id: str,
    system: TrackerSystem = Depends(get_tracker_system)
):
    """Flag overdue items and update the investment status"""
    try:
        return system.investment_manager.refresh(investment_id).to_dict()
    except InvestmentError as e:
        raise http_error(e)


@router.post("/{investment_id}/close")
async def close_investment(
    investment_id: str,
    request: StatusChangeRequest,
    system: TrackerSystem = Depends(get_tracker_system)
):
    """Close an active investment"""
    try:
        investment = system.investment_manager.close_investment(investment_id, reason=request.reason)
        return investment.to_dict()
    except InvestmentError as e:
        raise http_error(e)


@router.post("/{investment_id}/default")
async def default_investment(
    investment_id: str,
    request: StatusChangeRequest,
    system: TrackerSystem = Depends(get_tracker_system)
):
    """Mark an active investment as defaulted"""
    try:
        investment = system.investment_manager.mark_defaulted(investment_id, reason=request.reason)
        return investment.to_dict()
    except InvestmentError as e:
        raise http_error(e)


@router.post("/{investment_id}/notes", status_code=status.HTTP_201_CREATED)
async def add_investment_note(
    investment_id: str,
    request: NoteRequest,
    system: TrackerSystem = Depends(get_tracker_system)
):
    """Add a note to the investment timeline"""
    try:
        return system.investment_manager.add_note(investment_id, request.note).to_dict()
    except InvestmentError as e:
        raise http_error(e)


@router.get("/{investment_id}/timeline")
async def get_investment_timeline(
    investment_id: str,
    limit: Optional[int] = None,
    system: TrackerSystem = Depends(get_tracker_system)
):
    """Get the investment's activity timeline, oldest first"""
    try:
        events = system.investment_manager.get_timeline(investment_id, limit)
        return {"investment_id": investment_id, "events": [event.to_dict() for event in events]}
    except InvestmentError as e:
        raise http_error(e)


@router.get("/{investment_id}/payments")
async def get_investment_payments(
    investment_id: str,
    system: TrackerSystem = Depends(get_tracker_system)
):
    """List payments recorded against an investment"""
    try:
        payments = system.investment_manager.get_payments(investment_id)
        return {"investment_id": investment_id, "payments": [payment.to_dict() for payment in payments]}
    except InvestmentError as e:
        raise http_error(e)
