"""
Investor endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from .system import TrackerSystem, get_tracker_system, http_error
from .schemas import CreateInvestorRequest, UpdateInvestorStatusRequest, parse_enum
from ..errors import InvestmentError
from ..investors import InvestorStatus, RiskProfile


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_investor(
    request: CreateInvestorRequest,
    system: TrackerSystem = Depends(get_tracker_system)
):
    """Register a new investor"""
    try:
        investor = system.investor_manager.create_investor(
            name=request.name,
            email=request.email,
            phone=request.phone,
            address=request.address,
            risk_profile=parse_enum(RiskProfile, request.risk_profile, "risk_profile"),
            notes=request.notes,
            tags=request.tags
        )
        return investor.to_dict()

    except InvestmentError as e:
        raise http_error(e)


@router.get("")
async def list_investors(
    status_filter: Optional[str] = Query(None, alias="status"),
    system: TrackerSystem = Depends(get_tracker_system)
):
    """List investors, optionally by status"""
    try:
        investor_status = parse_enum(InvestorStatus, status_filter, "status") if status_filter else None
        investors = system.investor_manager.list_investors(investor_status)
        return {"investors": [investor.to_dict() for investor in investors]}
    except InvestmentError as e:
        raise http_error(e)


@router.get("/{investor_id}")
async def get_investor(
    investor_id: str,
    system: TrackerSystem = Depends(get_tracker_system)
):
    """Get investor details"""
    try:
        investor = system.investor_manager.get_investor_or_raise(investor_id)
        result = investor.to_dict()
        result["roi_percent"] = str(investor.roi_percent)
        return result
    except InvestmentError as e:
        raise http_error(e)


@router.post("/{investor_id}/status")
async def update_investor_status(
    investor_id: str,
    request: UpdateInvestorStatusRequest,
    system: TrackerSystem = Depends(get_tracker_system)
):
    """Activate, deactivate or block an investor"""
    try:
        investor = system.investor_manager.set_status(
            investor_id, parse_enum(InvestorStatus, request.status, "status")
        )
        return investor.to_dict()
    except InvestmentError as e:
        raise http_error(e)


@router.get("/{investor_id}/summary")
async def get_investor_summary(
    investor_id: str,
    system: TrackerSystem = Depends(get_tracker_system)
):
    """Portfolio summary with overdue and upcoming payments"""
    try:
        return system.reporting_engine.investor_summary(investor_id).to_dict()
    except InvestmentError as e:
        raise http_error(e)


@router.get("/{investor_id}/investments")
async def get_investor_investments(
    investor_id: str,
    system: TrackerSystem = Depends(get_tracker_system)
):
    """List an investor's investments"""
    try:
        system.investor_manager.get_investor_or_raise(investor_id)
        investments = system.investment_manager.list_investments(investor_id=investor_id)
        return {"investments": [investment.to_dict() for investment in investments]}
    except InvestmentError as e:
        raise http_error(e)
