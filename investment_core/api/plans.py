"""
Plan endpoints
"""

from fastapi import APIRouter, Depends, status

from .system import TrackerSystem, get_tracker_system, http_error
from .schemas import CreatePlanRequest, CalculateRequest, parse_amount, parse_date, parse_enum
from ..errors import InvestmentError
from ..plans import RiskLevel
from ..storage import utc_now


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_plan(
    request: CreatePlanRequest,
    system: TrackerSystem = Depends(get_tracker_system)
):
    """Create a new investment plan"""
    try:
        plan = system.plan_manager.create_plan(
            name=request.name,
            config=request.configuration.to_configuration(),
            min_investment=parse_amount(request.min_investment, "min_investment"),
            max_investment=parse_amount(request.max_investment, "max_investment"),
            description=request.description,
            risk_level=parse_enum(RiskLevel, request.risk_level, "risk_level"),
            features=request.features,
            is_active=request.is_active
        )
        return plan.to_dict()

    except InvestmentError as e:
        raise http_error(e)


@router.get("")
async def list_plans(
    active_only: bool = False,
    system: TrackerSystem = Depends(get_tracker_system)
):
    """List plans"""
    plans = system.plan_manager.list_plans(active_only=active_only)
    return {"plans": [plan.to_dict() for plan in plans]}


@router.get("/{plan_id}")
async def get_plan(
    plan_id: str,
    system: TrackerSystem = Depends(get_tracker_system)
):
    """Get plan details"""
    try:
        return system.plan_manager.get_plan_or_raise(plan_id).to_dict()
    except InvestmentError as e:
        raise http_error(e)


@router.post("/{plan_id}/activate")
async def activate_plan(
    plan_id: str,
    system: TrackerSystem = Depends(get_tracker_system)
):
    """Make a plan available for new investments"""
    try:
        return system.plan_manager.activate_plan(plan_id).to_dict()
    except InvestmentError as e:
        raise http_error(e)


@router.post("/{plan_id}/deactivate")
async def deactivate_plan(
    plan_id: str,
    system: TrackerSystem = Depends(get_tracker_system)
):
    """Stop a plan from taking new investments"""
    try:
        return system.plan_manager.deactivate_plan(plan_id).to_dict()
    except InvestmentError as e:
        raise http_error(e)


@router.post("/{plan_id}/calculate")
async def calculate_returns(
    plan_id: str,
    request: CalculateRequest,
    system: TrackerSystem = Depends(get_tracker_system)
):
    """Preview expected returns and schedule for a principal"""
    try:
        preview = system.plan_manager.calculate(
            plan_id,
            parse_amount(request.principal, "principal"),
            parse_date(request.start_date, "start_date")
        )
        return preview.to_dict()

    except InvestmentError as e:
        raise http_error(e)


@router.post("/{plan_id}/generate-schedule")
async def generate_schedule(
    plan_id: str,
    request: CalculateRequest,
    system: TrackerSystem = Depends(get_tracker_system)
):
    """Generate the schedule a new investment would get"""
    try:
        start_date = parse_date(request.start_date, "start_date") or utc_now().date()
        schedule = system.plan_manager.preview_schedule(
            plan_id,
            parse_amount(request.principal, "principal"),
            start_date
        )
        return {
            "plan_id": plan_id,
            "start_date": start_date.isoformat(),
            "schedule": [item.to_dict() for item in schedule]
        }

    except InvestmentError as e:
        raise http_error(e)
