"""
Reporting endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends

from .system import TrackerSystem, get_tracker_system


router = APIRouter()


@router.get("/overview")
async def get_overview(system: TrackerSystem = Depends(get_tracker_system)):
    """Dashboard totals"""
    return system.reporting_engine.dashboard_overview().to_dict()


@router.get("/overdue")
async def get_overdue_items(system: TrackerSystem = Depends(get_tracker_system)):
    """Past-due schedule items, most overdue first"""
    return system.reporting_engine.overdue_items().to_dict()


@router.get("/upcoming")
async def get_upcoming_dues(
    days: Optional[int] = None,
    system: TrackerSystem = Depends(get_tracker_system)
):
    """Pending items due in the next few days"""
    window = days if days is not None else system.config.upcoming_due_days
    return system.reporting_engine.upcoming_dues(days=window).to_dict()


@router.get("/plan-performance")
async def get_plan_performance(system: TrackerSystem = Depends(get_tracker_system)):
    """Per-plan invested, collected and outstanding amounts"""
    return system.reporting_engine.plan_performance().to_dict()
