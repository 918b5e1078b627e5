"""
Tracker system container and shared API dependencies
"""

from typing import Optional

from fastapi import HTTPException

from ..config import TrackerConfig, get_config
from ..errors import (
    InvestmentError, NotFound, ScheduleItemNotFound,
    ConcurrentModification, DuplicateRecord
)
from ..investors import InvestorManager
from ..payments import PaymentRegistry
from ..plans import PlanManager
from ..reporting import ReportingEngine
from ..servicing import InvestmentManager
from ..storage import StorageInterface, create_storage
from ..timeline import ActivityTimeline


class TrackerSystem:
    """Investment tracker with all components initialized"""

    def __init__(self, config: Optional[TrackerConfig] = None, storage: Optional[StorageInterface] = None):
        self.config = config or get_config()

        self.storage = storage or create_storage(self.config.storage_backend, self.config.database_path)
        self.timeline = ActivityTimeline(self.storage)

        self.plan_manager = PlanManager(
            self.storage, self.timeline,
            min_investment_floor=self.config.default_min_investment,
            default_max_investment=self.config.default_max_investment
        )
        self.investor_manager = InvestorManager(self.storage, self.timeline)
        self.payment_registry = PaymentRegistry(self.storage)
        self.investment_manager = InvestmentManager(
            self.storage, self.timeline, self.plan_manager,
            self.investor_manager, self.payment_registry,
            breakdown_tolerance=self.config.payment_breakdown_tolerance,
            adjustment_threshold=self.config.payment_adjustment_threshold
        )
        self.reporting_engine = ReportingEngine(
            self.storage, self.investment_manager,
            self.investor_manager, self.plan_manager
        )


_tracker_system: Optional[TrackerSystem] = None


def get_tracker_system() -> TrackerSystem:
    """Dependency returning the process-wide tracker system, created on first use"""
    global _tracker_system
    if _tracker_system is None:
        _tracker_system = TrackerSystem()
    return _tracker_system


def http_error(error: InvestmentError) -> HTTPException:
    """Translate a rejected request into an HTTP error carrying its details"""
    if isinstance(error, (NotFound, ScheduleItemNotFound)):
        status_code = 404
    elif isinstance(error, (ConcurrentModification, DuplicateRecord)):
        status_code = 409
    else:
        status_code = 400
    return HTTPException(status_code=status_code, detail=error.to_dict())
