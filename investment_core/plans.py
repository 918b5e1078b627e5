"""
Investment Plans Module

Plan definitions offered to investors: the calculation configuration plus
the commercial terms around it (investment limits, risk level, features,
availability). Also provides the returns preview shown before an
investment is created.
"""

import threading
from decimal import Decimal
from datetime import date, datetime
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union
from enum import Enum

from .errors import InvalidAmount, InvalidPlanConfiguration, NotFound
from .plan_config import PlanConfiguration
from .rate_math import ZERO, to_decimal, Number
from .returns import ExpectedReturns, calculate_expected_returns
from .schedule import ScheduleItem, generate_schedule, add_months
from .storage import RecordLocks, StorageInterface, StorageRecord, utc_now
from .timeline import ActivityTimeline, TimelineEventType


MAX_PLAN_NAME_LENGTH = 100


class RiskLevel(Enum):
    """Risk classification shown to investors"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass
class Plan(StorageRecord):
    """Investment plan definition"""
    name: str
    config: PlanConfiguration
    min_investment: Decimal
    max_investment: Decimal
    description: str = ""
    risk_level: RiskLevel = RiskLevel.MEDIUM
    features: List[str] = field(default_factory=list)
    is_active: bool = True
    total_investors: int = 0
    total_investment: Decimal = ZERO

    def __post_init__(self):
        if not self.name or not self.name.strip():
            raise InvalidPlanConfiguration("Plan name is required", field="name", constraint="non-empty")
        if len(self.name) > MAX_PLAN_NAME_LENGTH:
            raise InvalidPlanConfiguration(
                f"Plan name cannot exceed {MAX_PLAN_NAME_LENGTH} characters",
                field="name",
                constraint=f"length <= {MAX_PLAN_NAME_LENGTH}"
            )
        if self.max_investment < self.min_investment:
            raise InvalidPlanConfiguration(
                f"Maximum investment {self.max_investment} is below minimum {self.min_investment}",
                field="max_investment",
                constraint="max_investment >= min_investment"
            )

    def check_limits(self, principal: Decimal) -> None:
        """
        Raises:
            InvalidAmount: If principal is outside [min_investment, max_investment]
        """
        if principal < self.min_investment:
            raise InvalidAmount(
                f"Minimum investment for plan {self.name} is {self.min_investment}",
                field="principal",
                constraint=f"value >= {self.min_investment}",
                details={'principal': principal, 'min_investment': self.min_investment}
            )
        if principal > self.max_investment:
            raise InvalidAmount(
                f"Maximum investment for plan {self.name} is {self.max_investment}",
                field="principal",
                constraint=f"value <= {self.max_investment}",
                details={'principal': principal, 'max_investment': self.max_investment}
            )

    def summary(self) -> Dict[str, Any]:
        result = {'id': self.id, 'name': self.name}
        result.update(self.config.summary())
        return result

    def to_dict(self) -> Dict[str, Any]:
        result = self.base_dict()
        result.update({
            'name': self.name,
            'description': self.description,
            'config': self.config.to_dict(),
            'min_investment': str(self.min_investment),
            'max_investment': str(self.max_investment),
            'risk_level': self.risk_level.value,
            'features': list(self.features),
            'is_active': self.is_active,
            'total_investors': self.total_investors,
            'total_investment': str(self.total_investment)
        })
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Plan':
        return cls(
            id=data['id'],
            **cls.parse_timestamps(data),
            name=data['name'],
            description=data.get('description', ''),
            config=PlanConfiguration.from_dict(data['config']),
            min_investment=Decimal(data['min_investment']),
            max_investment=Decimal(data['max_investment']),
            risk_level=RiskLevel(data.get('risk_level', 'medium')),
            features=list(data.get('features', [])),
            is_active=bool(data.get('is_active', True)),
            total_investors=int(data.get('total_investors', 0)),
            total_investment=Decimal(data.get('total_investment', '0'))
        )


@dataclass
class ReturnsPreview:
    """Expected returns and schedule for a prospective investment"""
    plan: Plan
    returns: ExpectedReturns
    start_date: date
    maturity_date: date
    schedule: List[ScheduleItem]

    def to_dict(self) -> Dict[str, Any]:
        result = self.returns.to_dict()
        result.update({
            'plan': self.plan.summary(),
            'start_date': self.start_date.isoformat(),
            'maturity_date': self.maturity_date.isoformat(),
            'schedule': [
                {
                    'period': item.period,
                    'due_date': item.due_date.isoformat(),
                    'interest_amount': str(item.interest_amount),
                    'principal_amount': str(item.principal_amount),
                    'total_amount': str(item.total_amount),
                    'remaining_principal': str(item.remaining_principal),
                    'status': item.status.value
                }
                for item in self.schedule
            ]
        })
        return result


class PlanManager:
    """Manager class for investment plans"""

    def __init__(
        self,
        storage: StorageInterface,
        timeline: ActivityTimeline,
        min_investment_floor: Decimal = Decimal("1000"),
        default_max_investment: Decimal = Decimal("10000000")
    ):
        self.storage = storage
        self.timeline = timeline
        self.table_name = "plans"
        self.min_investment_floor = min_investment_floor
        self.default_max_investment = default_max_investment
        self._create_lock = threading.Lock()
        self._locks = RecordLocks()

    def create_plan(
        self,
        name: str,
        config: PlanConfiguration,
        min_investment: Optional[Number] = None,
        max_investment: Optional[Number] = None,
        description: str = "",
        risk_level: RiskLevel = RiskLevel.MEDIUM,
        features: Optional[List[str]] = None,
        is_active: bool = True,
        user_id: Optional[str] = None
    ) -> Plan:
        """
        Create a new plan

        Raises:
            InvalidPlanConfiguration: If name or limits are invalid
        """
        min_amount = (to_decimal(min_investment, "min_investment")
                      if min_investment is not None else self.min_investment_floor)
        max_amount = (to_decimal(max_investment, "max_investment")
                      if max_investment is not None else self.default_max_investment)
        self._check_min_floor(min_amount)

        with self._create_lock:
            now = utc_now()
            plan = Plan(
                id=f"PLAN{self.storage.count(self.table_name) + 1:04d}",
                created_at=now,
                updated_at=now,
                name=name.strip(),
                description=description,
                config=config,
                min_investment=min_amount,
                max_investment=max_amount,
                risk_level=risk_level,
                features=list(features or []),
                is_active=is_active
            )
            self.storage.save(self.table_name, plan.id, plan.to_dict())

        self.timeline.record(
            TimelineEventType.PLAN_CREATED,
            entity_type="plan",
            entity_id=plan.id,
            description=f"Plan {plan.name} created",
            metadata=plan.config.summary(),
            user_id=user_id
        )
        return plan

    def update_plan(self, plan_id: str, user_id: Optional[str] = None, **changes) -> Plan:
        """
        Update plan fields.

        Existing investments keep the configuration they were created with,
        and the configuration is frozen while any of them is still active.

        Raises:
            NotFound: If the plan does not exist
            InvalidPlanConfiguration: If a field is unknown or invalid, or the
                configuration changes while the plan has active investments
        """
        allowed = {'name', 'description', 'config', 'min_investment', 'max_investment',
                   'risk_level', 'features', 'is_active'}
        unknown = set(changes) - allowed
        if unknown:
            raise InvalidPlanConfiguration(
                f"Cannot update plan fields: {', '.join(sorted(unknown))}",
                field=sorted(unknown)[0],
                constraint=f"one of {', '.join(sorted(allowed))}"
            )

        with self.lock_for(plan_id):
            plan = self.get_plan_or_raise(plan_id)
            data = plan.to_dict()
            for key, value in changes.items():
                if key == 'config':
                    value = value.to_dict()
                elif key in ('min_investment', 'max_investment'):
                    value = str(to_decimal(value, key))
                elif key == 'risk_level':
                    value = RiskLevel(value).value
                data[key] = value
            data['updated_at'] = utc_now().isoformat()

            updated = Plan.from_dict(data)
            self._check_min_floor(updated.min_investment)
            if updated.config != plan.config:
                self._check_config_unlocked(plan_id)
            self.storage.save(self.table_name, plan_id, updated.to_dict())

        self.timeline.record(
            TimelineEventType.PLAN_UPDATED,
            entity_type="plan",
            entity_id=plan_id,
            description=f"Plan {updated.name} updated",
            metadata={'changes': sorted(changes)},
            user_id=user_id
        )
        return updated

    def get_plan(self, plan_id: str) -> Optional[Plan]:
        """Get plan by ID"""
        data = self.storage.load(self.table_name, plan_id)
        if data:
            return Plan.from_dict(data)
        return None

    def get_plan_or_raise(self, plan_id: str) -> Plan:
        plan = self.get_plan(plan_id)
        if plan is None:
            raise NotFound(f"Plan {plan_id} not found", field="plan_id")
        return plan

    def list_plans(self, active_only: bool = False, risk_level: Optional[RiskLevel] = None) -> List[Plan]:
        """List plans with optional filters"""
        filters: Dict[str, Any] = {}
        if active_only:
            filters['is_active'] = True
        if risk_level:
            filters['risk_level'] = risk_level.value
        plans = [Plan.from_dict(data) for data in self.storage.find(self.table_name, filters)]
        plans.sort(key=lambda plan: plan.id)
        return plans

    def activate_plan(self, plan_id: str) -> Plan:
        return self.update_plan(plan_id, is_active=True)

    def deactivate_plan(self, plan_id: str) -> Plan:
        return self.update_plan(plan_id, is_active=False)

    def load_configuration(self, plan_id: str) -> PlanConfiguration:
        return self.get_plan_or_raise(plan_id).config

    def calculate(
        self,
        plan_id: str,
        principal: Number,
        start_date: Optional[Union[date, datetime]] = None
    ) -> ReturnsPreview:
        """
        Preview expected returns and the full schedule for a principal.

        Raises:
            NotFound: If the plan does not exist
            InvalidAmount: If principal is not positive or outside plan limits
        """
        plan = self.get_plan_or_raise(plan_id)
        principal = to_decimal(principal, "principal")
        returns = calculate_expected_returns(plan.config, principal)
        plan.check_limits(principal)

        start = start_date or utc_now().date()
        if isinstance(start, datetime):
            start = start.date()

        return ReturnsPreview(
            plan=plan,
            returns=returns,
            start_date=start,
            maturity_date=add_months(start, plan.config.tenure),
            schedule=generate_schedule(plan.config, principal, start)
        )

    def preview_schedule(
        self,
        plan_id: str,
        principal: Number,
        start_date: Union[date, datetime]
    ) -> List[ScheduleItem]:
        """Generate the schedule a new investment would get, without limit checks"""
        plan = self.get_plan_or_raise(plan_id)
        principal = to_decimal(principal, "principal")
        if principal <= ZERO:
            raise InvalidAmount(
                f"Principal must be greater than 0, got {principal}",
                field="principal",
                constraint="value > 0"
            )
        return generate_schedule(plan.config, principal, start_date)

    def update_statistics(self, plan_id: str) -> Plan:
        """Recompute investor count and invested total from the plan's investments"""
        with self._locks.for_record(plan_id):
            plan = self.get_plan_or_raise(plan_id)
            investments = self.storage.find("investments", {'plan_id': plan_id})

            plan.total_investors = len({data['investor_id'] for data in investments})
            plan.total_investment = sum((Decimal(data['principal_amount']) for data in investments), ZERO)
            plan.touch()
            self.storage.save(self.table_name, plan_id, plan.to_dict())
            return plan

    def lock_for(self, plan_id: str):
        """Lock held while a plan's configuration is read or changed"""
        return self._locks.for_record(plan_id)

    def _check_config_unlocked(self, plan_id: str) -> None:
        active = self.storage.find("investments", {'plan_id': plan_id, 'status': 'active'})
        if active:
            raise InvalidPlanConfiguration(
                f"Cannot change the configuration of plan {plan_id} while it has "
                f"{len(active)} active investment(s)",
                field="config",
                constraint="no active investments",
                details={'active_investments': len(active)}
            )

    def _check_min_floor(self, min_investment: Decimal) -> None:
        if min_investment < self.min_investment_floor:
            raise InvalidPlanConfiguration(
                f"Minimum investment must be at least {self.min_investment_floor}",
                field="min_investment",
                constraint=f"value >= {self.min_investment_floor}"
            )
