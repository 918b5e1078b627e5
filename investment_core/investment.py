"""
Investment Module

The Investment record: principal, dates, a snapshot of the plan
configuration taken at creation, the embedded payment schedule, and the
aggregates derived from it.
"""

from decimal import Decimal
from datetime import date
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional
from enum import Enum

from .plan_config import PlanConfiguration
from .rate_math import ZERO
from .schedule import ScheduleItem, ScheduleItemStatus, find_item
from .storage import StorageRecord


class InvestmentStatus(Enum):
    """Investment lifecycle states"""
    ACTIVE = "active"           # Receiving payments
    COMPLETED = "completed"     # Everything expected has been paid
    CLOSED = "closed"           # Closed early by an operator
    DEFAULTED = "defaulted"     # Written off by an operator


TERMINAL_STATUSES = frozenset({
    InvestmentStatus.COMPLETED,
    InvestmentStatus.CLOSED,
    InvestmentStatus.DEFAULTED
})


@dataclass
class Investment(StorageRecord):
    """
    An investor's placement of principal into a plan.

    `config` is copied from the plan when the investment is created and is
    never re-read from the plan afterwards.
    """
    investor_id: str
    plan_id: str
    principal_amount: Decimal
    investment_date: date
    maturity_date: date
    config: PlanConfiguration
    schedule: List[ScheduleItem] = field(default_factory=list)
    total_expected_returns: Decimal = ZERO
    total_interest_expected: Decimal = ZERO
    total_paid_amount: Decimal = ZERO
    total_interest_paid: Decimal = ZERO
    total_principal_paid: Decimal = ZERO
    remaining_amount: Decimal = ZERO
    status: InvestmentStatus = InvestmentStatus.ACTIVE
    plan_name: Optional[str] = None
    notes: Optional[str] = None
    version: int = 0

    def __post_init__(self):
        if self.principal_amount <= ZERO:
            raise ValueError("Principal amount must be positive")
        if self.maturity_date < self.investment_date:
            raise ValueError("Maturity date cannot be before investment date")

    @property
    def is_active(self) -> bool:
        return self.status == InvestmentStatus.ACTIVE

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def tenure(self) -> int:
        return self.config.tenure

    def get_item(self, period: int) -> Optional[ScheduleItem]:
        return find_item(self.schedule, period)

    def items_with_status(self, status: ScheduleItemStatus) -> List[ScheduleItem]:
        return [item for item in self.schedule if item.status == status]

    def copy(self) -> 'Investment':
        """Copy with its own schedule items, so the original stays untouched"""
        return replace(self, schedule=[item.copy() for item in self.schedule])

    def to_dict(self) -> Dict[str, Any]:
        result = self.base_dict()
        result.update({
            'investor_id': self.investor_id,
            'plan_id': self.plan_id,
            'plan_name': self.plan_name,
            'principal_amount': str(self.principal_amount),
            'investment_date': self.investment_date.isoformat(),
            'maturity_date': self.maturity_date.isoformat(),
            'config': self.config.to_dict(),
            'schedule': [item.to_dict() for item in self.schedule],
            'total_expected_returns': str(self.total_expected_returns),
            'total_interest_expected': str(self.total_interest_expected),
            'total_paid_amount': str(self.total_paid_amount),
            'total_interest_paid': str(self.total_interest_paid),
            'total_principal_paid': str(self.total_principal_paid),
            'remaining_amount': str(self.remaining_amount),
            'status': self.status.value,
            'notes': self.notes,
            'version': self.version
        })
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Investment':
        return cls(
            id=data['id'],
            **cls.parse_timestamps(data),
            investor_id=data['investor_id'],
            plan_id=data['plan_id'],
            plan_name=data.get('plan_name'),
            principal_amount=Decimal(data['principal_amount']),
            investment_date=date.fromisoformat(data['investment_date']),
            maturity_date=date.fromisoformat(data['maturity_date']),
            config=PlanConfiguration.from_dict(data['config']),
            schedule=[ScheduleItem.from_dict(item) for item in data.get('schedule', [])],
            total_expected_returns=Decimal(data.get('total_expected_returns', '0')),
            total_interest_expected=Decimal(data.get('total_interest_expected', '0')),
            total_paid_amount=Decimal(data.get('total_paid_amount', '0')),
            total_interest_paid=Decimal(data.get('total_interest_paid', '0')),
            total_principal_paid=Decimal(data.get('total_principal_paid', '0')),
            remaining_amount=Decimal(data.get('remaining_amount', '0')),
            status=InvestmentStatus(data.get('status', 'active')),
            notes=data.get('notes'),
            version=int(data.get('version', 0))
        )


def investment_number(sequence: int) -> str:
    """Human-readable investment id, e.g. INVST000001"""
    return f"INVST{sequence:06d}"
