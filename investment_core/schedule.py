"""
Payment Schedule Module

Generates the per-period payment schedule of an investment from its plan
configuration: interest, principal and total due for each period, the
principal still outstanding afterwards, and the due date.

Generation is deterministic and pure. Intermediate principal tracking stays
unrounded; amounts are rounded to cents only when a ScheduleItem is built.
"""

from decimal import Decimal
from datetime import date, datetime
from dataclasses import dataclass, replace
from typing import Any, Dict, Iterator, List, Optional, Union
from enum import Enum
import calendar
import math

from .errors import InvalidAmount
from .plan_config import PlanConfiguration, PaymentType, PrincipalRepaymentMode
from .rate_math import ZERO, TWOPLACES, round2, period_interest, apply_percentage, to_decimal, is_within_cent


class ScheduleItemStatus(Enum):
    """Status of a single schedule period"""
    PENDING = "pending"     # Not yet due or not yet checked
    OVERDUE = "overdue"     # Past due date with nothing paid
    PARTIAL = "partial"     # Some payment received
    PAID = "paid"           # Paid in full (further payments still accepted)


@dataclass
class ScheduleItem:
    """Single row of the payment schedule"""
    period: int
    due_date: date
    interest_amount: Decimal
    principal_amount: Decimal
    total_amount: Decimal
    remaining_principal: Decimal
    status: ScheduleItemStatus = ScheduleItemStatus.PENDING
    paid_amount: Decimal = ZERO
    paid_date: Optional[date] = None

    def __post_init__(self):
        if self.period < 1:
            raise ValueError(f"Schedule period must be positive, got {self.period}")

        calculated_total = self.interest_amount + self.principal_amount
        if abs(calculated_total - self.total_amount) > TWOPLACES:
            raise ValueError(f"Total amount {self.total_amount} does not equal "
                             f"interest {self.interest_amount} + principal {self.principal_amount}")

    @property
    def outstanding_amount(self) -> Decimal:
        """Amount still to be paid on this period"""
        return max(ZERO, self.total_amount - self.paid_amount)

    @property
    def interest_paid(self) -> Decimal:
        """Part of paid_amount counted against interest"""
        return min(self.paid_amount, self.interest_amount)

    @property
    def principal_paid(self) -> Decimal:
        """Part of paid_amount beyond the interest due"""
        return max(ZERO, self.paid_amount - self.interest_amount)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'period': self.period,
            'due_date': self.due_date.isoformat(),
            'interest_amount': str(self.interest_amount),
            'principal_amount': str(self.principal_amount),
            'total_amount': str(self.total_amount),
            'remaining_principal': str(self.remaining_principal),
            'status': self.status.value,
            'paid_amount': str(self.paid_amount),
            'paid_date': self.paid_date.isoformat() if self.paid_date else None
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ScheduleItem':
        return cls(
            period=int(data['period']),
            due_date=date.fromisoformat(data['due_date']),
            interest_amount=Decimal(data['interest_amount']),
            principal_amount=Decimal(data['principal_amount']),
            total_amount=Decimal(data['total_amount']),
            remaining_principal=Decimal(data['remaining_principal']),
            status=ScheduleItemStatus(data.get('status', 'pending')),
            paid_amount=Decimal(data.get('paid_amount', '0')),
            paid_date=date.fromisoformat(data['paid_date']) if data.get('paid_date') else None
        )

    def copy(self) -> 'ScheduleItem':
        return replace(self)


@dataclass(frozen=True)
class PeriodAmounts:
    """Unrounded amounts for one period of the amortization walk"""
    period: int
    interest: Decimal
    principal: Decimal
    remaining: Decimal    # Principal outstanding after this period


def add_months(start_date: date, months: int) -> date:
    """
    Add calendar months to a date.

    The day of month is kept where valid and clamped to the last day of the
    target month otherwise (Jan 31 + 1 month -> Feb 28/29).
    """
    month = start_date.month - 1 + months
    year = start_date.year + month // 12
    month = month % 12 + 1
    day = min(start_date.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def settlement_start_period(tenure: int, withdrawal_after_percent: Decimal) -> int:
    """First period of principal settlement for flexible interest-only plans"""
    return math.ceil(Decimal(tenure) * withdrawal_after_percent / Decimal(100))


def payout_event_count(tenure: int, frequency_periods: int) -> int:
    """Number of principal payout events over the tenure"""
    return math.ceil(tenure / frequency_periods)


def iter_periods(config: PlanConfiguration, principal: Union[Decimal, int, str]) -> Iterator[PeriodAmounts]:
    """
    Walk the tenure period by period, yielding unrounded amounts.

    Shared by the schedule generator and the returns calculator so both agree
    on every period's interest.
    """
    principal = to_decimal(principal, "principal")
    if principal < ZERO:
        raise InvalidAmount(
            f"Principal cannot be negative, got {principal}",
            field="principal",
            constraint="value >= 0"
        )

    if config.payment_type == PaymentType.INTEREST_ONLY:
        return _interest_only_periods(config, principal)
    return _interest_with_principal_periods(config, principal)


def _interest_only_periods(config: PlanConfiguration, principal: Decimal) -> Iterator[PeriodAmounts]:
    """Interest every period; principal at maturity (fixed) or in instalments (flexible)"""
    options = config.interest_only
    remaining = principal

    flexible = options.repayment_mode == PrincipalRepaymentMode.FLEXIBLE
    if flexible:
        start_period = settlement_start_period(config.tenure, options.withdrawal_after_percent)
        instalment = principal / Decimal(options.settlement_term)

    for period in range(1, config.tenure + 1):
        base = principal if config.is_flat else remaining
        interest = period_interest(base, config.interest_rate)

        component = ZERO
        if period == config.tenure:
            # Anything still outstanding is settled at maturity
            component = remaining
        elif flexible and period >= start_period:
            component = min(instalment, remaining)

        remaining, component = _settle(remaining, component)
        yield PeriodAmounts(period=period, interest=interest, principal=component, remaining=remaining)


def _interest_with_principal_periods(config: PlanConfiguration, principal: Decimal) -> Iterator[PeriodAmounts]:
    """Interest every period; principal on each payout event"""
    options = config.interest_with_principal
    remaining = principal

    frequency = options.frequency_periods
    events = payout_event_count(config.tenure, frequency)
    per_event = apply_percentage(principal, options.repayment_percent) / Decimal(events)

    for period in range(1, config.tenure + 1):
        base = principal if config.is_flat else remaining
        interest = period_interest(base, config.interest_rate)

        component = ZERO
        if period == config.tenure:
            component = remaining
        elif period % frequency == 0:
            component = min(per_event, remaining)

        remaining, component = _settle(remaining, component)
        yield PeriodAmounts(period=period, interest=interest, principal=component, remaining=remaining)


def _settle(remaining: Decimal, component: Decimal):
    """Apply a principal component; a sub-cent residue is paid off with it"""
    remaining = remaining - component
    if remaining != ZERO and is_within_cent(remaining):
        component = component + remaining
        remaining = ZERO
    return remaining, component


def generate_schedule(
    config: PlanConfiguration,
    principal: Union[Decimal, int, str],
    start_date: Union[date, datetime]
) -> List[ScheduleItem]:
    """
    Generate the payment schedule for an investment.

    Args:
        config: Plan configuration
        principal: Invested amount
        start_date: Investment date; period m falls due m months later

    Returns:
        One pending ScheduleItem per period, ordered by period
    """
    if isinstance(start_date, datetime):
        start_date = start_date.date()

    principal = to_decimal(principal, "principal")
    principal_target = round2(principal)
    stored_principal = ZERO

    schedule = []
    for amounts in iter_periods(config, principal):
        interest_amount = round2(amounts.interest)
        principal_amount = round2(amounts.principal)

        if amounts.remaining == ZERO and amounts.principal > ZERO:
            # Payoff period absorbs cent drift so components sum to the principal
            principal_amount = principal_target - stored_principal
        stored_principal += principal_amount

        schedule.append(ScheduleItem(
            period=amounts.period,
            due_date=add_months(start_date, amounts.period),
            interest_amount=interest_amount,
            principal_amount=principal_amount,
            total_amount=interest_amount + principal_amount,
            remaining_principal=round2(amounts.remaining)
        ))

    return schedule


def find_item(schedule: List[ScheduleItem], period: int) -> Optional[ScheduleItem]:
    """Look up a schedule item by period index"""
    for item in schedule:
        if item.period == period:
            return item
    return None
