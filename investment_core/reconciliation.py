"""
Payment Reconciliation Module

Applies a payment to one schedule item of an investment and re-derives the
investment's aggregates from the whole schedule.

`apply_payment` validates everything before it touches anything, and works
on a copy of the investment: a rejected payment leaves the caller's
investment exactly as it was. Persisting the result is the caller's job.
"""

from decimal import Decimal
from datetime import date, datetime
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from .errors import (
    InvalidAmount, ScheduleItemNotFound, InvalidScheduleItemState,
    BreakdownMismatch, InvalidInvestmentState
)
from .investment import Investment
from .lifecycle import refresh_investment, as_date
from .rate_math import ZERO, to_decimal, Number
from .schedule import ScheduleItem, ScheduleItemStatus


# Breakdown gaps at or below this are accepted as they are
BREAKDOWN_TOLERANCE = Decimal("0.01")

# Breakdown gaps above the tolerance but below this are absorbed into interest;
# anything larger is rejected
ROUNDING_ADJUSTMENT_THRESHOLD = Decimal("1.00")

PAYABLE_STATUSES = frozenset({
    ScheduleItemStatus.PENDING,
    ScheduleItemStatus.OVERDUE,
    ScheduleItemStatus.PARTIAL,
    ScheduleItemStatus.PAID
})


@dataclass(frozen=True)
class PaymentBreakdown:
    """Split of a payment into its components"""
    interest: Decimal = ZERO
    principal: Decimal = ZERO
    penalty: Decimal = ZERO
    bonus: Decimal = ZERO

    def __post_init__(self):
        for name in ('interest', 'principal', 'penalty', 'bonus'):
            object.__setattr__(self, name, to_decimal(getattr(self, name), f"breakdown.{name}"))

    @property
    def total(self) -> Decimal:
        return self.interest + self.principal + self.penalty + self.bonus

    @property
    def is_empty(self) -> bool:
        """True when every component is zero"""
        return not any((self.interest, self.principal, self.penalty, self.bonus))

    def to_dict(self) -> Dict[str, str]:
        return {
            'interest': str(self.interest),
            'principal': str(self.principal),
            'penalty': str(self.penalty),
            'bonus': str(self.bonus)
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PaymentBreakdown':
        return cls(
            interest=Decimal(str(data.get('interest', '0'))),
            principal=Decimal(str(data.get('principal', '0'))),
            penalty=Decimal(str(data.get('penalty', '0'))),
            bonus=Decimal(str(data.get('bonus', '0')))
        )


@dataclass
class ReconciliationResult:
    """Outcome of applying one payment"""
    investment: Investment
    item: ScheduleItem
    breakdown: PaymentBreakdown
    previous_item_status: ScheduleItemStatus
    adjustment: Decimal = ZERO    # Gap absorbed into the interest component


def derive_breakdown(item: ScheduleItem, amount: Decimal) -> PaymentBreakdown:
    """Split an amount: interest still owed on the item first, the rest to principal"""
    remaining_interest = max(ZERO, item.interest_amount - min(item.paid_amount, item.interest_amount))
    interest = min(amount, remaining_interest)
    return PaymentBreakdown(interest=interest, principal=amount - interest)


def resolve_breakdown(
    item: ScheduleItem,
    amount: Decimal,
    breakdown: Optional[PaymentBreakdown] = None,
    tolerance: Decimal = BREAKDOWN_TOLERANCE,
    adjustment_threshold: Decimal = ROUNDING_ADJUSTMENT_THRESHOLD
):
    """
    Validate a supplied breakdown against the amount, or derive one.

    Returns:
        Tuple of (breakdown, adjustment absorbed into interest)

    Raises:
        InvalidAmount: If a component is negative
        BreakdownMismatch: If the components do not add up to the amount
    """
    if breakdown is None or breakdown.is_empty:
        return derive_breakdown(item, amount), ZERO

    for name, value in breakdown.to_dict().items():
        if Decimal(value) < ZERO:
            raise InvalidAmount(
                f"Breakdown {name} cannot be negative, got {value}",
                field=f"breakdown.{name}",
                constraint="value >= 0"
            )

    gap = amount - breakdown.total
    if abs(gap) <= tolerance:
        return breakdown, ZERO

    if abs(gap) >= adjustment_threshold or breakdown.interest + gap < ZERO:
        raise BreakdownMismatch(
            f"Breakdown total {breakdown.total} does not match payment amount {amount}",
            field="breakdown",
            constraint=f"interest + principal + penalty + bonus == amount (gap < {adjustment_threshold})",
            details={'amount': amount, 'breakdown_total': breakdown.total, 'difference': gap}
        )

    adjusted = PaymentBreakdown(
        interest=breakdown.interest + gap,
        principal=breakdown.principal,
        penalty=breakdown.penalty,
        bonus=breakdown.bonus
    )
    return adjusted, gap


def recompute_aggregates(investment: Investment) -> Investment:
    """Re-derive paid/remaining totals by scanning the whole schedule"""
    investment.total_paid_amount = sum((item.paid_amount for item in investment.schedule), ZERO)
    investment.total_interest_paid = sum((item.interest_paid for item in investment.schedule), ZERO)
    investment.total_principal_paid = sum((item.principal_paid for item in investment.schedule), ZERO)
    investment.remaining_amount = investment.total_expected_returns - investment.total_paid_amount
    return investment


def apply_payment(
    investment: Investment,
    period_index: int,
    amount: Number,
    breakdown: Optional[PaymentBreakdown] = None,
    *,
    now: Union[date, datetime],
    payment_date: Optional[Union[date, datetime]] = None,
    tolerance: Decimal = BREAKDOWN_TOLERANCE,
    adjustment_threshold: Decimal = ROUNDING_ADJUSTMENT_THRESHOLD
) -> ReconciliationResult:
    """
    Apply a payment to the schedule item for `period_index`.

    Args:
        investment: Investment to apply against (not modified)
        period_index: Period number of the target schedule item
        amount: Payment amount, must be positive
        breakdown: Optional split; absent or all-zero means derive it
        now: Clock used for overdue detection
        payment_date: Date recorded as the item's paid date (defaults to now)

    Returns:
        ReconciliationResult holding the updated copy of the investment

    Raises:
        InvalidAmount, InvalidInvestmentState, ScheduleItemNotFound,
        InvalidScheduleItemState, BreakdownMismatch
    """
    amount = to_decimal(amount, "amount")
    if amount <= ZERO:
        raise InvalidAmount(
            f"Payment amount must be greater than 0, got {amount}",
            field="amount",
            constraint="value > 0"
        )

    if not investment.is_active:
        raise InvalidInvestmentState(
            f"Cannot record payment on {investment.status.value} investment {investment.id}",
            field="status",
            constraint="investment must be active"
        )

    item = investment.get_item(period_index)
    if item is None:
        raise ScheduleItemNotFound(
            f"Investment {investment.id} has no schedule item for period {period_index}",
            field="period_index",
            constraint=f"1 <= value <= {len(investment.schedule)}"
        )

    if item.status not in PAYABLE_STATUSES:
        raise InvalidScheduleItemState(
            f"Schedule item {period_index} is {item.status.value} and cannot take payments",
            field="period_index",
            constraint="item status must be pending, overdue, partial or paid"
        )

    resolved, adjustment = resolve_breakdown(item, amount, breakdown, tolerance, adjustment_threshold)

    # Validation done; mutate only the copy from here on
    updated = investment.copy()
    target = updated.get_item(period_index)
    previous_status = target.status

    target.paid_amount = target.paid_amount + amount
    if target.paid_amount >= target.total_amount:
        if target.status != ScheduleItemStatus.PAID or target.paid_date is None:
            target.paid_date = as_date(payment_date if payment_date is not None else now)
        target.status = ScheduleItemStatus.PAID
    elif target.paid_amount > ZERO:
        target.status = ScheduleItemStatus.PARTIAL

    recompute_aggregates(updated)
    refreshed = refresh_investment(updated, now).investment

    return ReconciliationResult(
        investment=refreshed,
        item=refreshed.get_item(period_index),
        breakdown=resolved,
        previous_item_status=previous_status,
        adjustment=adjustment
    )
