"""
Investment Lifecycle Module

Status transitions for an investment as a whole. `refresh_investment` is the
only automatic pass: it flags past-due pending items as overdue and completes
an active investment once nothing remains to be paid. Closing and defaulting
are operator decisions applied through `close_investment`/`mark_defaulted`.

All functions take the clock as an argument and return updated copies.
"""

from datetime import date, datetime
from dataclasses import dataclass, field
from typing import List, Optional, Union

from .errors import InvalidInvestmentState
from .investment import Investment, InvestmentStatus
from .rate_math import ZERO
from .schedule import ScheduleItemStatus


def as_date(value: Union[date, datetime]) -> date:
    """Calendar date of a date or datetime"""
    if isinstance(value, datetime):
        return value.date()
    return value


@dataclass
class LifecycleRefresh:
    """Result of one refresh pass"""
    investment: Investment
    newly_overdue: List[int] = field(default_factory=list)   # Period numbers
    previous_status: Optional[InvestmentStatus] = None       # Set when status changed

    @property
    def status_changed(self) -> bool:
        return self.previous_status is not None

    @property
    def changed(self) -> bool:
        return bool(self.newly_overdue) or self.status_changed


def refresh_investment(investment: Investment, now: Union[date, datetime]) -> LifecycleRefresh:
    """
    Refresh overdue flags and the top-level status.

    Pending items due strictly before `now` with something to pay become
    overdue. An active investment whose remaining amount is zero or less
    becomes completed. Terminal investments are returned unchanged.
    Running this twice with the same `now` changes nothing the second time.
    """
    refreshed = investment.copy()
    if not refreshed.is_active:
        return LifecycleRefresh(investment=refreshed)

    today = as_date(now)
    result = LifecycleRefresh(investment=refreshed)

    for item in refreshed.schedule:
        if (item.status == ScheduleItemStatus.PENDING
                and item.due_date < today
                and item.outstanding_amount > ZERO):
            item.status = ScheduleItemStatus.OVERDUE
            result.newly_overdue.append(item.period)

    if refreshed.remaining_amount <= ZERO:
        result.previous_status = refreshed.status
        refreshed.status = InvestmentStatus.COMPLETED

    return result


def _terminate(investment: Investment, status: InvestmentStatus, reason: Optional[str]) -> Investment:
    if not investment.is_active:
        raise InvalidInvestmentState(
            f"Investment {investment.id} is {investment.status.value}; "
            f"only active investments can become {status.value}",
            field="status",
            constraint="investment must be active"
        )
    updated = investment.copy()
    updated.status = status
    if reason:
        updated.notes = f"{updated.notes}\n{reason}" if updated.notes else reason
    return updated


def close_investment(investment: Investment, reason: Optional[str] = None) -> Investment:
    """Close an active investment early"""
    return _terminate(investment, InvestmentStatus.CLOSED, reason)


def mark_defaulted(investment: Investment, reason: Optional[str] = None) -> Investment:
    """Mark an active investment as defaulted"""
    return _terminate(investment, InvestmentStatus.DEFAULTED, reason)
