"""
Expected Returns Module

Aggregate expected totals for a plan and principal, without building the
schedule. Totals are sums of the same cent-rounded per-period interest the
schedule generator stores, so both always agree.
"""

from decimal import Decimal
from dataclasses import dataclass
from typing import Any, Dict, List, Union

from .errors import InvalidAmount
from .plan_config import PlanConfiguration, PaymentType
from .rate_math import ZERO, HUNDRED, round2, period_interest, to_decimal
from .schedule import ScheduleItem, iter_periods


@dataclass(frozen=True)
class ExpectedReturns:
    """Expected totals over the whole tenure"""
    principal: Decimal
    total_interest: Decimal
    total_returns: Decimal
    effective_rate_percent: Decimal
    payment_type: PaymentType

    def to_dict(self) -> Dict[str, Any]:
        return {
            'principal': str(self.principal),
            'total_interest': str(self.total_interest),
            'total_returns': str(self.total_returns),
            'effective_rate_percent': str(self.effective_rate_percent),
            'payment_type': self.payment_type.value
        }


def calculate_expected_returns(
    config: PlanConfiguration,
    principal: Union[Decimal, int, str]
) -> ExpectedReturns:
    """
    Calculate expected interest and total returns for a principal.

    Raises:
        InvalidAmount: If principal is not positive
    """
    principal = to_decimal(principal, "principal")
    if principal <= ZERO:
        raise InvalidAmount(
            f"Principal must be greater than 0, got {principal}",
            field="principal",
            constraint="value > 0"
        )

    if config.is_flat:
        # Flat interest is the same every period
        total_interest = round2(period_interest(principal, config.interest_rate)) * config.tenure
    else:
        total_interest = sum(
            (round2(amounts.interest) for amounts in iter_periods(config, principal)),
            ZERO
        )

    return ExpectedReturns(
        principal=round2(principal),
        total_interest=round2(total_interest),
        total_returns=round2(principal + total_interest),
        effective_rate_percent=round2(total_interest / principal * HUNDRED),
        payment_type=config.payment_type
    )


def summarize_schedule(schedule: List[ScheduleItem]) -> Dict[str, Decimal]:
    """Totals of a generated schedule"""
    total_interest = sum((item.interest_amount for item in schedule), ZERO)
    total_principal = sum((item.principal_amount for item in schedule), ZERO)
    return {
        'total_interest': total_interest,
        'total_principal': total_principal,
        'total_amount': total_interest + total_principal
    }
