"""
Plan Configuration Module

Immutable value types describing how an investment plan pays out: interest
rate and type, tenure, payment type, and the payment-type-specific
sub-configuration. A configuration is validated on construction.
"""

from decimal import Decimal
from dataclasses import dataclass
from typing import Any, Dict, Optional
from enum import Enum

from .errors import InvalidPlanConfiguration
from .rate_math import ZERO, HUNDRED, to_decimal


MAX_TENURE = 240


class InterestType(Enum):
    """How per-period interest is based"""
    FLAT = "flat"           # Always on the original principal
    REDUCING = "reducing"   # On principal still outstanding


class PaymentType(Enum):
    """What each period pays out"""
    INTEREST_ONLY = "interest_only"                    # Interest, principal later
    INTEREST_WITH_PRINCIPAL = "interest_with_principal"  # Interest plus principal instalments


class PayoutFrequency(Enum):
    """Payout frequency options"""
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    HALF_YEARLY = "half_yearly"
    YEARLY = "yearly"
    CUSTOM = "custom"

    @property
    def periods(self) -> int:
        """Number of schedule periods between payouts"""
        return {
            PayoutFrequency.MONTHLY: 1,
            PayoutFrequency.QUARTERLY: 3,
            PayoutFrequency.HALF_YEARLY: 6,
            PayoutFrequency.YEARLY: 12,
            PayoutFrequency.CUSTOM: 1
        }[self]


class PrincipalRepaymentMode(Enum):
    """Principal repayment for interest-only plans"""
    FIXED = "fixed"         # Full principal at maturity
    FLEXIBLE = "flexible"   # Settled in instalments after part of the tenure


@dataclass(frozen=True)
class InterestOnlyConfig:
    """Sub-configuration for interest-only plans"""
    payout_frequency: PayoutFrequency
    repayment_mode: PrincipalRepaymentMode
    withdrawal_after_percent: Optional[Decimal] = None  # Share of tenure before settlement starts
    settlement_term: Optional[int] = None               # Periods over which principal is settled

    def __post_init__(self):
        if self.withdrawal_after_percent is not None:
            percent = to_decimal(self.withdrawal_after_percent, 'interest_only.withdrawal_after_percent')
            object.__setattr__(self, 'withdrawal_after_percent', percent)

        if self.repayment_mode == PrincipalRepaymentMode.FLEXIBLE:
            if self.withdrawal_after_percent is None:
                raise InvalidPlanConfiguration(
                    "Flexible repayment requires withdrawal_after_percent",
                    field="interest_only.withdrawal_after_percent",
                    constraint="required when repayment_mode is flexible"
                )
            if self.settlement_term is None:
                raise InvalidPlanConfiguration(
                    "Flexible repayment requires settlement_term",
                    field="interest_only.settlement_term",
                    constraint="required when repayment_mode is flexible"
                )

        if self.withdrawal_after_percent is not None:
            if not ZERO <= self.withdrawal_after_percent <= HUNDRED:
                raise InvalidPlanConfiguration(
                    f"withdrawal_after_percent must be between 0 and 100, got {self.withdrawal_after_percent}",
                    field="interest_only.withdrawal_after_percent",
                    constraint="0 <= value <= 100"
                )
        if self.settlement_term is not None and self.settlement_term < 1:
            raise InvalidPlanConfiguration(
                f"settlement_term must be at least 1, got {self.settlement_term}",
                field="interest_only.settlement_term",
                constraint="value >= 1"
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'payout_frequency': self.payout_frequency.value,
            'repayment_mode': self.repayment_mode.value,
            'withdrawal_after_percent': (
                str(self.withdrawal_after_percent) if self.withdrawal_after_percent is not None else None
            ),
            'settlement_term': self.settlement_term
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'InterestOnlyConfig':
        withdrawal = data.get('withdrawal_after_percent')
        return cls(
            payout_frequency=PayoutFrequency(data.get('payout_frequency', 'monthly')),
            repayment_mode=PrincipalRepaymentMode(data['repayment_mode']),
            withdrawal_after_percent=Decimal(str(withdrawal)) if withdrawal is not None else None,
            settlement_term=data.get('settlement_term')
        )


@dataclass(frozen=True)
class InterestWithPrincipalConfig:
    """Sub-configuration for interest-with-principal plans"""
    repayment_percent: Decimal
    payout_frequency: PayoutFrequency
    custom_frequency_periods: Optional[int] = None  # Overrides CUSTOM's default of 1

    def __post_init__(self):
        percent = to_decimal(self.repayment_percent, 'interest_with_principal.repayment_percent')
        object.__setattr__(self, 'repayment_percent', percent)

        if not ZERO <= self.repayment_percent <= HUNDRED:
            raise InvalidPlanConfiguration(
                f"repayment_percent must be between 0 and 100, got {self.repayment_percent}",
                field="interest_with_principal.repayment_percent",
                constraint="0 <= value <= 100"
            )
        if self.custom_frequency_periods is not None and self.custom_frequency_periods < 1:
            raise InvalidPlanConfiguration(
                f"custom_frequency_periods must be at least 1, got {self.custom_frequency_periods}",
                field="interest_with_principal.custom_frequency_periods",
                constraint="value >= 1"
            )

    @property
    def frequency_periods(self) -> int:
        """Periods between principal payouts"""
        if self.payout_frequency == PayoutFrequency.CUSTOM and self.custom_frequency_periods:
            return self.custom_frequency_periods
        return self.payout_frequency.periods

    def to_dict(self) -> Dict[str, Any]:
        return {
            'repayment_percent': str(self.repayment_percent),
            'payout_frequency': self.payout_frequency.value,
            'custom_frequency_periods': self.custom_frequency_periods
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'InterestWithPrincipalConfig':
        return cls(
            repayment_percent=Decimal(str(data['repayment_percent'])),
            payout_frequency=PayoutFrequency(data['payout_frequency']),
            custom_frequency_periods=data.get('custom_frequency_periods')
        )


@dataclass(frozen=True)
class PlanConfiguration:
    """
    Calculation-relevant part of a plan.

    Exactly one of `interest_only` / `interest_with_principal` is set and it
    must match `payment_type`.
    """
    interest_rate: Decimal          # Percent per period, e.g. 3 for 3%
    interest_type: InterestType
    tenure: int                     # Number of periods
    payment_type: PaymentType
    interest_only: Optional[InterestOnlyConfig] = None
    interest_with_principal: Optional[InterestWithPrincipalConfig] = None

    def __post_init__(self):
        object.__setattr__(self, 'interest_rate', to_decimal(self.interest_rate, 'interest_rate'))

        if self.interest_rate < ZERO or self.interest_rate > HUNDRED:
            raise InvalidPlanConfiguration(
                f"Interest rate must be between 0 and 100, got {self.interest_rate}",
                field="interest_rate",
                constraint="0 <= value <= 100"
            )
        if not isinstance(self.tenure, int) or self.tenure < 1 or self.tenure > MAX_TENURE:
            raise InvalidPlanConfiguration(
                f"Tenure must be between 1 and {MAX_TENURE} periods, got {self.tenure}",
                field="tenure",
                constraint=f"1 <= value <= {MAX_TENURE}"
            )

        if self.payment_type == PaymentType.INTEREST_ONLY:
            if self.interest_only is None:
                raise InvalidPlanConfiguration(
                    "Interest-only plans require an interest_only configuration",
                    field="interest_only",
                    constraint="required for payment_type interest_only"
                )
            if self.interest_with_principal is not None:
                raise InvalidPlanConfiguration(
                    "Interest-only plans must not carry an interest_with_principal configuration",
                    field="interest_with_principal",
                    constraint="must be absent for payment_type interest_only"
                )
        else:
            if self.interest_with_principal is None:
                raise InvalidPlanConfiguration(
                    "Interest-with-principal plans require an interest_with_principal configuration",
                    field="interest_with_principal",
                    constraint="required for payment_type interest_with_principal"
                )
            if self.interest_only is not None:
                raise InvalidPlanConfiguration(
                    "Interest-with-principal plans must not carry an interest_only configuration",
                    field="interest_only",
                    constraint="must be absent for payment_type interest_with_principal"
                )

    @property
    def is_flat(self) -> bool:
        return self.interest_type == InterestType.FLAT

    def summary(self) -> Dict[str, Any]:
        """Short description used in previews and reports"""
        return {
            'interest_rate': str(self.interest_rate),
            'interest_type': self.interest_type.value,
            'tenure': self.tenure,
            'payment_type': self.payment_type.value
        }

    def to_dict(self) -> Dict[str, Any]:
        result = self.summary()
        result['interest_only'] = self.interest_only.to_dict() if self.interest_only else None
        result['interest_with_principal'] = (
            self.interest_with_principal.to_dict() if self.interest_with_principal else None
        )
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PlanConfiguration':
        interest_only = None
        if data.get('interest_only'):
            interest_only = InterestOnlyConfig.from_dict(data['interest_only'])

        interest_with_principal = None
        if data.get('interest_with_principal'):
            interest_with_principal = InterestWithPrincipalConfig.from_dict(data['interest_with_principal'])

        return cls(
            interest_rate=Decimal(str(data['interest_rate'])),
            interest_type=InterestType(data['interest_type']),
            tenure=int(data['tenure']),
            payment_type=PaymentType(data['payment_type']),
            interest_only=interest_only,
            interest_with_principal=interest_with_principal
        )
