"""
Pydantic schemas for API requests
"""

from decimal import Decimal, InvalidOperation
from datetime import date
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from ..errors import InvestmentError, InvalidField, InvalidPlanConfiguration
from ..plan_config import PlanConfiguration
from ..rate_math import to_decimal
from ..reconciliation import PaymentBreakdown


def parse_amount(value: Optional[str], field_name: str) -> Optional[Decimal]:
    """Finite Decimal from a string amount; None stays None"""
    if value is None:
        return None
    return to_decimal(value, field_name)


def parse_date(value: Optional[str], field_name: str) -> Optional[date]:
    """Date from an ISO string; None stays None"""
    if value is None:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise InvalidField(f"Invalid date for {field_name}: {value}", field=field_name,
                           constraint="ISO date YYYY-MM-DD") from e


def parse_enum(enum_cls, value: str, field_name: str):
    """Enum member from its value"""
    try:
        return enum_cls(value)
    except ValueError as e:
        allowed = ", ".join(member.value for member in enum_cls)
        raise InvalidField(f"Invalid {field_name}: {value}", field=field_name,
                           constraint=f"one of {allowed}") from e


# Plan schemas
class InterestOnlyModel(BaseModel):
    payout_frequency: str = Field("monthly", description="monthly, quarterly, half_yearly, yearly or custom")
    repayment_mode: str = Field("fixed", description="fixed or flexible")
    withdrawal_after_percent: Optional[str] = None  # Decimal as string
    settlement_term: Optional[int] = None


class InterestWithPrincipalModel(BaseModel):
    repayment_percent: str = Field(..., description="Share of principal repaid over the tenure")
    payout_frequency: str = "monthly"
    custom_frequency_periods: Optional[int] = None


class PlanConfigurationModel(BaseModel):
    interest_rate: str = Field(..., description="Percent per period as string")
    interest_type: str = Field(..., description="flat or reducing")
    tenure: int = Field(..., description="Number of periods")
    payment_type: str = Field(..., description="interest_only or interest_with_principal")
    interest_only: Optional[InterestOnlyModel] = None
    interest_with_principal: Optional[InterestWithPrincipalModel] = None

    def to_configuration(self) -> PlanConfiguration:
        try:
            return PlanConfiguration.from_dict(self.model_dump())
        except InvestmentError:
            raise
        except (ValueError, KeyError, InvalidOperation) as e:
            raise InvalidPlanConfiguration(f"Invalid plan configuration: {e}", field="configuration") from e


class CreatePlanRequest(BaseModel):
    name: str
    description: str = ""
    configuration: PlanConfigurationModel
    min_investment: Optional[str] = None  # Decimal as string
    max_investment: Optional[str] = None  # Decimal as string
    risk_level: str = "medium"
    features: List[str] = Field(default_factory=list)
    is_active: bool = True


class CalculateRequest(BaseModel):
    principal: str = Field(..., description="Decimal amount as string")
    start_date: Optional[str] = None  # ISO date string


# Investor schemas
class CreateInvestorRequest(BaseModel):
    name: str
    email: str
    phone: Optional[str] = None
    address: Optional[Dict[str, str]] = None
    risk_profile: str = "moderate"
    notes: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


class UpdateInvestorStatusRequest(BaseModel):
    status: str = Field(..., description="active, inactive or blocked")


# Investment schemas
class CreateInvestmentRequest(BaseModel):
    investor_id: str
    plan_id: str
    principal: str = Field(..., description="Decimal amount as string")
    investment_date: Optional[str] = None  # ISO date string
    notes: Optional[str] = None


class StatusChangeRequest(BaseModel):
    reason: Optional[str] = None


class NoteRequest(BaseModel):
    note: str


# Payment schemas
class BreakdownModel(BaseModel):
    interest: str = "0"
    principal: str = "0"
    penalty: str = "0"
    bonus: str = "0"

    def to_breakdown(self) -> PaymentBreakdown:
        return PaymentBreakdown(
            interest=parse_amount(self.interest, "breakdown.interest"),
            principal=parse_amount(self.principal, "breakdown.principal"),
            penalty=parse_amount(self.penalty, "breakdown.penalty"),
            bonus=parse_amount(self.bonus, "breakdown.bonus")
        )


class RecordPaymentRequest(BaseModel):
    investment_id: str
    period_index: int = Field(..., description="Schedule period the payment is for")
    amount: str = Field(..., description="Decimal amount as string")
    payment_method: str = Field(..., description="cash, cheque, bank_transfer, upi, card or other")
    breakdown: Optional[BreakdownModel] = None
    payment_date: Optional[str] = None  # ISO date string
    reference_number: Optional[str] = None
    payment_type: str = "mixed"
    notes: Optional[str] = None


class UpdatePaymentRequest(BaseModel):
    status: Optional[str] = Field(None, description="pending, completed, failed or cancelled")
    payment_method: Optional[str] = None
    reference_number: Optional[str] = None
    notes: Optional[str] = None
    verified_by: Optional[str] = None
