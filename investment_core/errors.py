"""
Error taxonomy for rejected requests.

Every error here is recoverable at the call site: it describes a request that
was refused, never corrupted state. Each carries the offending field and the
violated constraint so the caller can correct and retry.
"""

from typing import Any, Dict, Optional


class InvestmentError(ValueError):
    """Base class for all rejected investment operations"""

    kind = "investment_error"

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        constraint: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.field = field
        self.constraint = constraint
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for API responses and log records"""
        result: Dict[str, Any] = {"error": self.kind, "message": self.message}
        if self.field:
            result["field"] = self.field
        if self.constraint:
            result["constraint"] = self.constraint
        if self.details:
            result["details"] = {k: str(v) if v is not None else None for k, v in self.details.items()}
        return result


class InvalidAmount(InvestmentError):
    """Principal or payment amount is non-positive or outside plan limits"""
    kind = "invalid_amount"


class InvalidPlanConfiguration(InvestmentError):
    """Plan configuration is missing or inconsistent for its payment type"""
    kind = "invalid_plan_configuration"


class ScheduleItemNotFound(InvestmentError):
    """No schedule item with the requested period index"""
    kind = "schedule_item_not_found"


class InvalidScheduleItemState(InvestmentError):
    """Schedule item status does not accept further payments"""
    kind = "invalid_schedule_item_state"


class BreakdownMismatch(InvestmentError):
    """Payment breakdown does not add up to the payment amount"""
    kind = "breakdown_mismatch"


class InvalidInvestmentState(InvestmentError):
    """Investment, investor or plan status does not allow the operation"""
    kind = "invalid_investment_state"


class NotFound(InvestmentError):
    """Referenced record does not exist"""
    kind = "not_found"


class ConcurrentModification(InvestmentError):
    """Record changed since it was loaded (optimistic version check failed)"""
    kind = "concurrent_modification"


class DuplicateRecord(InvestmentError):
    """A record with the same unique key already exists"""
    kind = "duplicate_record"


class InvalidField(InvestmentError):
    """A record field fails its format or length rule"""
    kind = "invalid_field"
