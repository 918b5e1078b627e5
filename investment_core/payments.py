"""
Payments Module

Payment records. A payment references its investment and the period it was
applied to by number. Reconciliation writes it once; afterwards only its
bookkeeping fields (status, method, reference, notes, verification) change.
"""

import threading
from decimal import Decimal
from datetime import date, datetime
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple
from enum import Enum

from .errors import NotFound
from .reconciliation import PaymentBreakdown
from .storage import RecordLocks, StorageInterface, StorageRecord, utc_now


class PaymentMethod(Enum):
    CASH = "cash"
    CHEQUE = "cheque"
    BANK_TRANSFER = "bank_transfer"
    UPI = "upi"
    CARD = "card"
    OTHER = "other"


class PaymentStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class PaymentType(Enum):
    """What a payment was for"""
    INTEREST = "interest"
    PRINCIPAL = "principal"
    MIXED = "mixed"
    PENALTY = "penalty"
    BONUS = "bonus"


@dataclass
class Payment(StorageRecord):
    """Payment received against one schedule period"""
    investment_id: str
    investor_id: str
    period_index: int
    amount: Decimal
    breakdown: PaymentBreakdown
    payment_date: date
    method: PaymentMethod
    status: PaymentStatus = PaymentStatus.COMPLETED
    payment_type: PaymentType = PaymentType.MIXED
    reference_number: Optional[str] = None
    notes: Optional[str] = None
    adjustment: Decimal = Decimal("0")    # Rounding gap absorbed into interest
    processed_by: Optional[str] = None
    verified_by: Optional[str] = None
    verified_at: Optional[datetime] = None

    def __post_init__(self):
        if self.amount <= 0:
            raise ValueError("Payment amount must be positive")
        if self.period_index < 1:
            raise ValueError("Period index must be at least 1")

    def to_dict(self) -> Dict[str, Any]:
        result = self.base_dict()
        result.update({
            'investment_id': self.investment_id,
            'investor_id': self.investor_id,
            'period_index': self.period_index,
            'amount': str(self.amount),
            'breakdown': self.breakdown.to_dict(),
            'payment_date': self.payment_date.isoformat(),
            'method': self.method.value,
            'status': self.status.value,
            'payment_type': self.payment_type.value,
            'reference_number': self.reference_number,
            'notes': self.notes,
            'adjustment': str(self.adjustment),
            'processed_by': self.processed_by,
            'verified_by': self.verified_by,
            'verified_at': self.verified_at.isoformat() if self.verified_at else None
        })
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Payment':
        return cls(
            id=data['id'],
            **cls.parse_timestamps(data),
            investment_id=data['investment_id'],
            investor_id=data['investor_id'],
            period_index=int(data['period_index']),
            amount=Decimal(data['amount']),
            breakdown=PaymentBreakdown.from_dict(data.get('breakdown') or {}),
            payment_date=date.fromisoformat(data['payment_date']),
            method=PaymentMethod(data['method']),
            status=PaymentStatus(data.get('status', 'completed')),
            payment_type=PaymentType(data.get('payment_type', 'mixed')),
            reference_number=data.get('reference_number'),
            notes=data.get('notes'),
            adjustment=Decimal(data.get('adjustment', '0')),
            processed_by=data.get('processed_by'),
            verified_by=data.get('verified_by'),
            verified_at=datetime.fromisoformat(data['verified_at']) if data.get('verified_at') else None
        )


class PaymentRegistry:
    """Storage access for payment records"""

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.table_name = "payments"
        self._id_lock = threading.Lock()
        self._locks = RecordLocks()

    def add(self, **fields) -> Payment:
        """Create and store a payment under the next id, e.g. PAY00000001"""
        with self._id_lock:
            now = utc_now()
            payment = Payment(
                id=f"PAY{self.storage.count(self.table_name) + 1:08d}",
                created_at=now,
                updated_at=now,
                **fields
            )
            self.storage.save(self.table_name, payment.id, payment.to_dict())
            return payment

    def get_payment(self, payment_id: str) -> Optional[Payment]:
        data = self.storage.load(self.table_name, payment_id)
        if data:
            return Payment.from_dict(data)
        return None

    def get_payment_or_raise(self, payment_id: str) -> Payment:
        payment = self.get_payment(payment_id)
        if payment is None:
            raise NotFound(f"Payment {payment_id} not found", field="payment_id")
        return payment

    def payments_for_investment(self, investment_id: str) -> List[Payment]:
        return self.list_payments(investment_id=investment_id)

    def list_payments(
        self,
        status: Optional[PaymentStatus] = None,
        investment_id: Optional[str] = None,
        investor_id: Optional[str] = None,
        method: Optional[PaymentMethod] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        search: Optional[str] = None
    ) -> List[Payment]:
        """
        List payments with optional filters

        Args:
            date_from, date_to: Inclusive payment date range
            search: Case-insensitive match on payment id or reference number
        """
        filters: Dict[str, Any] = {}
        if status:
            filters['status'] = status.value
        if investment_id:
            filters['investment_id'] = investment_id
        if investor_id:
            filters['investor_id'] = investor_id
        if method:
            filters['method'] = method.value

        payments = [Payment.from_dict(data) for data in self.storage.find(self.table_name, filters)]
        if date_from:
            payments = [p for p in payments if p.payment_date >= date_from]
        if date_to:
            payments = [p for p in payments if p.payment_date <= date_to]
        if search:
            needle = search.strip().lower()
            payments = [
                p for p in payments
                if needle in p.id.lower() or needle in (p.reference_number or "").lower()
            ]
        payments.sort(key=lambda payment: payment.id)
        return payments

    def update_payment(
        self,
        payment_id: str,
        status: Optional[PaymentStatus] = None,
        method: Optional[PaymentMethod] = None,
        reference_number: Optional[str] = None,
        notes: Optional[str] = None,
        verified_by: Optional[str] = None
    ) -> Tuple[Payment, Dict[str, Tuple[Any, Any]]]:
        """
        Update the bookkeeping fields of a payment.

        Amount, period and breakdown never change once recorded.

        Returns:
            Tuple of (updated payment, {field: (old, new)} for each changed field)
        """
        with self._locks.for_record(payment_id):
            payment = self.get_payment_or_raise(payment_id)
            requested = {
                'status': status,
                'method': method,
                'reference_number': reference_number,
                'notes': notes
            }
            changes = {}
            for name, value in requested.items():
                if value is not None and getattr(payment, name) != value:
                    changes[name] = (getattr(payment, name), value)
                    setattr(payment, name, value)

            if verified_by and verified_by != payment.verified_by:
                changes['verified_by'] = (payment.verified_by, verified_by)
                payment.verified_by = verified_by
                payment.verified_at = utc_now()

            if changes:
                payment.touch()
                self.storage.save(self.table_name, payment.id, payment.to_dict())
            return payment, changes
