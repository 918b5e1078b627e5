"""
Investment Servicing Module

Orchestrates investments around the pure calculation code: creates them
from a plan, records payments, runs the lifecycle refresh, and handles
operator-driven closing and defaulting. Every change is persisted with an
optimistic version check and written to the activity timeline.

Reconciliation for one investment is serialized by a per-investment lock,
so two payments for the same investment never work from the same snapshot.
"""

import threading
from decimal import Decimal
from datetime import date, datetime
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Union

from .errors import InvalidInvestmentState, InvalidPlanConfiguration, InvalidField, NotFound
from .investment import Investment, InvestmentStatus, investment_number
from .investors import InvestorManager
from .lifecycle import refresh_investment, close_investment, mark_defaulted, as_date
from .logging_config import get_logger, log_action
from .payments import Payment, PaymentMethod, PaymentRegistry, PaymentStatus, PaymentType
from .plans import PlanManager
from .rate_math import to_decimal, Number
from .reconciliation import (
    PaymentBreakdown, ReconciliationResult, apply_payment,
    BREAKDOWN_TOLERANCE, ROUNDING_ADJUSTMENT_THRESHOLD
)
from .returns import calculate_expected_returns
from .schedule import ScheduleItem, ScheduleItemStatus, generate_schedule, add_months
from .storage import RecordLocks, StorageInterface, utc_now
from .timeline import ActivityTimeline, TimelineEvent, TimelineEventType


MAX_NOTE_LENGTH = 1000

logger = get_logger("invest.servicing")


def _display(value) -> str:
    if value is None:
        return "none"
    if isinstance(value, Enum):
        return value.value
    return str(value)


@dataclass
class PaymentOutcome:
    """A stored payment together with the investment it updated"""
    payment: Payment
    investment: Investment
    item: ScheduleItem
    previous_item_status: ScheduleItemStatus


class InvestmentManager:
    """
    Manager class for investments and their payments
    """

    def __init__(
        self,
        storage: StorageInterface,
        timeline: ActivityTimeline,
        plan_manager: PlanManager,
        investor_manager: InvestorManager,
        payment_registry: PaymentRegistry,
        breakdown_tolerance: Decimal = BREAKDOWN_TOLERANCE,
        adjustment_threshold: Decimal = ROUNDING_ADJUSTMENT_THRESHOLD
    ):
        self.storage = storage
        self.timeline = timeline
        self.plan_manager = plan_manager
        self.investor_manager = investor_manager
        self.payments = payment_registry
        self.breakdown_tolerance = breakdown_tolerance
        self.adjustment_threshold = adjustment_threshold
        self.table_name = "investments"

        self._locks = RecordLocks()
        self._create_lock = threading.Lock()

    def _lock_for(self, investment_id: str) -> threading.RLock:
        return self._locks.for_record(investment_id)

    def create_investment(
        self,
        investor_id: str,
        plan_id: str,
        principal: Number,
        investment_date: Optional[Union[date, datetime]] = None,
        notes: Optional[str] = None,
        user_id: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Investment:
        """
        Create an investment and generate its schedule

        Args:
            investor_id: Active investor placing the money
            plan_id: Active plan to invest in
            principal: Amount invested, within the plan limits
            investment_date: Start date; period m falls due m months later
            notes: Optional free-text notes
            user_id: Operator creating the investment
            now: Clock for the initial overdue check (back-dated investments)

        Returns:
            Created Investment

        Raises:
            NotFound: If the investor or plan does not exist
            InvalidInvestmentState: If the investor is not active
            InvalidPlanConfiguration: If the plan is not active
            InvalidAmount: If principal is not positive or outside plan limits
        """
        investor = self.investor_manager.get_investor_or_raise(investor_id)
        if not investor.is_active:
            raise InvalidInvestmentState(
                f"Investor {investor_id} is {investor.status.value}",
                field="investor_id",
                constraint="investor must be active"
            )

        clock = now or utc_now()
        start = as_date(investment_date) if investment_date is not None else as_date(clock)

        # The plan stays locked until the investment holding its configuration is saved
        with self.plan_manager.lock_for(plan_id):
            plan = self.plan_manager.get_plan_or_raise(plan_id)
            if not plan.is_active:
                raise InvalidPlanConfiguration(
                    f"Plan {plan_id} is not active",
                    field="plan_id",
                    constraint="plan must be active"
                )

            principal = to_decimal(principal, "principal")
            returns = calculate_expected_returns(plan.config, principal)
            plan.check_limits(principal)

            with self._create_lock:
                created = utc_now()
                investment = Investment(
                    id=investment_number(self.storage.count(self.table_name) + 1),
                    created_at=created,
                    updated_at=created,
                    investor_id=investor_id,
                    plan_id=plan_id,
                    plan_name=plan.name,
                    principal_amount=principal,
                    investment_date=start,
                    maturity_date=add_months(start, plan.config.tenure),
                    config=plan.config,
                    schedule=generate_schedule(plan.config, principal, start),
                    total_expected_returns=returns.total_returns,
                    total_interest_expected=returns.total_interest,
                    remaining_amount=returns.total_returns,
                    notes=notes
                )
                investment = refresh_investment(investment, clock).investment
                self._save(investment)

        self.timeline.record(
            TimelineEventType.INVESTMENT_CREATED,
            entity_type="investment",
            entity_id=investment.id,
            description=f"Investment of {principal} created in plan {plan.name}",
            metadata={
                'investor_id': investor_id,
                'plan_id': plan_id,
                'principal_amount': principal,
                'total_expected_returns': investment.total_expected_returns,
                'maturity_date': investment.maturity_date
            },
            user_id=user_id
        )
        self._update_statistics(investment)

        log_action(
            logger, "info", f"Investment {investment.id} created",
            user_id=user_id,
            action="create_investment",
            resource=f"investment:{investment.id}",
            extra={'plan_id': plan_id, 'investor_id': investor_id, 'principal': str(principal)}
        )
        return investment

    def get_investment(self, investment_id: str) -> Optional[Investment]:
        """Get investment by ID"""
        data = self.storage.load(self.table_name, investment_id)
        if data:
            return Investment.from_dict(data)
        return None

    def get_investment_or_raise(self, investment_id: str) -> Investment:
        investment = self.get_investment(investment_id)
        if investment is None:
            raise NotFound(f"Investment {investment_id} not found", field="investment_id")
        return investment

    def list_investments(
        self,
        investor_id: Optional[str] = None,
        plan_id: Optional[str] = None,
        status: Optional[InvestmentStatus] = None
    ) -> List[Investment]:
        """List investments with optional filters"""
        filters = {}
        if investor_id:
            filters['investor_id'] = investor_id
        if plan_id:
            filters['plan_id'] = plan_id
        if status:
            filters['status'] = status.value
        investments = [Investment.from_dict(data) for data in self.storage.find(self.table_name, filters)]
        investments.sort(key=lambda investment: investment.id)
        return investments

    def get_schedule(self, investment_id: str) -> List[ScheduleItem]:
        return self.get_investment_or_raise(investment_id).schedule

    def record_payment(
        self,
        investment_id: str,
        period_index: int,
        amount: Number,
        method: PaymentMethod,
        breakdown: Optional[PaymentBreakdown] = None,
        payment_date: Optional[Union[date, datetime]] = None,
        reference_number: Optional[str] = None,
        payment_type: PaymentType = PaymentType.MIXED,
        notes: Optional[str] = None,
        user_id: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> PaymentOutcome:
        """
        Apply a payment to an investment and store the payment record

        Raises:
            NotFound: If the investment does not exist
            InvalidAmount, InvalidInvestmentState, ScheduleItemNotFound,
            InvalidScheduleItemState, BreakdownMismatch: From reconciliation
            ConcurrentModification: If another process saved the investment first
        """
        clock = now or utc_now()
        paid_on = as_date(payment_date) if payment_date is not None else as_date(clock)

        with self._lock_for(investment_id):
            investment = self.get_investment_or_raise(investment_id)
            try:
                result = apply_payment(
                    investment,
                    period_index,
                    amount,
                    breakdown,
                    now=clock,
                    payment_date=paid_on,
                    tolerance=self.breakdown_tolerance,
                    adjustment_threshold=self.adjustment_threshold
                )
            except ValueError as e:
                log_action(
                    logger, "warning", f"Payment rejected for investment {investment_id}: {e}",
                    user_id=user_id,
                    action="record_payment_rejected",
                    resource=f"investment:{investment_id}",
                    extra={'period_index': period_index, 'amount': str(amount)}
                )
                raise

            with self.storage.atomic():
                self._save(result.investment)
                payment = self.payments.add(
                    investment_id=investment_id,
                    investor_id=investment.investor_id,
                    period_index=period_index,
                    amount=to_decimal(amount, "amount"),
                    breakdown=result.breakdown,
                    payment_date=paid_on,
                    method=method,
                    payment_type=payment_type,
                    reference_number=reference_number,
                    notes=notes,
                    adjustment=result.adjustment,
                    processed_by=user_id
                )

        self._record_payment_events(investment, result, payment, user_id)
        self._update_statistics(result.investment)

        log_action(
            logger, "info", f"Payment {payment.id} applied to investment {investment_id}",
            user_id=user_id,
            action="record_payment",
            resource=f"investment:{investment_id}",
            extra={
                'payment_id': payment.id,
                'period_index': period_index,
                'amount': str(payment.amount),
                'item_status': result.item.status.value,
                'remaining_amount': str(result.investment.remaining_amount),
                'adjustment': str(result.adjustment)
            }
        )
        return PaymentOutcome(
            payment=payment,
            investment=result.investment,
            item=result.item,
            previous_item_status=result.previous_item_status
        )

    def refresh(self, investment_id: str, now: Optional[datetime] = None) -> Investment:
        """Run the lifecycle refresh for one investment and persist any change"""
        clock = now or utc_now()
        with self._lock_for(investment_id):
            investment = self.get_investment_or_raise(investment_id)
            refreshed = refresh_investment(investment, clock)
            if not refreshed.changed:
                return investment
            self._save(refreshed.investment)

        for period in refreshed.newly_overdue:
            self._record_overdue(refreshed.investment, period)
        if refreshed.status_changed:
            self._record_status_change(refreshed.investment, refreshed.previous_status, None)
        self._update_statistics(refreshed.investment)
        return refreshed.investment

    def refresh_all(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Refresh every active investment; returns counts of what changed"""
        clock = now or utc_now()
        results = {'checked': 0, 'newly_overdue': 0, 'completed': 0}

        for data in self.storage.find(self.table_name, {'status': InvestmentStatus.ACTIVE.value}):
            before = Investment.from_dict(data)
            after = self.refresh(before.id, clock)
            results['checked'] += 1
            results['newly_overdue'] += sum(
                1 for old, new in zip(before.schedule, after.schedule) if old.status != new.status
            )
            if after.status == InvestmentStatus.COMPLETED:
                results['completed'] += 1

        log_action(
            logger, "info", "Lifecycle refresh completed",
            action="refresh_all",
            resource="investments",
            extra=results
        )
        return results

    def close_investment(self, investment_id: str, reason: Optional[str] = None,
                         user_id: Optional[str] = None) -> Investment:
        """Close an active investment early"""
        return self._terminate(investment_id, close_investment, reason, user_id)

    def mark_defaulted(self, investment_id: str, reason: Optional[str] = None,
                       user_id: Optional[str] = None) -> Investment:
        """Mark an active investment as defaulted"""
        return self._terminate(investment_id, mark_defaulted, reason, user_id)

    def add_note(self, investment_id: str, note: str, user_id: Optional[str] = None) -> TimelineEvent:
        """Attach a note to an investment's timeline"""
        self.get_investment_or_raise(investment_id)
        note = (note or "").strip()
        if not note or len(note) > MAX_NOTE_LENGTH:
            raise InvalidField(
                "Note must be between 1 and 1000 characters",
                field="note",
                constraint=f"1 <= length <= {MAX_NOTE_LENGTH}"
            )
        return self.timeline.record(
            TimelineEventType.NOTE_ADDED,
            entity_type="investment",
            entity_id=investment_id,
            description=note,
            user_id=user_id
        )

    def get_timeline(self, investment_id: str, limit: Optional[int] = None) -> List[TimelineEvent]:
        self.get_investment_or_raise(investment_id)
        return self.timeline.events_for("investment", investment_id, limit)

    def get_payments(self, investment_id: str) -> List[Payment]:
        self.get_investment_or_raise(investment_id)
        return self.payments.payments_for_investment(investment_id)

    def update_payment(
        self,
        payment_id: str,
        status: Optional[PaymentStatus] = None,
        method: Optional[PaymentMethod] = None,
        reference_number: Optional[str] = None,
        notes: Optional[str] = None,
        verified_by: Optional[str] = None,
        user_id: Optional[str] = None
    ) -> Payment:
        """
        Update a payment's status, method, reference, notes or verification.

        The change is written to the owning investment's timeline. The
        schedule is left as reconciled: a schedule item never moves back.

        Raises:
            NotFound: If the payment does not exist
        """
        payment, changes = self.payments.update_payment(
            payment_id,
            status=status,
            method=method,
            reference_number=reference_number,
            notes=notes,
            verified_by=verified_by
        )
        if not changes:
            return payment

        summary = ", ".join(
            f"{name}: {_display(old)} -> {_display(new)}" for name, (old, new) in changes.items()
        )
        self.timeline.record(
            TimelineEventType.PAYMENT_UPDATED,
            entity_type="investment",
            entity_id=payment.investment_id,
            description=f"Payment {payment.id} updated: {summary}",
            metadata={
                'payment_id': payment.id,
                'changes': {
                    name: {'old': _display(old), 'new': _display(new)} for name, (old, new) in changes.items()
                }
            },
            user_id=user_id
        )
        log_action(
            logger, "info", f"Payment {payment.id} updated",
            user_id=user_id,
            action="update_payment",
            resource=f"payment:{payment.id}",
            extra={name: _display(new) for name, (_, new) in changes.items()}
        )
        return payment

    def _terminate(self, investment_id: str, transition, reason: Optional[str],
                   user_id: Optional[str]) -> Investment:
        with self._lock_for(investment_id):
            investment = self.get_investment_or_raise(investment_id)
            updated = transition(investment, reason)
            self._save(updated)

        self._record_status_change(updated, investment.status, user_id, reason)
        self._update_statistics(updated)
        log_action(
            logger, "info", f"Investment {investment_id} is now {updated.status.value}",
            user_id=user_id,
            action=f"investment_{updated.status.value}",
            resource=f"investment:{investment_id}",
            extra={'reason': reason} if reason else None
        )
        return updated

    def _save(self, investment: Investment) -> None:
        investment.touch()
        investment.version = self.storage.save_versioned(
            self.table_name, investment.id, investment.to_dict(), investment.version
        )

    def _update_statistics(self, investment: Investment) -> None:
        self.investor_manager.update_statistics(investment.investor_id)
        self.plan_manager.update_statistics(investment.plan_id)

    def _record_payment_events(self, before: Investment, result: ReconciliationResult,
                               payment: Payment, user_id: Optional[str]) -> None:
        after = result.investment
        self.timeline.record(
            TimelineEventType.PAYMENT_RECEIVED,
            entity_type="investment",
            entity_id=after.id,
            description=f"Payment of {payment.amount} received for period {payment.period_index}",
            metadata={
                'payment_id': payment.id,
                'period_index': payment.period_index,
                'amount': payment.amount,
                'breakdown': result.breakdown.to_dict(),
                'item_status': result.item.status,
                'remaining_amount': after.remaining_amount
            },
            user_id=user_id
        )
        for old, new in zip(before.schedule, after.schedule):
            if old.status == ScheduleItemStatus.PENDING and new.status == ScheduleItemStatus.OVERDUE:
                self._record_overdue(after, new.period)
        if before.status != after.status:
            self._record_status_change(after, before.status, user_id)

    def _record_overdue(self, investment: Investment, period: int) -> None:
        item = investment.get_item(period)
        self.timeline.record(
            TimelineEventType.PAYMENT_OVERDUE,
            entity_type="investment",
            entity_id=investment.id,
            description=f"Payment for period {period} is overdue",
            metadata={'period_index': period, 'due_date': item.due_date, 'amount': item.total_amount}
        )
        log_action(
            logger, "warning", f"Investment {investment.id} period {period} is overdue",
            action="payment_overdue",
            resource=f"investment:{investment.id}",
            extra={'period_index': period, 'due_date': item.due_date.isoformat()}
        )

    def _record_status_change(self, investment: Investment, previous: InvestmentStatus,
                              user_id: Optional[str], reason: Optional[str] = None) -> None:
        metadata = {'from': previous, 'to': investment.status}
        if reason:
            metadata['reason'] = reason
        self.timeline.record(
            TimelineEventType.STATUS_CHANGED,
            entity_type="investment",
            entity_id=investment.id,
            description=f"Status changed from {previous.value} to {investment.status.value}",
            metadata=metadata,
            user_id=user_id
        )
