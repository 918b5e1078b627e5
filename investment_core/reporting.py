"""
Reporting Engine Module

Read-only portfolio reports for the admin dashboard: overview totals,
overdue and upcoming schedule items, plan performance, payment statistics
and per-investor summaries. All date-sensitive reports take the clock as an
argument.
"""

from decimal import Decimal
from datetime import date, datetime, timedelta
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from .investment import Investment, InvestmentStatus
from .investors import InvestorManager
from .lifecycle import as_date
from .payments import PaymentMethod, PaymentStatus
from .plans import PlanManager
from .rate_math import ZERO, HUNDRED, round2
from .schedule import ScheduleItem, ScheduleItemStatus
from .servicing import InvestmentManager
from .storage import StorageInterface, utc_now


@dataclass
class ReportResult:
    """Result of a report execution"""
    report_id: str
    generated_at: datetime
    data: List[Dict[str, Any]] = field(default_factory=list)
    totals: Dict[str, Any] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.metadata:
            self.metadata = {'row_count': len(self.data)}

    def to_dict(self) -> Dict[str, Any]:
        return {
            'report_id': self.report_id,
            'generated_at': self.generated_at.isoformat(),
            'data': [_stringify(row) for row in self.data],
            'totals': _stringify(self.totals),
            'metadata': _stringify(self.metadata)
        }


def _stringify(row: Dict[str, Any]) -> Dict[str, Any]:
    result = {}
    for key, value in row.items():
        if isinstance(value, Decimal):
            value = str(value)
        elif isinstance(value, (date, datetime)):
            value = value.isoformat()
        elif isinstance(value, dict):
            value = _stringify(value)
        elif isinstance(value, list):
            value = [_stringify(v) if isinstance(v, dict) else v for v in value]
        result[key] = value
    return result


def is_past_due(item: ScheduleItem, today: date) -> bool:
    """Overdue, or still pending with something to pay after its due date"""
    if item.status == ScheduleItemStatus.OVERDUE:
        return True
    return (item.status == ScheduleItemStatus.PENDING
            and item.due_date < today
            and item.outstanding_amount > ZERO)


class ReportingEngine:
    """
    Portfolio reporting over plans, investors and investments
    """

    def __init__(
        self,
        storage: StorageInterface,
        investment_manager: InvestmentManager,
        investor_manager: InvestorManager,
        plan_manager: PlanManager
    ):
        self.storage = storage
        self.investment_manager = investment_manager
        self.investor_manager = investor_manager
        self.plan_manager = plan_manager

    def dashboard_overview(self, now: Optional[Union[date, datetime]] = None) -> ReportResult:
        """Headline counts and amounts across the whole book"""
        today = as_date(now or utc_now())
        investments = self.investment_manager.list_investments()

        by_status = {status.value: 0 for status in InvestmentStatus}
        for investment in investments:
            by_status[investment.status.value] += 1

        active = [inv for inv in investments if inv.status == InvestmentStatus.ACTIVE]
        overdue = self._overdue_rows(active, today)

        month_start = today.replace(day=1)
        payments = self.storage.load_all(self.investment_manager.payments.table_name)
        payments_this_month = [
            data for data in payments if date.fromisoformat(data['payment_date']) >= month_start
        ]

        totals = {
            'total_investors': self.storage.count(self.investor_manager.table_name),
            'active_plans': len(self.plan_manager.list_plans(active_only=True)),
            'total_investments': len(investments),
            'investments_by_status': by_status,
            'total_principal': sum((inv.principal_amount for inv in investments), ZERO),
            'total_expected_returns': sum((inv.total_expected_returns for inv in investments), ZERO),
            'total_paid_amount': sum((inv.total_paid_amount for inv in investments), ZERO),
            'active_remaining_amount': sum((inv.remaining_amount for inv in active), ZERO),
            'overdue_items': len(overdue),
            'overdue_amount': sum((row['amount'] for row in overdue), ZERO),
            'payments_this_month': len(payments_this_month),
            'collected_this_month': sum((Decimal(data['amount']) for data in payments_this_month), ZERO)
        }
        return ReportResult(
            report_id="dashboard_overview",
            generated_at=utc_now(),
            totals=totals,
            metadata={'as_of': today}
        )

    def overdue_items(self, now: Optional[Union[date, datetime]] = None) -> ReportResult:
        """Past-due schedule items of active investments, most overdue first"""
        today = as_date(now or utc_now())
        active = self.investment_manager.list_investments(status=InvestmentStatus.ACTIVE)
        rows = self._overdue_rows(active, today)
        return ReportResult(
            report_id="overdue_items",
            generated_at=utc_now(),
            data=rows,
            totals={'count': len(rows), 'amount': sum((row['amount'] for row in rows), ZERO)},
            metadata={'as_of': today, 'row_count': len(rows)}
        )

    def upcoming_dues(self, now: Optional[Union[date, datetime]] = None, days: int = 7) -> ReportResult:
        """Pending items of active investments falling due within `days` days"""
        today = as_date(now or utc_now())
        active = self.investment_manager.list_investments(status=InvestmentStatus.ACTIVE)
        rows = self._upcoming_rows(active, today, days)
        return ReportResult(
            report_id="upcoming_dues",
            generated_at=utc_now(),
            data=rows,
            totals={'count': len(rows), 'amount': sum((row['amount'] for row in rows), ZERO)},
            metadata={'as_of': today, 'days': days, 'row_count': len(rows)}
        )

    def plan_performance(self) -> ReportResult:
        """Invested, expected, collected and outstanding amounts per plan"""
        data = []
        for plan in self.plan_manager.list_plans():
            investments = self.investment_manager.list_investments(plan_id=plan.id)
            principal = sum((inv.principal_amount for inv in investments), ZERO)
            paid = sum((inv.total_paid_amount for inv in investments), ZERO)
            expected = sum((inv.total_expected_returns for inv in investments), ZERO)
            data.append({
                'plan_id': plan.id,
                'plan_name': plan.name,
                'is_active': plan.is_active,
                'risk_level': plan.risk_level.value,
                'investments': len(investments),
                'active_investments': sum(1 for inv in investments if inv.is_active),
                'completed_investments': sum(1 for inv in investments if inv.status == InvestmentStatus.COMPLETED),
                'investors': len({inv.investor_id for inv in investments}),
                'total_principal': principal,
                'total_expected_returns': expected,
                'total_paid_amount': paid,
                'remaining_amount': sum((inv.remaining_amount for inv in investments if inv.is_active), ZERO),
                'collection_percent': round2(paid / expected * HUNDRED) if expected > ZERO else ZERO
            })

        totals = {
            'plans': len(data),
            'total_principal': sum((row['total_principal'] for row in data), ZERO),
            'total_paid_amount': sum((row['total_paid_amount'] for row in data), ZERO)
        }
        return ReportResult(report_id="plan_performance", generated_at=utc_now(), data=data, totals=totals)

    def payment_statistics(self, now: Optional[Union[date, datetime]] = None) -> ReportResult:
        """Payment counts by status and completed amounts by method"""
        today = as_date(now or utc_now())
        month_start = today.replace(day=1)
        payments = self.investment_manager.payments.list_payments()
        completed = [p for p in payments if p.status == PaymentStatus.COMPLETED]

        data = []
        for method in PaymentMethod:
            matching = [p for p in completed if p.method == method]
            if matching:
                data.append({
                    'method': method.value,
                    'count': len(matching),
                    'amount': sum((p.amount for p in matching), ZERO)
                })

        by_status = {status.value: 0 for status in PaymentStatus}
        for payment in payments:
            by_status[payment.status.value] += 1

        total_amount = sum((p.amount for p in completed), ZERO)
        totals = {
            'total_payments': len(payments),
            'payments_by_status': by_status,
            'total_amount': total_amount,
            'average_payment': round2(total_amount / len(completed)) if completed else ZERO,
            'payments_this_month': sum(1 for p in completed if p.payment_date >= month_start),
            'verified_payments': sum(1 for p in payments if p.verified_by)
        }
        return ReportResult(
            report_id="payment_statistics",
            generated_at=utc_now(),
            data=data,
            totals=totals,
            metadata={'as_of': today, 'row_count': len(data)}
        )

    def investor_summary(
        self,
        investor_id: str,
        now: Optional[Union[date, datetime]] = None,
        upcoming_days: int = 30
    ) -> ReportResult:
        """
        Portfolio summary of one investor

        Raises:
            NotFound: If the investor does not exist
        """
        investor = self.investor_manager.get_investor_or_raise(investor_id)
        today = as_date(now or utc_now())
        investments = self.investment_manager.list_investments(investor_id=investor_id)
        active = [inv for inv in investments if inv.is_active]

        overdue = self._overdue_rows(active, today)
        upcoming = self._upcoming_rows(active, today, upcoming_days)
        total_invested = sum((inv.principal_amount for inv in investments), ZERO)
        total_paid = sum((inv.total_paid_amount for inv in investments), ZERO)

        data = [
            {
                'investment_id': inv.id,
                'plan_id': inv.plan_id,
                'plan_name': inv.plan_name,
                'principal_amount': inv.principal_amount,
                'total_expected_returns': inv.total_expected_returns,
                'total_paid_amount': inv.total_paid_amount,
                'remaining_amount': inv.remaining_amount,
                'status': inv.status.value,
                'maturity_date': inv.maturity_date
            }
            for inv in investments
        ]
        totals = {
            'total_investments': len(investments),
            'active_investments': len(active),
            'completed_investments': sum(1 for inv in investments if inv.status == InvestmentStatus.COMPLETED),
            'total_invested': total_invested,
            'total_expected_returns': sum((inv.total_expected_returns for inv in investments), ZERO),
            'total_paid_amount': total_paid,
            'remaining_amount': sum((inv.remaining_amount for inv in active), ZERO),
            'average_investment': round2(total_invested / len(investments)) if investments else ZERO,
            'roi_percent': round2(total_paid / total_invested * HUNDRED) if total_invested > ZERO else ZERO,
            'overdue_items': len(overdue),
            'overdue_amount': sum((row['amount'] for row in overdue), ZERO),
            'upcoming_payments': upcoming
        }
        return ReportResult(
            report_id="investor_summary",
            generated_at=utc_now(),
            data=data,
            totals=totals,
            metadata={'investor_id': investor.id, 'investor_name': investor.name, 'as_of': today}
        )

    def _overdue_rows(self, investments: List[Investment], today: date) -> List[Dict[str, Any]]:
        rows = []
        for investment in investments:
            for item in investment.schedule:
                if is_past_due(item, today):
                    rows.append({
                        'investment_id': investment.id,
                        'investor_id': investment.investor_id,
                        'period': item.period,
                        'due_date': item.due_date,
                        'amount': item.outstanding_amount,
                        'status': item.status.value,
                        'days_past_due': (today - item.due_date).days
                    })
        rows.sort(key=lambda row: (-row['days_past_due'], row['investment_id'], row['period']))
        return rows

    def _upcoming_rows(self, investments: List[Investment], today: date, days: int) -> List[Dict[str, Any]]:
        horizon = today + timedelta(days=days)
        rows = []
        for investment in investments:
            for item in investment.schedule:
                if item.status == ScheduleItemStatus.PENDING and today <= item.due_date <= horizon:
                    rows.append({
                        'investment_id': investment.id,
                        'investor_id': investment.investor_id,
                        'period': item.period,
                        'due_date': item.due_date,
                        'amount': item.total_amount,
                        'days_until_due': (item.due_date - today).days
                    })
        rows.sort(key=lambda row: (row['days_until_due'], row['investment_id'], row['period']))
        return rows
