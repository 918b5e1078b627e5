"""
Test suite for payment schedule generation

Covers interest-only (fixed and flexible) and interest-with-principal plans,
flat and reducing interest, due-date arithmetic and cent-drift handling.
"""

import pytest
from decimal import Decimal
from datetime import date, datetime

from investment_core.errors import InvalidAmount
from investment_core.plan_config import (
    PlanConfiguration, InterestOnlyConfig, InterestWithPrincipalConfig,
    InterestType, PaymentType, PayoutFrequency, PrincipalRepaymentMode
)
from investment_core.schedule import (
    ScheduleItem, ScheduleItemStatus, generate_schedule, add_months,
    settlement_start_period, payout_event_count, find_item
)
from investment_core.returns import summarize_schedule


def interest_only_plan(rate, tenure, interest_type=InterestType.FLAT,
                       mode=PrincipalRepaymentMode.FIXED, withdrawal=None, term=None):
    return PlanConfiguration(
        interest_rate=Decimal(str(rate)),
        interest_type=interest_type,
        tenure=tenure,
        payment_type=PaymentType.INTEREST_ONLY,
        interest_only=InterestOnlyConfig(
            payout_frequency=PayoutFrequency.MONTHLY,
            repayment_mode=mode,
            withdrawal_after_percent=Decimal(str(withdrawal)) if withdrawal is not None else None,
            settlement_term=term
        )
    )


def with_principal_plan(rate, tenure, percent=100, frequency=PayoutFrequency.MONTHLY,
                        interest_type=InterestType.REDUCING, custom_periods=None):
    return PlanConfiguration(
        interest_rate=Decimal(str(rate)),
        interest_type=interest_type,
        tenure=tenure,
        payment_type=PaymentType.INTEREST_WITH_PRINCIPAL,
        interest_with_principal=InterestWithPrincipalConfig(
            repayment_percent=Decimal(str(percent)),
            payout_frequency=frequency,
            custom_frequency_periods=custom_periods
        )
    )


START = date(2024, 1, 15)


class TestDueDates:
    """Test calendar month arithmetic"""

    def test_plain_month_steps(self):
        assert add_months(date(2024, 1, 15), 1) == date(2024, 2, 15)
        assert add_months(date(2024, 11, 15), 2) == date(2025, 1, 15)
        assert add_months(date(2024, 1, 15), 12) == date(2025, 1, 15)

    def test_month_end_clamps(self):
        start = date(2024, 1, 31)
        assert add_months(start, 1) == date(2024, 2, 29)
        assert add_months(start, 2) == date(2024, 3, 31)
        assert add_months(start, 3) == date(2024, 4, 30)
        assert add_months(date(2023, 1, 31), 1) == date(2023, 2, 28)

    def test_schedule_due_dates_from_start(self):
        schedule = generate_schedule(interest_only_plan(3, 3), Decimal('1000'), date(2024, 1, 31))
        assert [item.due_date for item in schedule] == [
            date(2024, 2, 29), date(2024, 3, 31), date(2024, 4, 30)
        ]

    def test_datetime_start_uses_calendar_date(self):
        schedule = generate_schedule(interest_only_plan(3, 1), Decimal('1000'), datetime(2024, 1, 15, 23, 30))
        assert schedule[0].due_date == date(2024, 2, 15)


class TestInterestOnlyFixed:
    """Interest every period, full principal at maturity"""

    def test_flat_fixed_schedule(self):
        schedule = generate_schedule(interest_only_plan(3, 12), Decimal('100000'), START)

        assert len(schedule) == 12
        for item in schedule[:-1]:
            assert item.interest_amount == Decimal('3000.00')
            assert item.principal_amount == Decimal('0.00')
            assert item.total_amount == Decimal('3000.00')
            assert item.remaining_principal == Decimal('100000.00')
            assert item.status == ScheduleItemStatus.PENDING
            assert item.paid_amount == Decimal('0')

        last = schedule[-1]
        assert last.principal_amount == Decimal('100000.00')
        assert last.total_amount == Decimal('103000.00')
        assert last.remaining_principal == Decimal('0.00')

        totals = summarize_schedule(schedule)
        assert totals['total_interest'] == Decimal('36000.00')
        assert totals['total_principal'] == Decimal('100000.00')

    def test_reducing_fixed_matches_flat(self):
        """Nothing is repaid before maturity, so the base never shrinks"""
        flat = generate_schedule(interest_only_plan(2, 6), Decimal('50000'), START)
        reducing = generate_schedule(
            interest_only_plan(2, 6, interest_type=InterestType.REDUCING), Decimal('50000'), START
        )
        assert [i.interest_amount for i in flat] == [i.interest_amount for i in reducing]

    def test_single_period_tenure(self):
        schedule = generate_schedule(interest_only_plan(5, 1), Decimal('2000'), START)
        assert len(schedule) == 1
        assert schedule[0].interest_amount == Decimal('100.00')
        assert schedule[0].principal_amount == Decimal('2000.00')
        assert schedule[0].remaining_principal == Decimal('0.00')


class TestInterestOnlyFlexible:
    """Principal settled in instalments after part of the tenure"""

    def test_settlement_start_period(self):
        assert settlement_start_period(12, Decimal('50')) == 6
        assert settlement_start_period(12, Decimal('75')) == 9
        assert settlement_start_period(10, Decimal('33')) == 4
        assert settlement_start_period(12, Decimal('0')) == 0

    def test_flat_flexible_settles_over_term(self):
        config = interest_only_plan(1, 12, mode=PrincipalRepaymentMode.FLEXIBLE, withdrawal=50, term=4)
        schedule = generate_schedule(config, Decimal('12000'), START)

        principals = [item.principal_amount for item in schedule]
        assert principals[:5] == [Decimal('0.00')] * 5
        assert principals[5:9] == [Decimal('3000.00')] * 4
        assert principals[9:] == [Decimal('0.00')] * 3

        assert all(item.interest_amount == Decimal('120.00') for item in schedule)
        assert schedule[8].remaining_principal == Decimal('0.00')
        assert summarize_schedule(schedule)['total_interest'] == Decimal('1440.00')

    def test_term_longer_than_tenure_leaves_balloon(self):
        config = interest_only_plan(1, 12, mode=PrincipalRepaymentMode.FLEXIBLE, withdrawal=75, term=6)
        schedule = generate_schedule(config, Decimal('12000'), START)

        principals = [item.principal_amount for item in schedule]
        assert principals[8:11] == [Decimal('2000.00')] * 3
        assert principals[11] == Decimal('6000.00')
        assert sum(principals) == Decimal('12000.00')

    def test_reducing_flexible_interest_shrinks(self):
        config = interest_only_plan(
            1, 12, interest_type=InterestType.REDUCING,
            mode=PrincipalRepaymentMode.FLEXIBLE, withdrawal=50, term=4
        )
        schedule = generate_schedule(config, Decimal('12000'), START)

        interests = [item.interest_amount for item in schedule]
        assert interests[:6] == [Decimal('120.00')] * 6
        assert interests[6:9] == [Decimal('90.00'), Decimal('60.00'), Decimal('30.00')]
        assert interests[9:] == [Decimal('0.00')] * 3
        assert sum(interests) == Decimal('900.00')


class TestInterestWithPrincipal:
    """Interest plus principal on each payout event"""

    def test_reducing_monthly_full_repayment(self):
        schedule = generate_schedule(with_principal_plan(2, 6), Decimal('60000'), START)

        assert [item.interest_amount for item in schedule] == [
            Decimal('1200.00'), Decimal('1000.00'), Decimal('800.00'),
            Decimal('600.00'), Decimal('400.00'), Decimal('200.00')
        ]
        assert all(item.principal_amount == Decimal('10000.00') for item in schedule)
        assert [item.remaining_principal for item in schedule] == [
            Decimal('50000.00'), Decimal('40000.00'), Decimal('30000.00'),
            Decimal('20000.00'), Decimal('10000.00'), Decimal('0.00')
        ]
        assert summarize_schedule(schedule)['total_interest'] == Decimal('4200.00')

    def test_flat_monthly_keeps_interest_constant(self):
        schedule = generate_schedule(
            with_principal_plan(2, 6, interest_type=InterestType.FLAT), Decimal('60000'), START
        )
        assert all(item.interest_amount == Decimal('1200.00') for item in schedule)
        assert all(item.total_amount == Decimal('11200.00') for item in schedule)

    def test_quarterly_payout_events(self):
        assert payout_event_count(12, 3) == 4
        assert payout_event_count(10, 3) == 4

        schedule = generate_schedule(
            with_principal_plan(1, 12, frequency=PayoutFrequency.QUARTERLY), Decimal('12000'), START
        )
        paying = [item.period for item in schedule if item.principal_amount > 0]
        assert paying == [3, 6, 9, 12]
        assert all(find_item(schedule, p).principal_amount == Decimal('3000.00') for p in paying)

    def test_custom_frequency(self):
        schedule = generate_schedule(
            with_principal_plan(1, 8, frequency=PayoutFrequency.CUSTOM, custom_periods=4),
            Decimal('8000'), START
        )
        paying = [item.period for item in schedule if item.principal_amount > 0]
        assert paying == [4, 8]

    def test_partial_repayment_leaves_balloon(self):
        schedule = generate_schedule(
            with_principal_plan(1, 12, percent=50, interest_type=InterestType.FLAT), Decimal('12000'), START
        )
        assert all(item.principal_amount == Decimal('500.00') for item in schedule[:11])
        assert schedule[-1].principal_amount == Decimal('6500.00')
        assert schedule[-1].remaining_principal == Decimal('0.00')

    def test_zero_percent_repays_at_maturity(self):
        schedule = generate_schedule(with_principal_plan(1, 4, percent=0), Decimal('4000'), START)
        assert [item.principal_amount for item in schedule] == [
            Decimal('0.00'), Decimal('0.00'), Decimal('0.00'), Decimal('4000.00')
        ]

    def test_payoff_period_absorbs_cent_drift(self):
        schedule = generate_schedule(with_principal_plan(1, 3), Decimal('10000'), START)

        assert [item.principal_amount for item in schedule] == [
            Decimal('3333.33'), Decimal('3333.33'), Decimal('3333.34')
        ]
        assert [item.interest_amount for item in schedule] == [
            Decimal('100.00'), Decimal('66.67'), Decimal('33.33')
        ]
        assert [item.remaining_principal for item in schedule] == [
            Decimal('6666.67'), Decimal('3333.33'), Decimal('0.00')
        ]


class TestScheduleProperties:
    """Invariants that hold for every configuration"""

    CONFIGS = [
        interest_only_plan(3, 12),
        interest_only_plan(1.25, 7, interest_type=InterestType.REDUCING,
                           mode=PrincipalRepaymentMode.FLEXIBLE, withdrawal=40, term=3),
        interest_only_plan(2, 9, mode=PrincipalRepaymentMode.FLEXIBLE, withdrawal=100, term=2),
        with_principal_plan(1.5, 7),
        with_principal_plan(2.75, 11, percent=60, frequency=PayoutFrequency.QUARTERLY),
        with_principal_plan(0.9, 24, percent=100, frequency=PayoutFrequency.HALF_YEARLY,
                            interest_type=InterestType.FLAT),
    ]

    @pytest.mark.parametrize("config", CONFIGS)
    @pytest.mark.parametrize("principal", [Decimal('1000'), Decimal('33333.33'), Decimal('987654.32')])
    def test_invariants(self, config, principal):
        schedule = generate_schedule(config, principal, START)

        assert [item.period for item in schedule] == list(range(1, config.tenure + 1))
        assert sum(item.principal_amount for item in schedule) == principal
        assert schedule[-1].remaining_principal == Decimal('0.00')

        previous_due = START
        for item in schedule:
            assert item.total_amount == item.interest_amount + item.principal_amount
            assert item.principal_amount >= 0
            assert item.interest_amount >= 0
            assert item.due_date > previous_due
            previous_due = item.due_date

        remaining = [item.remaining_principal for item in schedule]
        assert remaining == sorted(remaining, reverse=True)

    def test_zero_rate_pays_no_interest(self):
        schedule = generate_schedule(interest_only_plan(0, 6), Decimal('5000'), START)
        assert all(item.interest_amount == Decimal('0.00') for item in schedule)

    def test_negative_principal_rejected(self):
        with pytest.raises(InvalidAmount):
            generate_schedule(interest_only_plan(3, 12), Decimal('-1'), START)

    def test_deterministic(self):
        config = with_principal_plan(1.5, 7)
        assert generate_schedule(config, Decimal('7777'), START) == generate_schedule(config, Decimal('7777'), START)


class TestScheduleItem:
    """Test schedule item helpers"""

    def make_item(self, paid=Decimal('0')):
        return ScheduleItem(
            period=1,
            due_date=date(2024, 2, 15),
            interest_amount=Decimal('100.00'),
            principal_amount=Decimal('400.00'),
            total_amount=Decimal('500.00'),
            remaining_principal=Decimal('600.00'),
            paid_amount=paid
        )

    def test_total_must_match_components(self):
        with pytest.raises(ValueError):
            ScheduleItem(
                period=1,
                due_date=date(2024, 2, 15),
                interest_amount=Decimal('100.00'),
                principal_amount=Decimal('400.00'),
                total_amount=Decimal('450.00'),
                remaining_principal=Decimal('600.00')
            )

    def test_paid_split(self):
        item = self.make_item(Decimal('150'))
        assert item.interest_paid == Decimal('100.00')
        assert item.principal_paid == Decimal('50.00')
        assert item.outstanding_amount == Decimal('350.00')

    def test_overpayment_outstanding_is_zero(self):
        item = self.make_item(Decimal('600'))
        assert item.outstanding_amount == Decimal('0')
        assert item.principal_paid == Decimal('500.00')

    def test_dict_form(self):
        data = self.make_item(Decimal('20')).to_dict()
        assert data['due_date'] == '2024-02-15'
        assert data['total_amount'] == '500.00'
        assert data['status'] == 'pending'
        assert ScheduleItem.from_dict(data) == self.make_item(Decimal('20'))
