"""
Test suite for plan management and returns previews
"""

import threading
import pytest
from decimal import Decimal
from datetime import date

from investment_core.errors import InvalidAmount, InvalidPlanConfiguration, NotFound
from investment_core.plan_config import (
    PlanConfiguration, InterestOnlyConfig, InterestWithPrincipalConfig,
    InterestType, PaymentType, PayoutFrequency, PrincipalRepaymentMode
)
from investment_core.plans import PlanManager, Plan, RiskLevel
from investment_core.storage import InMemoryStorage
from investment_core.timeline import ActivityTimeline, TimelineEventType


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def timeline(storage):
    return ActivityTimeline(storage)


@pytest.fixture
def plan_manager(storage, timeline):
    return PlanManager(storage, timeline)


@pytest.fixture
def fixed_config():
    return PlanConfiguration(
        interest_rate=Decimal('3'),
        interest_type=InterestType.FLAT,
        tenure=12,
        payment_type=PaymentType.INTEREST_ONLY,
        interest_only=InterestOnlyConfig(
            payout_frequency=PayoutFrequency.MONTHLY,
            repayment_mode=PrincipalRepaymentMode.FIXED
        )
    )


@pytest.fixture
def plan(plan_manager, fixed_config):
    return plan_manager.create_plan(
        name="Monthly Income 12",
        config=fixed_config,
        min_investment=Decimal('10000'),
        max_investment=Decimal('500000'),
        description="Fixed monthly interest, principal at maturity",
        risk_level=RiskLevel.LOW,
        features=["monthly payout"]
    )


class TestPlanCreation:
    """Test creating plans"""

    def test_create_plan(self, plan, plan_manager, timeline):
        assert plan.id == "PLAN0001"
        assert plan.name == "Monthly Income 12"
        assert plan.is_active
        assert plan.risk_level == RiskLevel.LOW

        stored = plan_manager.get_plan("PLAN0001")
        assert stored.config == plan.config
        assert stored.min_investment == Decimal('10000')
        assert stored.features == ["monthly payout"]

        events = timeline.events_for("plan", "PLAN0001")
        assert [e.event_type for e in events] == [TimelineEventType.PLAN_CREATED]

    def test_sequential_ids(self, plan_manager, fixed_config):
        first = plan_manager.create_plan(name="A", config=fixed_config)
        second = plan_manager.create_plan(name="B", config=fixed_config)
        assert (first.id, second.id) == ("PLAN0001", "PLAN0002")

    def test_default_limits(self, plan_manager, fixed_config):
        plan = plan_manager.create_plan(name="Defaults", config=fixed_config)
        assert plan.min_investment == Decimal('1000')
        assert plan.max_investment == Decimal('10000000')

    def test_minimum_below_floor_rejected(self, plan_manager, fixed_config):
        with pytest.raises(InvalidPlanConfiguration) as exc_info:
            plan_manager.create_plan(name="Tiny", config=fixed_config, min_investment=500)
        assert exc_info.value.field == "min_investment"

    def test_max_below_min_rejected(self, plan_manager, fixed_config):
        with pytest.raises(InvalidPlanConfiguration) as exc_info:
            plan_manager.create_plan(name="Bad", config=fixed_config, min_investment=5000, max_investment=2000)
        assert exc_info.value.field == "max_investment"

    @pytest.mark.parametrize("name", ["", "   ", "x" * 101])
    def test_invalid_name(self, plan_manager, fixed_config, name):
        with pytest.raises(InvalidPlanConfiguration) as exc_info:
            plan_manager.create_plan(name=name, config=fixed_config)
        assert exc_info.value.field == "name"

    def test_plan_dict_form(self, plan):
        assert Plan.from_dict(plan.to_dict()) == plan


class TestPlanQueries:
    """Test lookup and listing"""

    def test_missing_plan(self, plan_manager):
        assert plan_manager.get_plan("PLAN9999") is None
        with pytest.raises(NotFound):
            plan_manager.get_plan_or_raise("PLAN9999")

    def test_list_filters(self, plan_manager, fixed_config):
        plan_manager.create_plan(name="Low", config=fixed_config, risk_level=RiskLevel.LOW)
        plan_manager.create_plan(name="High", config=fixed_config, risk_level=RiskLevel.HIGH)
        plan_manager.create_plan(name="Retired", config=fixed_config, is_active=False)

        assert [p.name for p in plan_manager.list_plans()] == ["Low", "High", "Retired"]
        assert [p.name for p in plan_manager.list_plans(active_only=True)] == ["Low", "High"]
        assert [p.name for p in plan_manager.list_plans(risk_level=RiskLevel.HIGH)] == ["High"]

    def test_load_configuration(self, plan, plan_manager, fixed_config):
        assert plan_manager.load_configuration(plan.id) == fixed_config


class TestPlanUpdates:
    """Test plan changes"""

    def test_deactivate_and_activate(self, plan, plan_manager):
        assert not plan_manager.deactivate_plan(plan.id).is_active
        assert not plan_manager.get_plan(plan.id).is_active
        assert plan_manager.activate_plan(plan.id).is_active

    def test_update_fields(self, plan, plan_manager, timeline):
        updated = plan_manager.update_plan(
            plan.id, user_id="ops_user", description="Revised", max_investment="750000", risk_level="medium"
        )
        assert updated.description == "Revised"
        assert updated.max_investment == Decimal('750000')
        assert updated.risk_level == RiskLevel.MEDIUM

        events = timeline.events_for("plan", plan.id)
        assert events[-1].event_type == TimelineEventType.PLAN_UPDATED
        assert events[-1].metadata == {'changes': ['description', 'max_investment', 'risk_level']}

    def test_update_config(self, plan, plan_manager):
        new_config = PlanConfiguration(
            interest_rate=Decimal('2'),
            interest_type=InterestType.REDUCING,
            tenure=6,
            payment_type=PaymentType.INTEREST_WITH_PRINCIPAL,
            interest_with_principal=InterestWithPrincipalConfig(
                repayment_percent=Decimal('100'),
                payout_frequency=PayoutFrequency.MONTHLY
            )
        )
        assert plan_manager.update_plan(plan.id, config=new_config).config == new_config

    def test_unknown_field_rejected(self, plan, plan_manager):
        with pytest.raises(InvalidPlanConfiguration) as exc_info:
            plan_manager.update_plan(plan.id, total_investors=5)
        assert exc_info.value.field == "total_investors"

    def test_update_missing_plan(self, plan_manager):
        with pytest.raises(NotFound):
            plan_manager.update_plan("PLAN9999", description="x")


class TestReturnsPreview:
    """Test the calculate endpoint logic"""

    def test_calculate(self, plan, plan_manager):
        preview = plan_manager.calculate(plan.id, Decimal('100000'), date(2024, 1, 15))

        assert preview.returns.total_interest == Decimal('36000.00')
        assert preview.returns.total_returns == Decimal('136000.00')
        assert preview.start_date == date(2024, 1, 15)
        assert preview.maturity_date == date(2025, 1, 15)
        assert len(preview.schedule) == 12

        data = preview.to_dict()
        assert data['plan'] == {
            'id': plan.id,
            'name': "Monthly Income 12",
            'interest_rate': '3',
            'interest_type': 'flat',
            'tenure': 12,
            'payment_type': 'interest_only'
        }
        assert data['schedule'][11]['total_amount'] == '103000.00'

    @pytest.mark.parametrize("principal", ["9999.99", "500000.01"])
    def test_outside_limits(self, plan, plan_manager, principal):
        with pytest.raises(InvalidAmount) as exc_info:
            plan_manager.calculate(plan.id, principal)
        assert exc_info.value.field == "principal"

    def test_non_positive_principal(self, plan, plan_manager):
        with pytest.raises(InvalidAmount) as exc_info:
            plan_manager.calculate(plan.id, 0)
        assert exc_info.value.constraint == "value > 0"

    def test_preview_schedule_skips_limits(self, plan, plan_manager):
        schedule = plan_manager.preview_schedule(plan.id, Decimal('5000'), date(2024, 1, 15))
        assert schedule[0].interest_amount == Decimal('150.00')

        with pytest.raises(InvalidAmount):
            plan_manager.preview_schedule(plan.id, Decimal('-5'), date(2024, 1, 15))


class TestConcurrentPlanWrites:
    """Statistics refreshes and operator updates on one plan run one at a time"""

    def test_deactivate_during_statistics_refresh(self, plan, plan_manager, storage, monkeypatch):
        reading = threading.Event()
        release = threading.Event()
        original_find = storage.find

        def paused_find(table, filters):
            rows = original_find(table, filters)
            if table == "investments" and 'status' not in filters:
                reading.set()
                release.wait(5)
            return rows

        monkeypatch.setattr(storage, "find", paused_find)

        refresher = threading.Thread(target=plan_manager.update_statistics, args=(plan.id,))
        refresher.start()
        assert reading.wait(5)

        deactivator = threading.Thread(target=plan_manager.deactivate_plan, args=(plan.id,))
        deactivator.start()
        deactivator.join(0.2)
        assert deactivator.is_alive()

        release.set()
        refresher.join(5)
        deactivator.join(5)

        assert plan_manager.get_plan(plan.id).is_active is False
