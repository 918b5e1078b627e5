"""
Integration tests for the Investment Tracker API
Tests end-to-end workflows using FastAPI TestClient
"""

import pytest
from fastapi.testclient import TestClient

from investment_core.api import create_app
from investment_core.api.system import TrackerSystem, get_tracker_system
from investment_core.config import TrackerConfig
from investment_core.storage import InMemoryStorage


@pytest.fixture
def system():
    """Tracker system on in-memory storage"""
    return TrackerSystem(config=TrackerConfig(storage_backend="memory"), storage=InMemoryStorage())


@pytest.fixture
def client(system):
    """Test client with the tracker system dependency replaced"""
    app = create_app()
    app.dependency_overrides[get_tracker_system] = lambda: system
    yield TestClient(app)
    app.dependency_overrides.clear()


PLAN_PAYLOAD = {
    "name": "Monthly Income 12",
    "description": "Fixed monthly interest, principal at maturity",
    "configuration": {
        "interest_rate": "3",
        "interest_type": "flat",
        "tenure": 12,
        "payment_type": "interest_only",
        "interest_only": {"payout_frequency": "monthly", "repayment_mode": "fixed"}
    },
    "min_investment": "10000",
    "max_investment": "1000000",
    "risk_level": "low",
    "features": ["monthly payout"]
}


def create_plan(client, **overrides):
    r = client.post("/plans", json=dict(PLAN_PAYLOAD, **overrides))
    assert r.status_code == 201
    return r.json()


def create_investor(client, email="asha@example.com"):
    r = client.post("/investors", json={"name": "Asha Raman", "email": email, "phone": "+91 98765 43210"})
    assert r.status_code == 201
    return r.json()


def create_investment(client, principal="100000"):
    plan = create_plan(client)
    investor = create_investor(client)
    r = client.post("/investments", json={
        "investor_id": investor["id"],
        "plan_id": plan["id"],
        "principal": principal
    })
    assert r.status_code == 201
    return r.json()


class TestHealthEndpoints:
    """Test basic health and root endpoints"""

    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "healthy"

    def test_root(self, client):
        r = client.get("/")
        assert r.status_code == 200
        data = r.json()
        assert data["name"] == "Investment Tracker API"
        assert "plans" in data["endpoints"]


class TestPlanFlow:
    """End-to-end plan management tests"""

    def test_create_and_get_plan(self, client):
        plan = create_plan(client)
        assert plan["id"] == "PLAN0001"
        assert plan["config"]["interest_rate"] == "3"

        r = client.get(f"/plans/{plan['id']}")
        assert r.status_code == 200
        assert r.json()["name"] == "Monthly Income 12"

    def test_invalid_configuration(self, client):
        payload = dict(PLAN_PAYLOAD, configuration={
            "interest_rate": "3",
            "interest_type": "flat",
            "tenure": 12,
            "payment_type": "interest_only",
            "interest_only": {"payout_frequency": "monthly", "repayment_mode": "flexible"}
        })
        r = client.post("/plans", json=payload)
        assert r.status_code == 400
        assert r.json()["detail"]["error"] == "invalid_plan_configuration"
        assert r.json()["detail"]["field"] == "interest_only.withdrawal_after_percent"

    def test_unknown_enum_value(self, client):
        payload = dict(PLAN_PAYLOAD, configuration=dict(PLAN_PAYLOAD["configuration"], interest_type="compound"))
        r = client.post("/plans", json=payload)
        assert r.status_code == 400
        assert r.json()["detail"]["field"] == "configuration"

    def test_calculate(self, client):
        plan = create_plan(client)
        r = client.post(f"/plans/{plan['id']}/calculate", json={"principal": "100000", "start_date": "2024-01-15"})
        assert r.status_code == 200
        data = r.json()
        assert data["total_interest"] == "36000.00"
        assert data["total_returns"] == "136000.00"
        assert data["maturity_date"] == "2025-01-15"
        assert len(data["schedule"]) == 12

    def test_calculate_outside_limits(self, client):
        plan = create_plan(client)
        r = client.post(f"/plans/{plan['id']}/calculate", json={"principal": "500"})
        assert r.status_code == 400
        assert r.json()["detail"]["error"] == "invalid_amount"

    def test_generate_schedule(self, client):
        plan = create_plan(client)
        r = client.post(f"/plans/{plan['id']}/generate-schedule",
                        json={"principal": "100000", "start_date": "2024-01-31"})
        assert r.status_code == 200
        schedule = r.json()["schedule"]
        assert schedule[0]["due_date"] == "2024-02-29"
        assert schedule[11]["total_amount"] == "103000.00"

    def test_deactivate_and_list(self, client):
        plan = create_plan(client)
        r = client.post(f"/plans/{plan['id']}/deactivate")
        assert r.status_code == 200
        assert r.json()["is_active"] is False

        assert client.get("/plans?active_only=true").json()["plans"] == []
        assert len(client.get("/plans").json()["plans"]) == 1

    def test_missing_plan(self, client):
        r = client.get("/plans/PLAN9999")
        assert r.status_code == 404
        assert r.json()["detail"]["error"] == "not_found"


class TestInvestorFlow:
    """End-to-end investor tests"""

    def test_create_and_get_investor(self, client):
        investor = create_investor(client)
        assert investor["id"] == "INV000001"

        r = client.get(f"/investors/{investor['id']}")
        assert r.status_code == 200
        assert r.json()["roi_percent"] == "0"

    def test_duplicate_email(self, client):
        create_investor(client)
        r = client.post("/investors", json={"name": "Other", "email": "ASHA@example.com"})
        assert r.status_code == 409
        assert r.json()["detail"]["error"] == "duplicate_record"

    def test_invalid_email(self, client):
        r = client.post("/investors", json={"name": "Other", "email": "not-an-email"})
        assert r.status_code == 400
        assert r.json()["detail"]["error"] == "invalid_field"

    def test_status_change_and_filter(self, client):
        investor = create_investor(client)
        r = client.post(f"/investors/{investor['id']}/status", json={"status": "blocked"})
        assert r.status_code == 200
        assert r.json()["status"] == "blocked"

        assert client.get("/investors?status=active").json()["investors"] == []
        assert len(client.get("/investors?status=blocked").json()["investors"]) == 1
        assert client.get("/investors?status=unknown").status_code == 400


class TestInvestmentFlow:
    """End-to-end investment, payment and reporting tests"""

    def test_create_investment(self, client):
        investment = create_investment(client)
        assert investment["id"] == "INVST000001"
        assert investment["status"] == "active"
        assert investment["total_expected_returns"] == "136000.00"
        assert investment["remaining_amount"] == "136000.00"
        assert len(investment["schedule"]) == 12

        r = client.get(f"/investments/{investment['id']}/schedule")
        assert r.status_code == 200
        assert r.json()["schedule"][0]["status"] == "pending"

        r = client.get(f"/investors/{investment['investor_id']}/investments")
        assert [i["id"] for i in r.json()["investments"]] == [investment["id"]]

    def test_create_investment_below_minimum(self, client):
        plan = create_plan(client)
        investor = create_investor(client)
        r = client.post("/investments", json={
            "investor_id": investor["id"], "plan_id": plan["id"], "principal": "5000"
        })
        assert r.status_code == 400
        assert r.json()["detail"]["error"] == "invalid_amount"

    def test_record_payment(self, client):
        investment = create_investment(client)
        r = client.post("/payments", json={
            "investment_id": investment["id"],
            "period_index": 1,
            "amount": "3500",
            "payment_method": "bank_transfer",
            "reference_number": "UTR123"
        })
        assert r.status_code == 201
        data = r.json()
        assert data["payment"]["id"] == "PAY00000001"
        assert data["payment"]["breakdown"] == {
            "interest": "3000.00", "principal": "500.00", "penalty": "0", "bonus": "0"
        }
        assert data["schedule_item"]["status"] == "paid"
        assert data["investment"]["remaining_amount"] == "132500.00"

        r = client.get(f"/payments/{data['payment']['id']}")
        assert r.status_code == 200
        assert r.json()["reference_number"] == "UTR123"

        r = client.get(f"/investments/{investment['id']}/payments")
        assert len(r.json()["payments"]) == 1

    def test_payment_with_breakdown_mismatch(self, client):
        investment = create_investment(client)
        r = client.post("/payments", json={
            "investment_id": investment["id"],
            "period_index": 1,
            "amount": "3000",
            "payment_method": "cash",
            "breakdown": {"interest": "2000", "principal": "500"}
        })
        assert r.status_code == 400
        assert r.json()["detail"]["error"] == "breakdown_mismatch"

    def test_payment_errors(self, client):
        investment = create_investment(client)
        base = {"investment_id": investment["id"], "period_index": 1, "amount": "100", "payment_method": "cash"}

        assert client.post("/payments", json=dict(base, period_index=13)).status_code == 404
        assert client.post("/payments", json=dict(base, amount="0")).status_code == 400
        assert client.post("/payments", json=dict(base, amount="abc")).status_code == 400
        assert client.post("/payments", json=dict(base, payment_method="barter")).status_code == 400
        assert client.post("/payments", json=dict(base, investment_id="INVST999999")).status_code == 404
        assert client.get("/payments/PAY99999999").status_code == 404

    @pytest.mark.parametrize("amount", ["Infinity", "-Infinity", "NaN", "sNaN"])
    def test_non_finite_payment_rejected(self, client, amount):
        investment = create_investment(client)
        r = client.post("/payments", json={
            "investment_id": investment["id"],
            "period_index": 1,
            "amount": amount,
            "payment_method": "cash"
        })
        assert r.status_code == 400
        assert r.json()["detail"]["error"] == "invalid_amount"
        assert r.json()["detail"]["field"] == "amount"

        stored = client.get(f"/investments/{investment['id']}").json()
        assert stored["status"] == "active"
        assert stored["total_paid_amount"] == "0"
        assert stored["remaining_amount"] == "136000.00"

    def test_non_finite_breakdown_rejected(self, client):
        investment = create_investment(client)
        r = client.post("/payments", json={
            "investment_id": investment["id"],
            "period_index": 1,
            "amount": "3000",
            "payment_method": "cash",
            "breakdown": {"interest": "NaN", "principal": "0"}
        })
        assert r.status_code == 400
        assert r.json()["detail"]["field"] == "breakdown.interest"

    def test_non_finite_principal_rejected(self, client):
        plan = create_plan(client)
        investor = create_investor(client)
        r = client.post("/investments", json={
            "investor_id": investor["id"], "plan_id": plan["id"], "principal": "Infinity"
        })
        assert r.status_code == 400
        assert r.json()["detail"]["error"] == "invalid_amount"

        r = client.post(f"/plans/{plan['id']}/calculate", json={"principal": "NaN"})
        assert r.status_code == 400

    def test_close_and_timeline(self, client):
        investment = create_investment(client)
        r = client.post(f"/investments/{investment['id']}/close", json={"reason": "Early exit"})
        assert r.status_code == 200
        assert r.json()["status"] == "closed"

        r = client.post(f"/investments/{investment['id']}/default", json={})
        assert r.status_code == 400
        assert r.json()["detail"]["error"] == "invalid_investment_state"

        r = client.post(f"/investments/{investment['id']}/notes", json={"note": "Settled by cheque"})
        assert r.status_code == 201

        events = client.get(f"/investments/{investment['id']}/timeline").json()["events"]
        assert [e["event_type"] for e in events] == ["investment_created", "status_changed", "note_added"]

        r = client.get("/investments?status=closed")
        assert [i["id"] for i in r.json()["investments"]] == [investment["id"]]

    def test_refresh(self, client):
        investment = create_investment(client)
        r = client.post(f"/investments/{investment['id']}/refresh")
        assert r.status_code == 200
        assert r.json()["status"] == "active"

    def test_missing_investment(self, client):
        assert client.get("/investments/INVST999999").status_code == 404
        assert client.get("/investments/INVST999999/timeline").status_code == 404


class TestPaymentEndpoints:
    """Payment listing, bookkeeping updates and statistics"""

    @pytest.fixture
    def payments(self, client):
        investment = create_investment(client)
        for period, amount, method, reference in [
            (1, "3000", "bank_transfer", "UTR-001"),
            (2, "1000", "cash", None),
        ]:
            r = client.post("/payments", json={
                "investment_id": investment["id"],
                "period_index": period,
                "amount": amount,
                "payment_method": method,
                "reference_number": reference
            })
            assert r.status_code == 201
        return investment

    def test_list_with_filters(self, client, payments):
        r = client.get("/payments")
        assert r.status_code == 200
        assert [p["id"] for p in r.json()["payments"]] == ["PAY00000001", "PAY00000002"]
        assert r.json()["count"] == 2

        r = client.get("/payments", params={"payment_method": "cash"})
        assert [p["id"] for p in r.json()["payments"]] == ["PAY00000002"]

        r = client.get("/payments", params={"search": "utr-001", "investment_id": payments["id"]})
        assert [p["id"] for p in r.json()["payments"]] == ["PAY00000001"]

        r = client.get("/payments", params={"status": "failed"})
        assert r.json()["payments"] == []

    def test_list_rejects_unknown_status(self, client, payments):
        assert client.get("/payments", params={"status": "lost"}).status_code == 400

    def test_update_payment(self, client, payments):
        r = client.put("/payments/PAY00000002", json={
            "status": "cancelled",
            "notes": "Counterfeit note",
            "verified_by": "auditor"
        })
        assert r.status_code == 200
        data = r.json()
        assert data["status"] == "cancelled"
        assert data["notes"] == "Counterfeit note"
        assert data["verified_by"] == "auditor"
        assert data["verified_at"] is not None

        r = client.get(f"/investments/{payments['id']}/timeline")
        assert r.json()["events"][-1]["event_type"] == "payment_updated"

        r = client.get("/payments", params={"status": "cancelled"})
        assert [p["id"] for p in r.json()["payments"]] == ["PAY00000002"]

    def test_update_errors(self, client, payments):
        assert client.put("/payments/PAY99999999", json={"status": "failed"}).status_code == 404
        assert client.put("/payments/PAY00000001", json={"payment_method": "barter"}).status_code == 400

    def test_statistics(self, client, payments):
        client.put("/payments/PAY00000002", json={"status": "failed"})

        r = client.get("/payments/stats/overview")
        assert r.status_code == 200
        totals = r.json()["totals"]
        assert totals["total_payments"] == 2
        assert totals["payments_by_status"]["failed"] == 1
        assert totals["total_amount"] == "3000"
        assert r.json()["data"] == [{"method": "bank_transfer", "count": 1, "amount": "3000"}]


class TestReportEndpoints:
    """Report endpoints return serialized report results"""

    def test_overview(self, client):
        create_investment(client)
        r = client.get("/reports/overview")
        assert r.status_code == 200
        totals = r.json()["totals"]
        assert totals["total_investments"] == 1
        assert totals["total_principal"] == "100000"

    def test_overdue_and_upcoming(self, client):
        create_investment(client)
        assert client.get("/reports/overdue").json()["data"] == []
        r = client.get("/reports/upcoming?days=3")
        assert r.status_code == 200
        assert r.json()["metadata"]["days"] == 3

    def test_plan_performance(self, client):
        create_investment(client)
        data = client.get("/reports/plan-performance").json()["data"]
        assert data[0]["plan_id"] == "PLAN0001"
        assert data[0]["investments"] == 1

    def test_investor_summary(self, client):
        investment = create_investment(client)
        r = client.get(f"/investors/{investment['investor_id']}/summary")
        assert r.status_code == 200
        assert r.json()["totals"]["total_investments"] == 1
