"""
Integration tests for the Lending Core API
Tests end-to-end workflows using FastAPI TestClient
"""

import pytest
from fastapi.testclient import TestClient

from lending_core.api import app
from lending_core.api.dependencies import LendingSystem, get_lending_system
from lending_core.exceptions import (
    ErrorCode, ConcurrencyConflictError, CalendarServiceUnavailableError
)


PRODUCT_PAYLOAD = {
    "name": "Weekly Group Loan",
    "short_name": "WGL",
    "currency": "KES",
    "principal": "1000.00",
    "min_principal": "100.00",
    "max_principal": "5000.00",
    "number_of_repayments": 4,
    "repayment_every": 1,
    "repayment_frequency": "weeks",
    "interest_rate_per_period": "24",
    "interest_rate_frequency": "yearly",
    "minimum_days_between_disbursal_and_first_repayment": 7,
}


@pytest.fixture
def system():
    return LendingSystem()


@pytest.fixture
def client(system):
    """Test client bound to a fresh in-memory lending system"""
    app.dependency_overrides[get_lending_system] = lambda: system
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def product_id(client):
    r = client.post("/loanproducts", json=PRODUCT_PAYLOAD)
    assert r.status_code == 201
    return r.json()["product_id"]


def loan_payload(product_id, **overrides):
    payload = {
        "client_id": "client-1",
        "product_id": product_id,
        "principal": "1000.00",
        "submitted_on_date": "2014-09-04",
        "expected_disbursement_date": "2014-09-04",
        "first_repayment_date": "2014-09-11",
    }
    payload.update(overrides)
    return payload


class TestHealthEndpoints:
    """Test basic health endpoint"""

    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "healthy"


class TestLoanProductEndpoints:
    """Loan product management tests"""

    def test_get_product(self, client, product_id):
        r = client.get(f"/loanproducts/{product_id}")
        assert r.status_code == 200
        data = r.json()
        assert data["currency"] == "KES"
        assert data["minimum_days_between_disbursal_and_first_repayment"] == 7

    def test_list_products(self, client, product_id):
        r = client.get("/loanproducts")
        assert r.status_code == 200
        assert [p["id"] for p in r.json()["products"]] == [product_id]

    def test_unknown_product(self, client):
        r = client.get("/loanproducts/missing")
        assert r.status_code == 404
        assert r.json()["errors"][0]["code"] == ErrorCode.NOT_FOUND

    def test_default_currency(self, client):
        payload = {k: v for k, v in PRODUCT_PAYLOAD.items() if k not in ("currency", "short_name")}
        product_id = client.post("/loanproducts", json=payload).json()["product_id"]

        assert client.get(f"/loanproducts/{product_id}").json()["currency"] == "USD"

    def test_unsupported_currency(self, client):
        r = client.post("/loanproducts", json={**PRODUCT_PAYLOAD, "currency": "XYZ"})
        assert r.status_code == 400

    def test_invalid_product_rejected(self, client):
        r = client.post("/loanproducts", json={**PRODUCT_PAYLOAD, "days_in_year": 366})
        assert r.status_code == 403
        assert r.json()["errors"][0]["code"] == ErrorCode.INVALID_PRODUCT


class TestLoanFlow:
    """End-to-end loan lifecycle tests"""

    def test_submit_approve_disburse(self, client, product_id):
        r = client.post("/loans", json=loan_payload(product_id))
        assert r.status_code == 201
        loan_id = r.json()["loan_id"]
        assert r.json()["status"] == "pending"

        r = client.post(f"/loans/{loan_id}/approve", json={"approved_on_date": "2014-09-04"})
        assert r.status_code == 200
        assert r.json()["status"] == "approved"

        r = client.post(f"/loans/{loan_id}/disburse", json={"actual_disbursement_date": "2014-09-04"})
        assert r.status_code == 200
        assert r.json()["status"] == "active"

        r = client.get(f"/loans/{loan_id}/status")
        assert r.json() == {"loan_id": loan_id, "status": "active"}

        r = client.get(f"/loans/{loan_id}")
        data = r.json()
        assert data["disbursed_on_date"] == "2014-09-04"
        assert data["principal_display"] == "KES 1,000.00"
        assert len(data["status_history"]) == 3

    def test_gap_violation_returns_403(self, client, product_id):
        r = client.post("/loans", json=loan_payload(product_id, first_repayment_date="2014-09-05"))

        assert r.status_code == 403
        errors = r.json()["errors"]
        assert errors[0]["code"] == ErrorCode.MIN_DAYS_BETWEEN_DISBURSAL_AND_FIRST_REPAYMENT
        assert client.get("/loans").json()["loans"] == []

    def test_schedule(self, client, product_id):
        loan_id = client.post("/loans", json=loan_payload(product_id)).json()["loan_id"]

        r = client.get(f"/loans/{loan_id}/schedule")
        assert r.status_code == 200
        installments = r.json()["installments"]
        assert [i["due_date"] for i in installments] == [
            "2014-09-11", "2014-09-18", "2014-09-25", "2014-10-02"
        ]

    def test_invalid_transition_returns_403(self, client, product_id):
        loan_id = client.post("/loans", json=loan_payload(product_id)).json()["loan_id"]
        client.post(f"/loans/{loan_id}/reject", json={"rejected_on_date": "2014-09-05"})

        r = client.post(f"/loans/{loan_id}/approve", json={"approved_on_date": "2014-09-05"})

        assert r.status_code == 403
        assert r.json()["errors"][0]["code"] == ErrorCode.INVALID_TRANSITION

    def test_withdraw(self, client, product_id):
        loan_id = client.post("/loans", json=loan_payload(product_id)).json()["loan_id"]

        r = client.post(f"/loans/{loan_id}/withdraw", json={})

        assert r.status_code == 200
        assert r.json()["status"] == "withdrawn"

    def test_unknown_loan(self, client):
        r = client.get("/loans/missing")
        assert r.status_code == 404


class TestGroupCalendarEndpoints:
    """Group loan calendar alignment tests"""

    def test_group_loan_on_meeting_dates(self, client, product_id):
        r = client.post("/groups/group-1/calendars", json={
            "start_date": "2014-09-01",
            "frequency": 2,
            "repeats_on_day": 4
        })
        assert r.status_code == 201

        r = client.post("/loans", json=loan_payload(product_id, group_id="group-1"))
        assert r.status_code == 201

        r = client.get("/loans", params={"group_id": "group-1"})
        assert len(r.json()["loans"]) == 1

    def test_group_loan_off_meeting_dates(self, client, product_id):
        client.post("/groups/group-1/calendars", json={
            "start_date": "2014-09-01",
            "frequency": 2,
            "repeats_on_day": 1
        })

        r = client.post("/loans", json=loan_payload(product_id, group_id="group-1"))

        assert r.status_code == 403
        codes = [e["code"] for e in r.json()["errors"]]
        assert codes == [ErrorCode.REPAYMENT_NOT_MEETING_DATE] * 4

    def test_get_calendar(self, client):
        client.post("/groups/group-1/calendars", json={"start_date": "2014-09-01", "frequency": 3})

        r = client.get("/groups/group-1/calendars")
        assert r.status_code == 200
        assert r.json()["frequency"] == 3

        assert client.get("/groups/group-2/calendars").status_code == 404


class TestLoanTermOverrides:
    """Loan applications carrying their own repayment terms"""

    def test_weekly_terms_on_monthly_product(self, client):
        monthly = {**PRODUCT_PAYLOAD, "short_name": "MGL", "repayment_frequency": "months"}
        product_id = client.post("/loanproducts", json=monthly).json()["product_id"]

        r = client.post("/loans", json=loan_payload(
            product_id,
            number_of_repayments=12,
            repayment_every=1,
            repayment_frequency="weeks",
            loan_term_frequency=12,
            loan_term_frequency_type="weeks"
        ))
        assert r.status_code == 201
        loan_id = r.json()["loan_id"]

        terms = client.get(f"/loans/{loan_id}").json()["loan_terms"]
        assert terms["number_of_repayments"] == 12
        assert terms["repayment_frequency"] == "weeks"
        assert terms["loan_term_frequency_type"] == "weeks"
        assert terms["amortization_type"] is None

        installments = client.get(f"/loans/{loan_id}/schedule").json()["installments"]
        assert len(installments) == 12
        assert installments[-1]["due_date"] == "2014-11-27"

    def test_term_in_other_unit_mismatch(self, client, product_id):
        r = client.post("/loans", json=loan_payload(
            product_id, loan_term_frequency=1, loan_term_frequency_type="months"
        ))

        assert r.status_code == 403
        assert [e["code"] for e in r.json()["errors"]] == [ErrorCode.LOAN_TERM_MISMATCH]

    def test_invalid_repayment_count(self, client, product_id):
        r = client.post("/loans", json=loan_payload(product_id, number_of_repayments=0))

        assert r.status_code == 403
        assert r.json()["errors"][0]["code"] == ErrorCode.INVALID_LOAN_TERMS


class TestErrorMapping:
    """Lending errors map to HTTP status codes"""

    def test_oversized_principal_returns_403(self, client):
        unbounded = {k: v for k, v in PRODUCT_PAYLOAD.items() if k != "max_principal"}
        product_id = client.post("/loanproducts", json={**unbounded, "short_name": "UGL"}).json()["product_id"]

        r = client.post("/loans", json=loan_payload(product_id, principal="1e27"))

        assert r.status_code == 403
        assert r.json()["errors"][0]["code"] == ErrorCode.PRINCIPAL_PRECISION
        assert client.get("/loans").json()["loans"] == []

    def test_concurrency_conflict_returns_409(self, client, system, product_id, monkeypatch):
        loan_id = client.post("/loans", json=loan_payload(product_id)).json()["loan_id"]

        def approve(*args, **kwargs):
            raise ConcurrencyConflictError(f"Loan {loan_id} was modified concurrently")

        monkeypatch.setattr(system.loan_manager, "approve", approve)
        r = client.post(f"/loans/{loan_id}/approve", json={"approved_on_date": "2014-09-04"})

        assert r.status_code == 409
        assert r.json()["errors"][0]["code"] == ErrorCode.CONCURRENCY_CONFLICT

    def test_calendar_outage_returns_503(self, client, system, product_id, monkeypatch):
        def create_application(*args, **kwargs):
            raise CalendarServiceUnavailableError("Calendar backend timed out")

        monkeypatch.setattr(system.loan_manager, "create_application", create_application)
        r = client.post("/loans", json=loan_payload(product_id, group_id="group-1"))

        assert r.status_code == 503
        assert r.json()["errors"][0]["code"] == ErrorCode.CALENDAR_SERVICE_UNAVAILABLE
