"""
Integration tests for the Lending Back Office API
Tests end-to-end workflows using FastAPI TestClient
"""

import base64
from decimal import Decimal
from datetime import date

import pytest
from fastapi.testclient import TestClient

from core_lending.api import create_app
from core_lending.api.dependencies import LendingSystem
from core_lending.assistant import FALLBACK_TIP_DISABLED
from core_lending.auth import InMemoryAuthService
from core_lending.documents import DocumentGenerator, DocumentRenderError
from core_lending.storage import InMemoryBackend


@pytest.fixture
def system(config, renderer):
    """Back office on the in-memory backend with a recording PDF renderer"""
    return LendingSystem(
        config, InMemoryBackend(annual_interest_rate=Decimal("96")), InMemoryAuthService(),
        documents=DocumentGenerator(config, renderer=renderer)
    )


@pytest.fixture
def client(system):
    with TestClient(create_app(system)) as client:
        yield client


def encoded(content: bytes) -> str:
    return base64.b64encode(content).decode()


def submit_request(client, id_number="X1234567L", amount="600"):
    r = client.post("/requests", json={
        "full_name": "Luis Gil",
        "id_number": id_number,
        "loan_amount": amount,
        "address": "Calle Mayor 1",
        "phone": "600111222",
        "loan_reason": "Car repair",
        "signature": "data:image/png;base64,AAAA",
        "front_id_image": "data:image/jpeg;base64," + encoded(b"front"),
        "back_id_image": encoded(b"back"),
    })
    assert r.status_code == 201
    return r.json()


def create_client_loan(client, name="Ana Ruiz", amount="1000", term=12, start_date=None):
    r = client.post("/clients", json={
        "name": name,
        "amount": amount,
        "term_months": term,
        "start_date": (start_date or date.today()).isoformat(),
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
        assert data["name"] == "Lending Back Office API"
        assert "loans" in data["endpoints"]
        assert data["endpoints"]["data"] == "/data"


class TestRequestFlow:
    """End-to-end loan request tests"""

    def test_submit_and_get(self, client):
        created = submit_request(client)
        assert created["status"] == "pending"
        assert created["has_signature"] is True
        assert created["loan_amount"] == "600"

        r = client.get(f"/requests/{created['id']}")
        assert r.status_code == 200
        assert r.json()["full_name"] == "Luis Gil"

    def test_invalid_image(self, client):
        r = client.post("/requests", json={
            "full_name": "Luis Gil", "id_number": "X1", "loan_amount": "600",
            "front_id_image": "%%%not-base64%%%", "back_id_image": encoded(b"back"),
        })
        assert r.status_code == 422
        assert r.json()["detail"]["field"] == "front_id_image"

    def test_invalid_amount(self, client):
        r = client.post("/requests", json={
            "full_name": "Luis Gil", "id_number": "X1", "loan_amount": "0",
            "front_id_image": encoded(b"front"), "back_id_image": encoded(b"back"),
        })
        assert r.status_code == 422
        assert r.json()["detail"]["field"] == "loan_amount"

    def test_review_and_status_lookup(self, client):
        created = submit_request(client)

        r = client.patch(f"/requests/{created['id']}/status", json={"status": "under_review"})
        assert r.status_code == 200
        assert r.json()["status"] == "under_review"

        r = client.get("/requests", params={"status": "under_review"})
        assert r.json()["count"] == 1

        r = client.get("/requests/status/X1234567L")
        assert r.json()["found"] is True
        assert r.json()["status"] == "under_review"

        assert client.get("/requests/status/UNKNOWN").json() == {"found": False}

    def test_unknown_status(self, client):
        created = submit_request(client)
        r = client.patch(f"/requests/{created['id']}/status", json={"status": "approved-ish"})
        assert r.status_code == 422

    def test_approve(self, client, renderer):
        created = submit_request(client)

        r = client.post(f"/requests/{created['id']}/approve", json={"term_months": 6})
        assert r.status_code == 200
        result = r.json()

        assert client.get(f"/requests/{created['id']}").status_code == 404
        loan = client.get(f"/loans/{result['loan_id']}").json()
        assert loan["term"] == 6
        assert loan["client_id"] == result["client_id"]
        assert loan["contract_pdf_url"].endswith(f"contract_{created['id']}.pdf")
        assert "Luis Gil" in renderer.rendered[-1]

        clients = client.get("/clients").json()
        assert clients["count"] == 1
        assert clients["clients"][0]["name"] == "Luis Gil"

    def test_deny(self, client):
        created = submit_request(client)
        assert client.delete(f"/requests/{created['id']}").status_code == 200
        assert client.delete(f"/requests/{created['id']}").status_code == 404
        assert client.get("/requests").json()["count"] == 0


class TestLoanFlow:
    """End-to-end loan tests"""

    def test_create_and_list(self, client):
        created = create_client_loan(client)

        data = client.get("/loans").json()
        assert data["count"] == 1
        loan = data["loans"][0]
        assert loan["id"] == created["loan_id"]
        assert loan["current_status"] == "pending"
        assert abs(Decimal(loan["monthly_payment"]) - Decimal("132.70")) < Decimal("0.01")

        r = client.get(f"/clients/{created['client_id']}")
        assert r.status_code == 200
        assert [l["id"] for l in r.json()["loans"]] == [created["loan_id"]]

    def test_invalid_client_loan(self, client):
        r = client.post("/clients", json={"name": "Ana", "amount": "-5", "term_months": 12})
        assert r.status_code == 422
        assert r.json()["detail"]["field"] == "principal"

    def test_overdue_filter(self, client):
        create_client_loan(client, start_date=date(2024, 1, 15))
        r = client.get("/loans", params={"status": "overdue", "as_of": "2024-02-20"})
        assert r.json()["count"] == 1
        r = client.get("/loans", params={"status": "overdue", "as_of": "2024-02-10"})
        assert r.json()["count"] == 0

    def test_payments_until_paid(self, client):
        created = create_client_loan(client, term=2)
        loan_id = created["loan_id"]

        first = client.post(f"/loans/{loan_id}/payments").json()
        assert first["payments_made"] == 1
        second = client.post(f"/loans/{loan_id}/payments").json()
        assert second["status"] == "paid"
        assert second["next_due_date"] is None

        assert client.post(f"/loans/{loan_id}/payments").status_code == 422
        assert client.get("/loans/active").json()["count"] == 0

        r = client.post("/loans/archive-paid")
        assert r.json()["archived"] == 1
        assert client.get("/loans").json()["count"] == 0
        assert client.get("/loans", params={"include_archived": True}).json()["count"] == 1

        reputation = client.get("/clients/reputation").json()["clients"]
        assert reputation[0]["paid_loans"] == 1

    def test_schedule(self, client):
        created = create_client_loan(client, term=12)
        data = client.get(f"/loans/{created['loan_id']}/schedule").json()
        assert len(data["schedule"]) == 12

        indefinite = create_client_loan(client, name="Bea", term=0)
        assert client.get(f"/loans/{indefinite['loan_id']}/schedule").status_code == 422

    def test_update_and_delete(self, client):
        created = create_client_loan(client)
        loan_id = created["loan_id"]

        r = client.patch(f"/loans/{loan_id}", json={"amount": "2000", "term": 6})
        assert r.status_code == 200
        assert r.json()["amount"] == "2000"

        r = client.patch(f"/loans/{loan_id}", json={"status": "finished"})
        assert r.status_code == 422

        assert client.delete(f"/loans/{loan_id}").status_code == 200
        assert client.get(f"/loans/{loan_id}").status_code == 404

    def test_missing_client(self, client):
        assert client.get("/clients/nope").status_code == 404


class TestAccountingFlow:
    """End-to-end accounting tests"""

    def test_entries_and_summary(self, client):
        r = client.post("/accounting/entries", json={"type": "income", "amount": "50",
                                                     "description": "Late fee"})
        assert r.status_code == 201
        assert r.json()["type"] == "INCOME"

        client.post("/accounting/entries", json={"type": "EXPENSE", "amount": "20"})
        assert client.put("/accounting/initial-capital", json={"amount": "5000"}).status_code == 200
        assert client.get("/accounting/initial-capital").json() == {"initial_capital": "5000"}

        entries = client.get("/accounting/entries", params={"type": "expense"}).json()
        assert entries["count"] == 1

        summary = client.get("/accounting/summary").json()
        assert Decimal(summary["working_capital"]) == Decimal("5030")
        assert Decimal(summary["total_net_profit"]) == Decimal("30")

    def test_invalid_entry(self, client):
        r = client.post("/accounting/entries", json={"type": "GIFT", "amount": "5"})
        assert r.status_code == 422
        r = client.post("/accounting/entries", json={"type": "INCOME", "amount": "-5"})
        assert r.status_code == 422

    def test_delete_entry(self, client):
        entry = client.post("/accounting/entries", json={"type": "INCOME", "amount": "5"}).json()
        assert client.delete(f"/accounting/entries/{entry['id']}").status_code == 200
        assert client.delete(f"/accounting/entries/{entry['id']}").status_code == 404


class TestCalculator:
    """Test calculator endpoints"""

    def test_loan_parameters(self, client):
        r = client.post("/calculator/loan", json={"principal": "1000", "term_months": 12})
        data = r.json()
        assert abs(Decimal(data["monthly_payment"]) - Decimal("132.70")) < Decimal("0.01")
        assert data["indefinite"] is False

    def test_desired_payment(self, client):
        r = client.post("/calculator/desired-payment", json={
            "principal": "1000", "target_payment": "150", "start_date": "2024-01-31"
        })
        data = r.json()
        assert data["affordable"] is True
        assert data["calculated_term"] == len(data["schedule"])
        assert Decimal(data["monthly_payment"]) <= Decimal("150")

    def test_unaffordable(self, client):
        r = client.post("/calculator/desired-payment", json={
            "principal": "1000", "target_payment": "50"
        })
        assert r.status_code == 200
        data = r.json()
        assert data["affordable"] is False
        assert Decimal(data["minimum_payment"]) == Decimal("80")

    def test_allocation(self, client):
        r = client.post("/calculator/allocation", json={"amount": "200", "outstanding_balance": "1000"})
        data = r.json()
        assert Decimal(data["interest_part"]) == Decimal("80")
        assert Decimal(data["new_balance"]) == Decimal("880")

    def test_budget_and_savings(self, client):
        assert Decimal(client.post("/calculator/budget", json={"income": "2000"}).json()["needs"]) \
            == Decimal("1000")
        assert client.post("/calculator/savings-goal",
                           json={"goal": "1000", "monthly_contribution": "300"}).json()["months"] == 4
        assert client.post("/calculator/budget", json={"income": "0"}).status_code == 422


class TestDocuments:
    """Test PDF endpoints"""

    def test_contract_template(self, client):
        assert client.get("/documents/contract-template").json()["is_default"] is True
        assert client.put("/documents/contract-template",
                          json={"template": "Agreement for ${fullName}"}).status_code == 200
        data = client.get("/documents/contract-template").json()
        assert data == {"template": "Agreement for ${fullName}", "is_default": False}
        assert client.put("/documents/contract-template", json={"template": "  "}).status_code == 422

    def test_receipt(self, client, renderer):
        created = create_client_loan(client)
        r = client.post("/documents/receipt", json={"loan_id": created["loan_id"], "amount": "200"})

        assert r.status_code == 200
        assert r.headers["content-type"] == "application/pdf"
        assert r.content.startswith(b"%PDF")
        assert "Ana Ruiz" in renderer.rendered[-1]

    def test_client_report_and_request_summary(self, client):
        created = create_client_loan(client)
        assert client.get(f"/documents/clients/{created['client_id']}/report").status_code == 200
        assert client.get("/documents/clients/nope/report").status_code == 404

        request = submit_request(client)
        assert client.get(f"/documents/requests/{request['id']}/summary").status_code == 200

    def test_simulation(self, client):
        r = client.post("/documents/simulation", json={"principal": "1000", "target_payment": "150"})
        assert r.status_code == 200
        assert 'filename="simulation.pdf"' in r.headers["content-disposition"]

    def test_render_failure(self, client, system):
        def broken(html):
            raise DocumentRenderError("missing pango")

        system.documents.renderer = broken
        r = client.post("/documents/simulation", json={"principal": "1000", "target_payment": "150"})
        assert r.status_code == 503


class TestAssistantAndAuth:
    """Test AI helpers and operator sessions"""

    def test_tip_fallback(self, client):
        data = client.get("/assistant/tip").json()
        assert data["text"] == FALLBACK_TIP_DISABLED
        assert data["generated"] is False

    def test_welcome_fallback(self, client):
        data = client.get("/assistant/welcome/Ana").json()
        assert "Ana" in data["text"]

    def test_session(self, client):
        credentials = {"email": "ops@example.com", "password": "secret123"}
        assert client.post("/auth/sign-up", json=credentials).status_code == 201
        assert client.post("/auth/sign-up", json=credentials).status_code == 400

        r = client.post("/auth/sign-in", json=credentials)
        assert r.status_code == 200
        assert r.json()["access_token"]
        assert client.get("/auth/me").json()["email"] == "ops@example.com"

        client.post("/auth/sign-out")
        assert client.get("/auth/me").status_code == 401

    def test_wrong_password(self, client):
        client.post("/auth/sign-up", json={"email": "ops@example.com", "password": "secret123"})
        r = client.post("/auth/sign-in", json={"email": "ops@example.com", "password": "nope-nope"})
        assert r.status_code == 401

    def test_reset_password(self, client):
        assert client.post("/auth/reset-password", json={"email": "ops@example.com"}).status_code == 200


class TestDataBackup:
    """Test the JSON backup download"""

    def test_backup(self, client):
        created = create_client_loan(client)
        request = submit_request(client)

        r = client.get("/data/backup")
        assert r.status_code == 200
        assert f'filename="backup_{date.today().isoformat()}.json"' in r.headers["content-disposition"]
        backup = r.json()
        assert backup["app"] == "B.M Contigo"
        assert [row["id"] for row in backup["data"]["clients"]] == [created["client_id"]]
        assert [row["id"] for row in backup["data"]["loans"]] == [created["loan_id"]]
        assert backup["data"]["loans"][0]["amount"] == "1000"
        assert [row["id"] for row in backup["data"]["requests"]] == [request["id"]]

    def test_empty_backup(self, client):
        data = client.get("/data/backup").json()["data"]
        assert data == {"clients": [], "loans": [], "requests": []}
