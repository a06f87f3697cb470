"""
API Tests

Routes run against the temporary store and fake upstreams from conftest,
injected through dependency overrides.
"""

from datetime import date, datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from api.server import create_app
from api.services.dependencies import get_pipeline_services
from conftest import NON_TARGET_ACCOUNT, TARGET_ACCOUNT, pb_transaction
from connectors.base import FiscalSubmissionAmbiguous
from core.models.records import Payment


@pytest.fixture
def client(services):
    app = create_app()
    app.dependency_overrides[get_pipeline_services] = lambda: services
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def payment(store, make_company):
    company = make_company()
    return store.insert_payment(Payment(
        company_id=company.id,
        external_id="tx-1",
        amount="1500.00",
        sender_account=TARGET_ACCOUNT,
        sender_name="ФОП Іваненко",
        payment_date=datetime(2024, 5, 15, 10, 30),
        is_target=True,
    ))


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["services"] == {"api": "up", "storage": "up"}


class TestIngestRoutes:

    def test_ingest_one_company(self, client, bank_source, make_company):
        company = make_company()
        bank_source.transactions = [
            pb_transaction("1"),
            pb_transaction("2", account=NON_TARGET_ACCOUNT),
            pb_transaction("3", amount="oops"),
        ]

        response = client.post("/payments/ingest", json={
            "company_id": company.id,
            "start_date": "2024-05-01",
            "end_date": "2024-05-31",
        })

        assert response.status_code == 200
        [summary] = response.json()["tenants"]
        assert summary["status"] == "SUCCESS"
        assert summary["total_fetched"] == 3
        assert summary["new_payments"] == 2
        assert summary["duplicates"] == 0
        assert [e["external_id"] for e in summary["errors"]] == ["3"]
        assert summary["start_date"] == "2024-05-01"

        pending = client.get("/payments/pending", params={"company_id": company.id}).json()
        assert [p["external_id"] for p in pending] == ["1"]
        assert pending[0]["amount"] == "1500.00"

    def test_ingest_unknown_company(self, client):
        response = client.post("/payments/ingest", json={"company_id": 404})
        assert response.status_code == 404
        assert response.json()["error"] == "CompanyNotFound"

    def test_ingest_missing_credentials(self, client, make_company):
        company = make_company(bank=False)
        response = client.post("/payments/ingest", json={"company_id": company.id})
        assert response.status_code == 400
        assert response.json()["error"] == "CredentialsMissing"

    def test_ingest_all_reports_each_tenant(self, client, bank_source, make_company):
        healthy = make_company()
        broken = make_company(bank=False)
        bank_source.transactions = [pb_transaction("1")]

        response = client.post("/payments/ingest", json={})

        assert response.status_code == 200
        by_company = {t["company_id"]: t for t in response.json()["tenants"]}
        assert by_company[healthy.id]["status"] == "SUCCESS"
        assert by_company[healthy.id]["new_payments"] == 1
        assert by_company[broken.id]["status"] == "FAILED"
        assert by_company[broken.id]["error"] == "CredentialsMissing"

    def test_invalid_range(self, client):
        response = client.post("/payments/ingest", json={
            "start_date": "2024-06-01",
            "end_date": "2024-05-01",
        })
        assert response.status_code == 422

    def test_start_after_today_without_end(self, client, bank_source, make_company):
        company = make_company()
        start = date.today() + timedelta(days=5)

        response = client.post("/payments/ingest", json={
            "company_id": company.id,
            "start_date": start.isoformat(),
        })

        assert response.status_code == 422
        assert bank_source.calls == []


class TestReceiptRoutes:

    def test_issue(self, client, payment):
        response = client.post("/receipts/issue", json={"payment_id": payment.id})

        assert response.status_code == 201
        data = response.json()
        assert data["payment_id"] == payment.id
        assert data["amount"] == "1500.00"
        assert data["external_receipt_id"] == "rcpt-1"

        lookup = client.get(f"/receipts/by-payment/{payment.id}")
        assert lookup.status_code == 200
        assert lookup.json()["id"] == data["id"]

    def test_issue_twice_conflicts(self, client, payment):
        first = client.post("/receipts/issue", json={"payment_id": payment.id})
        second = client.post("/receipts/issue", json={"payment_id": payment.id})

        assert second.status_code == 409
        body = second.json()
        assert body["error"] == "AlreadyIssued"
        assert body["receipt_id"] == first.json()["id"]

    def test_issue_unknown_payment(self, client):
        response = client.post("/receipts/issue", json={"payment_id": 999})
        assert response.status_code == 404
        assert response.json()["error"] == "PaymentNotFound"

    def test_issue_non_target(self, client, store, payment):
        other = store.insert_payment(payment.model_copy(update={"id": None, "external_id": "tx-2", "is_target": False}))
        response = client.post("/receipts/issue", json={"payment_id": other.id})
        assert response.status_code == 400
        assert response.json()["error"] == "PaymentNotEligible"

    def test_ambiguous_failure(self, client, fiscal_sink, payment):
        fiscal_sink.error = FiscalSubmissionAmbiguous("read timeout")

        response = client.post("/receipts/issue", json={"payment_id": payment.id})

        assert response.status_code == 502
        body = response.json()
        assert body["error"] == "FiscalSubmissionFailed"
        assert body["ambiguous"] is True

        blocked = client.post("/receipts/issue", json={"payment_id": payment.id})
        assert blocked.status_code == 409
        assert blocked.json()["error"] == "PersistenceConflict"

        released = client.post("/receipts/release", json={"payment_id": payment.id})
        assert released.json() == {"payment_id": payment.id, "released": True}

    def test_no_receipt_for_payment(self, client, payment):
        assert client.get(f"/receipts/by-payment/{payment.id}").status_code == 404

    def test_reconcile(self, client, store, payment):
        client.post("/receipts/issue", json={"payment_id": payment.id})
        conn = store._connect()
        try:
            conn.execute("UPDATE payments SET receipt_issued = 0, receipt_id = NULL WHERE id = ?", (payment.id,))
        finally:
            conn.close()

        response = client.post("/receipts/reconcile", json={})

        assert response.json() == {"repaired_payment_ids": [payment.id]}
        assert store.get_payment(payment.id).receipt_issued is True
