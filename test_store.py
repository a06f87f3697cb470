"""
Payment Store Tests

Uniqueness constraints, claims and atomic receipt commit.
"""

from datetime import datetime, timezone

import pytest

from core.errors import AlreadyIssued, PersistenceConflict
from core.models.records import IssuanceState, Payment, Receipt


def _payment(company_id: int, external_id: str = "tx-1", **overrides) -> Payment:
    data = dict(
        company_id=company_id,
        external_id=external_id,
        amount="250.00",
        sender_account="UA783220010000012345678901234",
        sender_name="ФОП Петренко",
        payment_date=datetime(2024, 5, 15, 9, 0),
        is_target=True,
    )
    data.update(overrides)
    return Payment(**data)


def _receipt(company_id: int, payment_id: int, external_id: str = "r-1") -> Receipt:
    return Receipt(
        company_id=company_id,
        payment_id=payment_id,
        external_receipt_id=external_id,
        fiscal_code="FC1",
        amount="250.00",
        status="DONE",
        issued_at=datetime(2024, 5, 15, 12, 0, tzinfo=timezone.utc),
    )


class TestCompanies:

    def test_add_and_get(self, store, make_company):
        company = make_company(name="ТОВ Альфа", tax_id="11111111")
        loaded = store.get_company(company.id)
        assert loaded.name == "ТОВ Альфа"
        assert loaded.bank_token_encrypted is not None
        assert [c.id for c in store.list_companies()] == [company.id]

    def test_duplicate_tax_id(self, make_company):
        make_company(tax_id="11111111")
        with pytest.raises(PersistenceConflict):
            make_company(tax_id="11111111")

    def test_missing_company(self, store):
        assert store.get_company(999) is None


class TestPayments:

    def test_insert_assigns_id(self, store, make_company):
        company = make_company()
        stored = store.insert_payment(_payment(company.id))
        assert stored.id is not None
        assert stored.receipt_issued is False

        loaded = store.get_payment(stored.id)
        assert loaded.amount == stored.amount
        assert loaded.is_target is True
        assert loaded.payment_date == datetime(2024, 5, 15, 9, 0)

    def test_duplicate_external_id_ignored(self, store, make_company):
        company = make_company()
        assert store.insert_payment(_payment(company.id)) is not None
        assert store.insert_payment(_payment(company.id, amount="999.00")) is None
        assert store.find_payment_by_external_id(company.id, "tx-1").amount == _payment(company.id).amount

    def test_same_external_id_for_different_tenants(self, store, make_company):
        a = make_company()
        b = make_company()
        assert store.insert_payment(_payment(a.id)) is not None
        assert store.insert_payment(_payment(b.id)) is not None

    def test_pending_payments(self, store, make_company):
        company = make_company()
        target = store.insert_payment(_payment(company.id, "tx-1"))
        store.insert_payment(_payment(company.id, "tx-2", is_target=False))
        assert [p.id for p in store.list_pending_payments(company.id)] == [target.id]


class TestClaims:

    def test_claim_blocks_second_claim(self, store, make_company):
        company = make_company()
        payment = store.insert_payment(_payment(company.id))

        store.claim_issuance(payment.id)
        assert store.get_attempt(payment.id).state == IssuanceState.IN_PROGRESS
        with pytest.raises(PersistenceConflict):
            store.claim_issuance(payment.id)

    def test_failed_claim_can_be_retaken(self, store, make_company):
        company = make_company()
        payment = store.insert_payment(_payment(company.id))

        store.claim_issuance(payment.id)
        store.mark_attempt_failed(payment.id, "fiscal 400")
        assert store.get_attempt(payment.id).state == IssuanceState.FAILED

        store.claim_issuance(payment.id)
        attempt = store.get_attempt(payment.id)
        assert attempt.state == IssuanceState.IN_PROGRESS
        assert attempt.error_message is None

    def test_uncertain_claim_blocks_until_released(self, store, make_company):
        company = make_company()
        payment = store.insert_payment(_payment(company.id))

        store.claim_issuance(payment.id)
        store.mark_attempt_uncertain(payment.id, "timeout")
        with pytest.raises(PersistenceConflict):
            store.claim_issuance(payment.id)
        assert [a.payment_id for a in store.list_attempts(IssuanceState.UNCERTAIN)] == [payment.id]

        assert store.release_claim(payment.id) is True
        assert store.release_claim(payment.id) is False
        store.claim_issuance(payment.id)

    def test_claim_after_receipt_raises_already_issued(self, store, make_company):
        company = make_company()
        payment = store.insert_payment(_payment(company.id))
        store.commit_receipt(_receipt(company.id, payment.id))

        with pytest.raises(AlreadyIssued):
            store.claim_issuance(payment.id)


class TestReceipts:

    def test_commit_is_atomic(self, store, make_company):
        company = make_company()
        payment = store.insert_payment(_payment(company.id))
        store.claim_issuance(payment.id)

        receipt = store.commit_receipt(_receipt(company.id, payment.id))

        loaded = store.get_payment(payment.id)
        assert loaded.receipt_issued is True
        assert loaded.receipt_id == receipt.id
        assert store.get_receipt(receipt.id).payment_id == payment.id
        assert store.get_attempt(payment.id) is None

    def test_second_receipt_for_payment_rejected(self, store, make_company):
        company = make_company()
        payment = store.insert_payment(_payment(company.id))
        first = store.commit_receipt(_receipt(company.id, payment.id, "r-1"))

        with pytest.raises(PersistenceConflict):
            store.commit_receipt(_receipt(company.id, payment.id, "r-2"))

        assert store.get_receipt_for_payment(payment.id).id == first.id
        assert store.get_payment(payment.id).receipt_id == first.id

    def test_orphan_receipts(self, store, make_company):
        company = make_company()
        payment = store.insert_payment(_payment(company.id))
        receipt = store.commit_receipt(_receipt(company.id, payment.id))

        # Simulate the flag being lost
        conn = store._connect()
        try:
            conn.execute("UPDATE payments SET receipt_issued = 0, receipt_id = NULL WHERE id = ?", (payment.id,))
        finally:
            conn.close()

        assert [r.id for r in store.find_orphan_receipts()] == [receipt.id]
        assert store.find_orphan_receipts(company_id=company.id + 100) == []

        store.mark_payment_issued(payment.id, receipt.id)
        assert store.find_orphan_receipts() == []
