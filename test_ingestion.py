"""
Ingestion Pipeline Tests

Fetch -> normalize -> classify -> de-duplicate -> persist, with per-record
and per-tenant failure isolation.
"""

import asyncio
from datetime import date
from decimal import Decimal

import pytest

from classification.account import AccountClassifier
from conftest import NON_TARGET_ACCOUNT, TARGET_ACCOUNT, FakeBankSource, pb_transaction
from core.errors import CredentialsMissing, DecryptionError, UpstreamRejected, UpstreamUnavailable
from core.models.records import DateRange
from core.security.vault import CredentialVault, generate_key
from ingestion.pipeline import PaymentIngestionPipeline

MAY = DateRange(start=date(2024, 5, 1), end=date(2024, 5, 31))


class TestIngest:

    @pytest.mark.asyncio
    async def test_new_payments_are_stored_and_classified(self, pipeline, bank_source, store, make_company):
        company = make_company()
        bank_source.transactions = [
            pb_transaction("1", amount="1500.00", account=TARGET_ACCOUNT),
            pb_transaction("2", amount="200.50", account=NON_TARGET_ACCOUNT),
        ]

        result = await pipeline.ingest(company, MAY)

        assert (result.fetched, result.created, result.duplicates, result.errors) == (2, 2, 0, [])
        assert result.is_balanced

        target = store.find_payment_by_external_id(company.id, "1")
        other = store.find_payment_by_external_id(company.id, "2")
        assert target.is_target is True
        assert target.amount == Decimal("1500.00")
        assert target.currency == "UAH"
        assert target.sender_name == "ФОП Іваненко Іван"
        assert target.receipt_issued is False
        assert other.is_target is False
        assert result.target_payment_ids == [target.id]

    @pytest.mark.asyncio
    async def test_decrypted_token_and_range_sent_to_bank(self, pipeline, bank_source, make_company):
        company = make_company()
        await pipeline.ingest(company, MAY)
        assert bank_source.calls == [("merchant-1", "bank-token", date(2024, 5, 1), date(2024, 5, 31))]

    @pytest.mark.asyncio
    async def test_default_range_is_lookback_window(self, pipeline, bank_source, make_company):
        await pipeline.ingest(make_company())
        _, _, start, end = bank_source.calls[0]
        assert end == date.today()
        assert (end - start).days == 30

    @pytest.mark.asyncio
    async def test_second_run_counts_duplicates(self, pipeline, bank_source, make_company):
        company = make_company()
        bank_source.transactions = [pb_transaction("1"), pb_transaction("2")]

        first = await pipeline.ingest(company, MAY)
        second = await pipeline.ingest(company, MAY)

        assert first.created == 2
        assert (second.created, second.duplicates) == (0, 2)
        assert second.is_balanced

    @pytest.mark.asyncio
    async def test_same_external_id_in_one_batch(self, pipeline, bank_source, make_company):
        company = make_company()
        bank_source.transactions = [pb_transaction("1"), pb_transaction("1")]

        result = await pipeline.ingest(company, MAY)

        assert (result.created, result.duplicates) == (1, 1)

    @pytest.mark.asyncio
    async def test_uniqueness_is_per_tenant(self, pipeline, bank_source, make_company):
        a = make_company()
        b = make_company()
        bank_source.transactions = [pb_transaction("1")]

        assert (await pipeline.ingest(a, MAY)).created == 1
        assert (await pipeline.ingest(b, MAY)).created == 1

    @pytest.mark.asyncio
    async def test_malformed_records_are_reported(self, pipeline, bank_source, store, make_company):
        company = make_company()
        bank_source.transactions = [
            pb_transaction("1"),
            pb_transaction("2", amount="not-a-number"),
            pb_transaction("3", when="yesterday"),
            {"SUM": "10.00"},
            pb_transaction("4", amount="-10.00"),
        ]

        result = await pipeline.ingest(company, MAY)

        assert result.created == 1
        assert len(result.errors) == 4
        assert result.is_balanced
        assert {e.external_id for e in result.errors} == {"2", "3", None, "4"}
        assert store.find_payment_by_external_id(company.id, "2") is None

    @pytest.mark.asyncio
    async def test_concurrent_ingestion_of_same_tenant(self, pipeline, bank_source, store, make_company):
        company = make_company()
        bank_source.transactions = [pb_transaction(str(i)) for i in range(10)]

        first, second = await asyncio.gather(
            pipeline.ingest(company, MAY),
            pipeline.ingest(company, MAY),
        )

        assert first.created + second.created == 10
        assert first.is_balanced and second.is_balanced
        assert len(store.list_pending_payments(company.id)) == 10


class TestIngestFailures:

    @pytest.mark.asyncio
    async def test_missing_bank_credentials(self, pipeline, bank_source, make_company):
        company = make_company(bank=False)
        with pytest.raises(CredentialsMissing) as exc_info:
            await pipeline.ingest(company, MAY)
        assert "bank_token" in exc_info.value.missing
        assert bank_source.calls == []

    @pytest.mark.asyncio
    async def test_undecryptable_token(self, store, bank_source, make_company):
        company = make_company()
        pipeline = PaymentIngestionPipeline(
            store, CredentialVault(generate_key()), AccountClassifier(), bank_source
        )
        with pytest.raises(DecryptionError):
            await pipeline.ingest(company, MAY)
        assert bank_source.calls == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        UpstreamUnavailable("bank down", source="privatbank", status_code=503),
        UpstreamRejected("bad token", source="privatbank", status_code=401),
    ])
    async def test_bank_failure_aborts_batch(self, pipeline, bank_source, store, make_company, error):
        company = make_company()
        bank_source.error = error
        with pytest.raises(type(error)):
            await pipeline.ingest(company, MAY)
        assert store.list_pending_payments(company.id) == []


class TestIngestMany:

    @pytest.mark.asyncio
    async def test_failures_are_isolated_per_tenant(self, store, vault, make_company):
        healthy = make_company()
        no_credentials = make_company(bank=False)
        broken_token = store.add_company(
            name="ТОВ Зламаний",
            tax_id="99999999",
            bank_merchant_id="m",
            bank_token_encrypted=CredentialVault(generate_key()).encrypt("t"),
        )
        source = FakeBankSource([pb_transaction("1"), pb_transaction("2")])
        pipeline = PaymentIngestionPipeline(store, vault, AccountClassifier(), source)

        outcomes = await pipeline.ingest_many([healthy, no_credentials, broken_token], MAY)

        by_company = {o.company_id: o for o in outcomes}
        assert by_company[healthy.id].ok
        assert by_company[healthy.id].result.created == 2
        assert by_company[no_credentials.id].error_kind == "CredentialsMissing"
        assert by_company[broken_token.id].error_kind == "DecryptionError"
        assert len(store.list_pending_payments(healthy.id)) == 2
