"""
Temporal Tests

1. Activities run against the temporary store (no Temporal server)
2. Fiscal issuance runs on its own queue and is never retried
"""

import logging
from types import SimpleNamespace

import pytest
from temporalio import workflow
from temporalio.testing import ActivityEnvironment

from activities.ingest import (
    IngestCompanyInput,
    IngestCompanyOutput,
    ingest_company_payments,
    list_company_ids,
)
from activities.issue import (
    IssueReceiptInput,
    ReconcileReceiptsInput,
    issue_payment_receipt,
    reconcile_orphan_receipts,
)
from conftest import NON_TARGET_ACCOUNT, pb_transaction
from core.errors import (
    CompanyNotFound,
    FiscalSubmissionFailed,
    InvalidDateRange,
    NON_RETRYABLE_ERROR_TYPES,
)
from core.services import set_services
from workers.worker import DEFAULT_QUEUE_ACTIVITIES, FISCAL_QUEUE_ACTIVITIES, WORKFLOWS
from workflows.ingestion_workflow import PaymentIngestionInput, PaymentIngestionWorkflow
from workflows.receipt_workflow import (
    IssueReceiptWorkflow,
    IssueReceiptWorkflowInput,
    TASK_QUEUE_DEFAULT,
    TASK_QUEUE_FISCAL,
    receipt_workflow_id,
)


@pytest.fixture
def activity_env(services):
    set_services(services)
    yield ActivityEnvironment()
    set_services(None)


class TestIngestionActivities:

    @pytest.mark.asyncio
    async def test_list_company_ids(self, activity_env, make_company):
        a = make_company()
        b = make_company()
        assert await activity_env.run(list_company_ids) == [a.id, b.id]

    @pytest.mark.asyncio
    async def test_ingest_company_payments(self, activity_env, bank_source, make_company):
        company = make_company()
        bank_source.transactions = [
            pb_transaction("1"),
            pb_transaction("2", account=NON_TARGET_ACCOUNT),
            pb_transaction("3", amount="x"),
        ]

        output = await activity_env.run(
            ingest_company_payments,
            IngestCompanyInput(company_id=company.id, start_date="2024-05-01", end_date="2024-05-31"),
        )

        assert (output.fetched, output.created, output.duplicates) == (3, 2, 0)
        assert output.start_date == "2024-05-01"
        assert output.end_date == "2024-05-31"
        assert len(output.created_payment_ids) == 2
        assert len(output.target_payment_ids) == 1
        assert output.errors[0]["external_id"] == "3"

    @pytest.mark.asyncio
    async def test_unknown_company(self, activity_env):
        with pytest.raises(CompanyNotFound):
            await activity_env.run(ingest_company_payments, IngestCompanyInput(company_id=404))

    @pytest.mark.asyncio
    @pytest.mark.parametrize("start_date,end_date", [
        ("2999-01-01", None),
        ("2024-06-01", "2024-05-01"),
        ("01-05-2024", None),
    ])
    async def test_invalid_range_not_retried(self, activity_env, bank_source, make_company, start_date, end_date):
        company = make_company()

        with pytest.raises(InvalidDateRange):
            await activity_env.run(
                ingest_company_payments,
                IngestCompanyInput(company_id=company.id, start_date=start_date, end_date=end_date),
            )

        assert bank_source.calls == []
        assert "InvalidDateRange" in NON_RETRYABLE_ERROR_TYPES


class TestIngestionWorkflowQueues:

    @pytest.fixture
    def dispatched(self, monkeypatch):
        queues = []

        async def execute_activity(fn, *args, task_queue, **kwargs):
            queues.append(task_queue)
            if fn is list_company_ids:
                return [1, 2]
            return IngestCompanyOutput(
                company_id=args[0].company_id,
                start_date="2024-05-01",
                end_date="2024-05-31",
            )

        monkeypatch.setattr(workflow, "info", lambda: SimpleNamespace(task_queue="tenant-a-default"))
        monkeypatch.setattr(workflow, "execute_activity", execute_activity)
        monkeypatch.setattr(workflow, "logger", logging.getLogger("test.workflow"))
        return queues

    @pytest.mark.asyncio
    async def test_activities_use_the_workflow_queue(self, dispatched):
        output = await PaymentIngestionWorkflow().run(PaymentIngestionInput())

        assert dispatched == ["tenant-a-default"] * 3
        assert [t.company_id for t in output.tenants] == [1, 2]

    @pytest.mark.asyncio
    async def test_explicit_queue_wins(self, dispatched):
        await PaymentIngestionWorkflow().run(PaymentIngestionInput(company_ids=[1], task_queue="ops-default"))

        assert dispatched == ["ops-default"]


class TestIssueActivities:

    @pytest.mark.asyncio
    async def test_issue_then_already_issued(self, activity_env, bank_source, store, make_company):
        company = make_company()
        bank_source.transactions = [pb_transaction("1", amount="99.90")]
        ingested = await activity_env.run(ingest_company_payments, IngestCompanyInput(company_id=company.id))
        [payment_id] = ingested.target_payment_ids

        first = await activity_env.run(issue_payment_receipt, IssueReceiptInput(payment_id=payment_id))
        second = await activity_env.run(issue_payment_receipt, IssueReceiptInput(payment_id=payment_id))

        assert first.already_issued is False
        assert first.amount == "99.90"
        assert first.fiscal_code == "FC000001"
        assert second.already_issued is True
        assert second.receipt_id == first.receipt_id
        assert store.get_payment(payment_id).receipt_issued is True

    @pytest.mark.asyncio
    async def test_issue_failure_propagates(self, activity_env, bank_source, fiscal_sink, make_company):
        company = make_company()
        bank_source.transactions = [pb_transaction("1")]
        ingested = await activity_env.run(ingest_company_payments, IngestCompanyInput(company_id=company.id))
        fiscal_sink.error = RuntimeError("socket closed")

        with pytest.raises(FiscalSubmissionFailed):
            await activity_env.run(
                issue_payment_receipt,
                IssueReceiptInput(payment_id=ingested.target_payment_ids[0]),
            )

    @pytest.mark.asyncio
    async def test_reconcile_orphan_receipts(self, activity_env, store, bank_source, make_company):
        company = make_company()
        bank_source.transactions = [pb_transaction("1")]
        ingested = await activity_env.run(ingest_company_payments, IngestCompanyInput(company_id=company.id))
        payment_id = ingested.target_payment_ids[0]
        await activity_env.run(issue_payment_receipt, IssueReceiptInput(payment_id=payment_id))

        conn = store._connect()
        try:
            conn.execute("UPDATE payments SET receipt_issued = 0, receipt_id = NULL WHERE id = ?", (payment_id,))
        finally:
            conn.close()

        repaired = await activity_env.run(reconcile_orphan_receipts, ReconcileReceiptsInput())
        assert repaired == [payment_id]


class TestQueueLayout:

    def test_fiscal_activity_on_its_own_queue(self):
        assert FISCAL_QUEUE_ACTIVITIES == [issue_payment_receipt]
        assert issue_payment_receipt not in DEFAULT_QUEUE_ACTIVITIES
        assert TASK_QUEUE_DEFAULT != TASK_QUEUE_FISCAL
        assert IssueReceiptWorkflowInput(payment_id=1).fiscal_task_queue == TASK_QUEUE_FISCAL

    def test_workflows_registered(self):
        assert set(WORKFLOWS) == {PaymentIngestionWorkflow, IssueReceiptWorkflow}

    def test_workflow_id_per_payment(self):
        assert receipt_workflow_id(42) == "issue-receipt-42"

    def test_non_retryable_kinds(self):
        for kind in ("AlreadyIssued", "FiscalSubmissionFailed", "PaymentNotEligible", "DecryptionError"):
            assert kind in NON_RETRYABLE_ERROR_TYPES
        assert "UpstreamUnavailable" not in NON_RETRYABLE_ERROR_TYPES
