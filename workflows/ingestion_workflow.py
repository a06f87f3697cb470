"""
Payment Ingestion Workflow

Periodic (schedule) or on-demand ingestion across tenants:
LIST_COMPANIES → INGEST (per tenant, concurrent) → ISSUE_RECEIPTS (optional)

A failing tenant is recorded in the output and never stops the others.
When issue_receipts is set, one IssueReceiptWorkflow child is started per
new target payment.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, List, Optional

from temporalio import workflow
from temporalio.common import RetryPolicy
from temporalio.exceptions import ActivityError, ChildWorkflowError

with workflow.unsafe.imports_passed_through():
    from activities.ingest import (
        list_company_ids,
        ingest_company_payments,
        IngestCompanyInput,
    )
    from core.errors import NON_RETRYABLE_ERROR_TYPES
    from workflows.receipt_workflow import (
        IssueReceiptWorkflow,
        IssueReceiptWorkflowInput,
        TASK_QUEUE_FISCAL,
        receipt_workflow_id,
    )


# =============================================================================
# Workflow Input/Output
# =============================================================================

@dataclass
class PaymentIngestionInput:
    """Input for PaymentIngestionWorkflow.

    Attributes:
        company_ids: Tenants to ingest; None means all tenants
        start_date / end_date: ISO dates; None uses the lookback window
        issue_receipts: Start receipt issuance for new target payments
        task_queue: Queue for ingestion activities; None uses the queue
            this workflow runs on
        fiscal_task_queue: Queue for the fiscal submission activity
    """
    company_ids: Optional[List[int]] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    issue_receipts: bool = False
    task_queue: Optional[str] = None
    fiscal_task_queue: str = TASK_QUEUE_FISCAL


@dataclass
class TenantSummary:
    company_id: int
    status: str  # "SUCCESS" or "FAILED"
    fetched: int = 0
    created: int = 0
    duplicates: int = 0
    errors: int = 0
    error: Optional[str] = None


@dataclass
class PaymentIngestionOutput:
    tenants: List[TenantSummary] = field(default_factory=list)
    receipts_issued: List[int] = field(default_factory=list)
    receipts_failed: Dict[str, str] = field(default_factory=dict)

    @property
    def total_created(self) -> int:
        return sum(t.created for t in self.tenants)


def _failure_message(err: BaseException) -> str:
    # Innermost cause carries the pipeline error message
    while getattr(err, "cause", None) is not None:
        err = err.cause
    return str(err)


# =============================================================================
# Payment Ingestion Workflow
# =============================================================================

@workflow.defn
class PaymentIngestionWorkflow:
    """Ingest bank payments for one or more tenants."""

    @workflow.run
    async def run(self, input: PaymentIngestionInput) -> PaymentIngestionOutput:
        workflow.logger.info("Starting payment ingestion")

        default_activity_options: Dict[str, Any] = {
            "start_to_close_timeout": timedelta(minutes=5),
            "retry_policy": RetryPolicy(
                maximum_attempts=3,
                initial_interval=timedelta(seconds=5),
                maximum_interval=timedelta(minutes=1),
                backoff_coefficient=2.0,
                # Configuration and rejection errors won't self-heal
                non_retryable_error_types=NON_RETRYABLE_ERROR_TYPES,
            ),
            "task_queue": input.task_queue or workflow.info().task_queue,
        }

        company_ids = input.company_ids
        if company_ids is None:
            company_ids = await workflow.execute_activity(
                list_company_ids,
                **default_activity_options,
            )

        # =================================================================
        # Stage: INGEST
        # =================================================================
        async def ingest(company_id: int):
            try:
                result = await workflow.execute_activity(
                    ingest_company_payments,
                    IngestCompanyInput(
                        company_id=company_id,
                        start_date=input.start_date,
                        end_date=input.end_date,
                    ),
                    **default_activity_options,
                )
            except ActivityError as e:
                workflow.logger.warning(f"Ingestion failed for company {company_id}: {e.cause}")
                return TenantSummary(
                    company_id=company_id,
                    status="FAILED",
                    error=_failure_message(e),
                ), []
            return TenantSummary(
                company_id=company_id,
                status="SUCCESS",
                fetched=result.fetched,
                created=result.created,
                duplicates=result.duplicates,
                errors=len(result.errors),
            ), result.target_payment_ids

        outcomes = await asyncio.gather(*(ingest(cid) for cid in company_ids))

        output = PaymentIngestionOutput(tenants=[summary for summary, _ in outcomes])
        target_payment_ids = [pid for _, pids in outcomes for pid in pids]

        # =================================================================
        # Stage: ISSUE_RECEIPTS
        # =================================================================
        if input.issue_receipts and target_payment_ids:
            workflow.logger.info(f"Issuing receipts for {len(target_payment_ids)} payments")

            async def issue(payment_id: int):
                try:
                    result = await workflow.execute_child_workflow(
                        IssueReceiptWorkflow.run,
                        IssueReceiptWorkflowInput(
                            payment_id=payment_id,
                            fiscal_task_queue=input.fiscal_task_queue,
                        ),
                        id=receipt_workflow_id(payment_id),
                    )
                except ChildWorkflowError as e:
                    output.receipts_failed[str(payment_id)] = _failure_message(e)
                    return
                if result.receipt_id is not None:
                    output.receipts_issued.append(result.receipt_id)

            await asyncio.gather(*(issue(pid) for pid in target_payment_ids))

        workflow.logger.info(
            f"Ingestion complete: {output.total_created} new payments, "
            f"{len(output.receipts_issued)} receipts"
        )
        return output
