"""
Receipt Issuance Workflow

Per-payment workflow: runs issue_payment_receipt exactly once on the fiscal
task queue. Started as a child of PaymentIngestionWorkflow for new target
payments, or on its own for a single payment.

The workflow id should be derived from the payment id (see
receipt_workflow_id) so Temporal rejects a second concurrent run for the
same payment.
"""

from dataclasses import dataclass
from datetime import timedelta

from temporalio import workflow
from temporalio.common import RetryPolicy

with workflow.unsafe.imports_passed_through():
    from activities.issue import (
        issue_payment_receipt,
        IssueReceiptInput,
        IssueReceiptOutput,
    )
    from core.errors import NON_RETRYABLE_ERROR_TYPES


TASK_QUEUE_DEFAULT = "payments-default"
TASK_QUEUE_FISCAL = "payments-fiscal"


def receipt_workflow_id(payment_id: int) -> str:
    return f"issue-receipt-{payment_id}"


@dataclass
class IssueReceiptWorkflowInput:
    """Input for IssueReceiptWorkflow"""
    payment_id: int
    fiscal_task_queue: str = TASK_QUEUE_FISCAL


@workflow.defn
class IssueReceiptWorkflow:
    """Issue the fiscal receipt for one payment."""

    @workflow.run
    async def run(self, input: IssueReceiptWorkflowInput) -> IssueReceiptOutput:
        workflow.logger.info(f"Issuing receipt for payment {input.payment_id}")

        result = await workflow.execute_activity(
            issue_payment_receipt,
            IssueReceiptInput(payment_id=input.payment_id),
            start_to_close_timeout=timedelta(minutes=2),
            # Never retried: a repeated submission may register a second receipt
            retry_policy=RetryPolicy(
                maximum_attempts=1,
                non_retryable_error_types=NON_RETRYABLE_ERROR_TYPES,
            ),
            task_queue=input.fiscal_task_queue,
        )

        if result.already_issued:
            workflow.logger.info(
                f"Payment {input.payment_id} already had receipt {result.receipt_id}"
            )
        else:
            workflow.logger.info(
                f"Receipt {result.receipt_id} issued for payment {input.payment_id}"
            )
        return result
