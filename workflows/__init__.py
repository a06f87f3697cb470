"""Temporal workflows for payment ingestion and receipt issuance."""

from workflows.receipt_workflow import (
    IssueReceiptWorkflow,
    IssueReceiptWorkflowInput,
    TASK_QUEUE_DEFAULT,
    TASK_QUEUE_FISCAL,
    receipt_workflow_id,
)
from workflows.ingestion_workflow import (
    PaymentIngestionWorkflow,
    PaymentIngestionInput,
    PaymentIngestionOutput,
    TenantSummary,
)

__all__ = [
    "IssueReceiptWorkflow",
    "IssueReceiptWorkflowInput",
    "PaymentIngestionWorkflow",
    "PaymentIngestionInput",
    "PaymentIngestionOutput",
    "TenantSummary",
    "TASK_QUEUE_DEFAULT",
    "TASK_QUEUE_FISCAL",
    "receipt_workflow_id",
]
