"""Activity definitions module."""

from activities.ingest import (
    list_company_ids,
    ingest_company_payments,
    IngestCompanyInput,
    IngestCompanyOutput,
)
from activities.issue import (
    issue_payment_receipt,
    reconcile_orphan_receipts,
    IssueReceiptInput,
    IssueReceiptOutput,
    ReconcileReceiptsInput,
)

__all__ = [
    # Ingestion activities
    "list_company_ids",
    "ingest_company_payments",
    "IngestCompanyInput",
    "IngestCompanyOutput",
    # Issuance activities
    "issue_payment_receipt",
    "reconcile_orphan_receipts",
    "IssueReceiptInput",
    "IssueReceiptOutput",
    "ReconcileReceiptsInput",
]
