"""Receipt issuance activities.

issue_payment_receipt talks to the fiscal system. It must run with
maximum_attempts=1: a retried submission could register a second receipt.
"""

import time
from dataclasses import dataclass
from typing import List, Optional

from temporalio import activity

from core.errors import AlreadyIssued
from core.observability.logging import (
    get_logger,
    log_activity_complete,
    log_activity_error,
    log_activity_start,
    with_correlation,
)
from core.services import get_services

logger = get_logger(__name__)


@dataclass
class IssueReceiptInput:
    """Input for issue_payment_receipt activity."""
    payment_id: int


@dataclass
class IssueReceiptOutput:
    """Output from issue_payment_receipt activity.

    ``already_issued`` is True when the receipt existed before this call;
    only ``receipt_id`` is filled in then.
    """
    payment_id: int
    receipt_id: Optional[int] = None
    external_receipt_id: Optional[str] = None
    fiscal_code: Optional[str] = None
    amount: Optional[str] = None
    receipt_url: Optional[str] = None
    already_issued: bool = False


@dataclass
class ReconcileReceiptsInput:
    company_id: Optional[int] = None


@activity.defn
async def issue_payment_receipt(input: IssueReceiptInput) -> IssueReceiptOutput:
    """Issue the fiscal receipt for one payment."""
    info = activity.info()
    services = get_services()

    with with_correlation(
        payment_id=input.payment_id,
        workflow_id=info.workflow_id,
        workflow_run_id=info.workflow_run_id,
        activity_name=info.activity_type,
    ):
        started = time.monotonic()
        log_activity_start("issue_payment_receipt", attempt=info.attempt)

        try:
            receipt = await services.issuance.issue(input.payment_id)
        except AlreadyIssued as e:
            logger.info(e.message, extra_fields={"receipt_id": e.receipt_id})
            return IssueReceiptOutput(
                payment_id=input.payment_id,
                receipt_id=e.receipt_id,
                already_issued=True,
            )
        except Exception as e:
            log_activity_error("issue_payment_receipt", str(e), error_type=type(e).__name__)
            raise

        log_activity_complete(
            "issue_payment_receipt",
            duration_ms=round((time.monotonic() - started) * 1000, 1),
            receipt_id=receipt.id,
        )

    return IssueReceiptOutput(
        payment_id=receipt.payment_id,
        receipt_id=receipt.id,
        external_receipt_id=receipt.external_receipt_id,
        fiscal_code=receipt.fiscal_code,
        amount=str(receipt.amount),
        receipt_url=receipt.receipt_url,
    )


@activity.defn
async def reconcile_orphan_receipts(input: ReconcileReceiptsInput) -> List[int]:
    """Repair payments whose receipt exists but whose flag was lost.

    Returns:
        Ids of repaired payments
    """
    services = get_services()
    repaired = services.issuance.reconcile_orphans(input.company_id)
    return [receipt.payment_id for receipt in repaired]
