"""Worker for the payment receipt pipeline.

Listens for tasks and executes workflows/activities.

Task queues:
- payments-default: workflows, ingestion activities
- payments-fiscal: fiscal receipt issuance (never retried)

Run with --queue <name> to specify which queue to poll.
Run with --all to poll both queues (for local development).
"""

import argparse
import asyncio
import sys
from pathlib import Path

from temporalio.worker import Worker

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from temporal_client import get_temporal_client
from activities.ingest import list_company_ids, ingest_company_payments
from activities.issue import issue_payment_receipt, reconcile_orphan_receipts
from core.config import get_settings
from core.observability.logging import configure_logging, get_logger
from workflows.ingestion_workflow import PaymentIngestionWorkflow
from workflows.receipt_workflow import IssueReceiptWorkflow

logger = get_logger(__name__)

# =============================================================================
# Activity Groupings by Task Queue
# =============================================================================

WORKFLOWS = [PaymentIngestionWorkflow, IssueReceiptWorkflow]

# Default queue: bank reads, DB maintenance
DEFAULT_QUEUE_ACTIVITIES = [
    list_company_ids,
    ingest_company_payments,
    reconcile_orphan_receipts,
]

# Fiscal queue: fiscal system writes
FISCAL_QUEUE_ACTIVITIES = [
    issue_payment_receipt,
]


def build_workers(client, default_queue: str, fiscal_queue: str, queue: str = None, all_queues: bool = False):
    """Create Worker instances for the requested queue(s)."""
    if all_queues:
        return [
            Worker(client, task_queue=default_queue, workflows=WORKFLOWS, activities=DEFAULT_QUEUE_ACTIVITIES),
            Worker(client, task_queue=fiscal_queue, activities=FISCAL_QUEUE_ACTIVITIES),
        ]
    if queue == fiscal_queue:
        return [Worker(client, task_queue=fiscal_queue, activities=FISCAL_QUEUE_ACTIVITIES)]
    return [Worker(client, task_queue=default_queue, workflows=WORKFLOWS, activities=DEFAULT_QUEUE_ACTIVITIES)]


async def run_worker(queue: str = None, all_queues: bool = False):
    """Start worker listening on task queue(s).

    Args:
        queue: Specific queue to poll
        all_queues: If True, poll both queues (local dev mode)
    """
    settings = get_settings()
    client = await get_temporal_client()
    logger.info(f"Connected to Temporal: {client.namespace}")

    workers = build_workers(
        client,
        settings.temporal_task_queue,
        settings.temporal_fiscal_task_queue,
        queue=queue,
        all_queues=all_queues,
    )
    logger.info(f"Created {len(workers)} worker(s)", extra_fields={"all_queues": all_queues, "queue": queue})

    logger.info("Worker(s) running... (Ctrl+C to stop)")
    try:
        await asyncio.gather(*[w.run() for w in workers])
    except KeyboardInterrupt:
        logger.info("Worker interrupted by user")


def main():
    """Entry point for worker with CLI args."""
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Payment Receipts Temporal Worker")
    parser.add_argument(
        "--queue", "-q",
        choices=[settings.temporal_task_queue, settings.temporal_fiscal_task_queue],
        default=settings.temporal_task_queue,
        help="Task queue to poll",
    )
    parser.add_argument(
        "--all", "-a",
        action="store_true",
        dest="all_queues",
        help="Poll all queues (local development mode)",
    )
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON log lines")

    args = parser.parse_args()
    configure_logging(json_format=args.json_logs, force=True)
    asyncio.run(run_worker(queue=args.queue, all_queues=args.all_queues))


if __name__ == "__main__":
    main()
