"""Start the payment ingestion workflow.

Usage:
    python scripts/start_ingestion.py                    # all tenants, last 30 days
    python scripts/start_ingestion.py --company 3 --issue
    python scripts/start_ingestion.py --start 2024-05-01 --end 2024-05-31
    python scripts/start_ingestion.py --local            # run in-process, no Temporal
"""

import argparse
import asyncio
import sys
import uuid
from datetime import date
from pathlib import Path

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from core.config import get_settings
from core.errors import PipelineError
from core.models.records import DateRange
from core.observability.logging import get_logger
from core.services import get_services
from temporal_client import get_temporal_client
from workflows.ingestion_workflow import PaymentIngestionWorkflow, PaymentIngestionInput

logger = get_logger(__name__)


async def start_workflow(args) -> None:
    settings = get_settings()
    client = await get_temporal_client()
    logger.info(f"Connected to Temporal: {client.namespace}")

    workflow_id = f"ingest-payments-{uuid.uuid4().hex[:8]}"
    handle = await client.start_workflow(
        PaymentIngestionWorkflow.run,
        PaymentIngestionInput(
            company_ids=[args.company] if args.company else None,
            start_date=args.start,
            end_date=args.end,
            issue_receipts=args.issue,
            fiscal_task_queue=settings.temporal_fiscal_task_queue,
        ),
        id=workflow_id,
        task_queue=settings.temporal_task_queue,
    )
    logger.info(f"Workflow started: {handle.id}")

    result = await handle.result()
    for tenant in result.tenants:
        if tenant.status == "SUCCESS":
            print(
                f"  company {tenant.company_id}: fetched={tenant.fetched} new={tenant.created} "
                f"duplicates={tenant.duplicates} errors={tenant.errors}"
            )
        else:
            print(f"  company {tenant.company_id}: FAILED - {tenant.error}")
    if args.issue:
        print(f"  receipts issued: {len(result.receipts_issued)}, failed: {len(result.receipts_failed)}")


async def run_local(args) -> None:
    services = get_services()
    date_range = None
    if args.start or args.end:
        end = date.fromisoformat(args.end) if args.end else date.today()
        start = date.fromisoformat(args.start) if args.start else DateRange.last_days(
            services.settings.ingestion_lookback_days, today=end
        ).start
        date_range = DateRange(start=start, end=end)

    if args.company:
        companies = [services.store.get_company(args.company)]
        if companies[0] is None:
            print(f"ERROR: company {args.company} not found")
            sys.exit(1)
    else:
        companies = services.store.list_companies()

    outcomes = await services.ingestion.ingest_many(companies, date_range)
    for outcome in outcomes:
        if outcome.ok:
            r = outcome.result
            print(
                f"  company {r.company_id}: fetched={r.fetched} new={r.created} "
                f"duplicates={r.duplicates} errors={len(r.errors)}"
            )
            if args.issue:
                for payment_id in r.target_payment_ids:
                    try:
                        receipt = await services.issuance.issue(payment_id)
                    except PipelineError as e:
                        print(f"    payment {payment_id}: {e.kind} - {e.message}")
                        continue
                    print(f"    receipt {receipt.id} for payment {payment_id}")
        else:
            print(f"  company {outcome.company_id}: FAILED - {outcome.error_kind}: {outcome.error_message}")


def main():
    parser = argparse.ArgumentParser(description="Ingest bank payments")
    parser.add_argument("--company", type=int, help="Company id (default: all)")
    parser.add_argument("--start", help="Start date YYYY-MM-DD")
    parser.add_argument("--end", help="End date YYYY-MM-DD")
    parser.add_argument("--issue", action="store_true", help="Issue receipts for new target payments")
    parser.add_argument("--local", action="store_true", help="Run in-process instead of on Temporal")
    args = parser.parse_args()

    if args.local:
        asyncio.run(run_local(args))
    else:
        asyncio.run(start_workflow(args))


if __name__ == "__main__":
    main()
