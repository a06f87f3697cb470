"""Ingestion activities.

- list_company_ids: Tenants to ingest for
- ingest_company_payments: Import one tenant's bank transactions
"""

import time
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

from temporalio import activity

from core.errors import CompanyNotFound, InvalidDateRange
from core.models.records import DateRange
from core.observability.logging import (
    log_activity_complete,
    log_activity_start,
    with_correlation,
)
from core.services import get_services


# =============================================================================
# Activity Input/Output Models
# =============================================================================

@dataclass
class IngestCompanyInput:
    """Input for ingest_company_payments activity.

    Attributes:
        company_id: Tenant id
        start_date: ISO date (inclusive); defaults to the lookback window
        end_date: ISO date (inclusive); defaults to today
    """
    company_id: int
    start_date: Optional[str] = None
    end_date: Optional[str] = None


@dataclass
class IngestCompanyOutput:
    """Output from ingest_company_payments activity."""
    company_id: int
    start_date: str
    end_date: str
    fetched: int = 0
    created: int = 0
    duplicates: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)
    created_payment_ids: List[int] = field(default_factory=list)
    target_payment_ids: List[int] = field(default_factory=list)


def _date_range(input: IngestCompanyInput, lookback_days: int) -> DateRange:
    """Resolve the input dates; bad input raises the non-retryable InvalidDateRange."""
    if not input.start_date and not input.end_date:
        return DateRange.last_days(lookback_days)
    try:
        end = date.fromisoformat(input.end_date) if input.end_date else date.today()
        if input.start_date:
            start = date.fromisoformat(input.start_date)
        else:
            start = DateRange.last_days(lookback_days, today=end).start
        return DateRange(start=start, end=end)
    except ValueError as e:
        raise InvalidDateRange(
            f"Invalid date range {input.start_date!r}..{input.end_date!r}: {e}"
        ) from e


# =============================================================================
# Activities
# =============================================================================

@activity.defn
async def list_company_ids() -> List[int]:
    """Ids of all tenants, in id order."""
    services = get_services()
    return [company.id for company in services.store.list_companies()]


@activity.defn
async def ingest_company_payments(input: IngestCompanyInput) -> IngestCompanyOutput:
    """Import one tenant's bank transactions as payments.

    Raises the pipeline's typed errors; the calling workflow declares which
    of them are not retryable.
    """
    info = activity.info()
    services = get_services()

    with with_correlation(
        company_id=input.company_id,
        workflow_id=info.workflow_id,
        workflow_run_id=info.workflow_run_id,
        activity_name=info.activity_type,
    ):
        started = time.monotonic()
        log_activity_start("ingest_company_payments", attempt=info.attempt)

        company = services.store.get_company(input.company_id)
        if company is None:
            raise CompanyNotFound(f"Company {input.company_id} not found")

        date_range = _date_range(input, services.settings.ingestion_lookback_days)
        result = await services.ingestion.ingest(company, date_range)

        log_activity_complete(
            "ingest_company_payments",
            duration_ms=round((time.monotonic() - started) * 1000, 1),
            created=result.created,
            duplicates=result.duplicates,
        )

    return IngestCompanyOutput(
        company_id=result.company_id,
        start_date=result.date_range.start.isoformat(),
        end_date=result.date_range.end.isoformat(),
        fetched=result.fetched,
        created=result.created,
        duplicates=result.duplicates,
        errors=[e.model_dump() for e in result.errors],
        created_payment_ids=list(result.created_payment_ids),
        target_payment_ids=list(result.target_payment_ids),
    )
