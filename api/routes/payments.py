"""Payment ingestion endpoints."""

from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field, model_validator

from api.services.dependencies import get_pipeline_services
from core.errors import CompanyNotFound
from core.models.records import DateRange, IngestionResult, TenantIngestionOutcome
from core.services import Services


router = APIRouter()


class IngestRequest(BaseModel):
    """Request to ingest bank payments."""
    company_id: Optional[int] = Field(None, description="Tenant id; omit to ingest every tenant")
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @model_validator(mode="after")
    def _check_range(self) -> "IngestRequest":
        # A missing end_date means today
        if self.start_date and self.start_date > (self.end_date or date.today()):
            raise ValueError("start_date must not be after end_date")
        return self


class IngestionErrorItem(BaseModel):
    external_id: Optional[str] = None
    message: str


class TenantIngestionSummary(BaseModel):
    """Per-tenant ingestion summary."""
    company_id: int
    status: str
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    total_fetched: int = 0
    new_payments: int = 0
    duplicates: int = 0
    errors: List[IngestionErrorItem] = Field(default_factory=list)
    error: Optional[str] = None
    message: Optional[str] = None


class IngestResponse(BaseModel):
    tenants: List[TenantIngestionSummary]


class PaymentItem(BaseModel):
    id: int
    company_id: int
    external_id: str
    amount: str
    currency: str
    sender_name: Optional[str] = None
    payment_date: datetime
    is_target: bool
    receipt_issued: bool


def _summary(result: IngestionResult) -> TenantIngestionSummary:
    return TenantIngestionSummary(
        company_id=result.company_id,
        status="SUCCESS",
        start_date=result.date_range.start,
        end_date=result.date_range.end,
        total_fetched=result.fetched,
        new_payments=result.created,
        duplicates=result.duplicates,
        errors=[IngestionErrorItem(external_id=e.external_id, message=e.message) for e in result.errors],
    )


def _outcome_summary(outcome: TenantIngestionOutcome) -> TenantIngestionSummary:
    if outcome.result is not None:
        return _summary(outcome.result)
    return TenantIngestionSummary(
        company_id=outcome.company_id,
        status="FAILED",
        error=outcome.error_kind,
        message=outcome.error_message,
    )


def _date_range(request: IngestRequest, services: Services) -> Optional[DateRange]:
    if request.start_date is None and request.end_date is None:
        return None
    end = request.end_date or date.today()
    start = request.start_date or DateRange.last_days(
        services.settings.ingestion_lookback_days, today=end
    ).start
    return DateRange(start=start, end=end)


@router.post("/ingest", response_model=IngestResponse)
async def ingest_payments(
    request: IngestRequest,
    services: Services = Depends(get_pipeline_services),
) -> IngestResponse:
    """Import bank transactions for one tenant or for all tenants.

    For a single tenant, pipeline errors map to HTTP errors. For all
    tenants, each tenant's failure is reported in its own summary.
    """
    date_range = _date_range(request, services)

    if request.company_id is not None:
        company = services.store.get_company(request.company_id)
        if company is None:
            raise CompanyNotFound(f"Company {request.company_id} not found")
        result = await services.ingestion.ingest(company, date_range)
        return IngestResponse(tenants=[_summary(result)])

    outcomes = await services.ingestion.ingest_many(services.store.list_companies(), date_range)
    return IngestResponse(tenants=[_outcome_summary(o) for o in outcomes])


@router.get("/pending", response_model=List[PaymentItem])
async def list_pending_payments(
    company_id: Optional[int] = Query(None),
    services: Services = Depends(get_pipeline_services),
) -> List[PaymentItem]:
    """Target payments still waiting for a receipt."""
    return [
        PaymentItem(
            id=p.id,
            company_id=p.company_id,
            external_id=p.external_id,
            amount=str(p.amount),
            currency=p.currency,
            sender_name=p.sender_name,
            payment_date=p.payment_date,
            is_target=p.is_target,
            receipt_issued=p.receipt_issued,
        )
        for p in services.store.list_pending_payments(company_id)
    ]
