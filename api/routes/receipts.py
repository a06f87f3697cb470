"""Fiscal receipt endpoints."""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from api.services.dependencies import get_pipeline_services
from core.models.records import Receipt
from core.services import Services


router = APIRouter()


class IssueRequest(BaseModel):
    payment_id: int = Field(..., description="Stored payment id")


class ReceiptResponse(BaseModel):
    """Issued receipt."""
    id: int
    payment_id: int
    company_id: int
    external_receipt_id: str
    fiscal_code: Optional[str] = None
    amount: str
    receipt_url: Optional[str] = None
    pdf_url: Optional[str] = None
    status: str
    issued_at: datetime


class ReconcileRequest(BaseModel):
    company_id: Optional[int] = None


class ReconcileResponse(BaseModel):
    repaired_payment_ids: List[int]


class ReleaseRequest(BaseModel):
    payment_id: int


class ReleaseResponse(BaseModel):
    payment_id: int
    released: bool


def _receipt_response(receipt: Receipt) -> ReceiptResponse:
    return ReceiptResponse(
        id=receipt.id,
        payment_id=receipt.payment_id,
        company_id=receipt.company_id,
        external_receipt_id=receipt.external_receipt_id,
        fiscal_code=receipt.fiscal_code,
        amount=str(receipt.amount),
        receipt_url=receipt.receipt_url,
        pdf_url=receipt.pdf_url,
        status=receipt.status,
        issued_at=receipt.issued_at,
    )


@router.post("/issue", response_model=ReceiptResponse, status_code=201)
async def issue_receipt(
    request: IssueRequest,
    services: Services = Depends(get_pipeline_services),
) -> ReceiptResponse:
    """Issue the fiscal receipt for one payment."""
    receipt = await services.issuance.issue(request.payment_id)
    return _receipt_response(receipt)


@router.post("/reconcile", response_model=ReconcileResponse)
async def reconcile_receipts(
    request: ReconcileRequest,
    services: Services = Depends(get_pipeline_services),
) -> ReconcileResponse:
    """Flag payments whose receipt exists but whose issued flag was lost."""
    repaired = services.issuance.reconcile_orphans(request.company_id)
    return ReconcileResponse(repaired_payment_ids=[r.payment_id for r in repaired])


@router.post("/release", response_model=ReleaseResponse)
async def release_claim(
    request: ReleaseRequest,
    services: Services = Depends(get_pipeline_services),
) -> ReleaseResponse:
    """Clear a failed or uncertain issuance claim after manual checking."""
    released = services.issuance.release_claim(request.payment_id)
    return ReleaseResponse(payment_id=request.payment_id, released=released)


@router.get("/by-payment/{payment_id}", response_model=ReceiptResponse)
async def get_receipt_for_payment(
    payment_id: int,
    services: Services = Depends(get_pipeline_services),
) -> ReceiptResponse:
    receipt = services.store.get_receipt_for_payment(payment_id)
    if receipt is None:
        raise HTTPException(status_code=404, detail=f"No receipt for payment {payment_id}")
    return _receipt_response(receipt)
