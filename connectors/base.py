"""Abstract Bank and Fiscal Connector Interfaces.

This module defines the interfaces the pipeline depends on. It is
intentionally provider-agnostic - no PrivatBank or Checkbox specifics here.

- BankTransactionSource: lists a tenant's bank transactions for a date range
  and normalizes raw records into BankTransaction.
- FiscalReceiptSink: submits a receipt to a fiscal registration service.

Key Design Principles:
- Methods return NORMALIZED objects, never provider payloads
- Workflows and API routes depend ONLY on this interface
- Provider implementations live in connector subfolders
- Failures are raised as core.errors.UpstreamUnavailable / UpstreamRejected
"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from core.models.records import AmountValue


# =============================================================================
# Bank Transactions
# =============================================================================

class BankTransaction(BaseModel):
    """Normalized bank transaction, before it becomes a Payment."""

    model_config = ConfigDict(frozen=True)

    external_id: str = Field(..., min_length=1, description="Bank's unique transaction id")
    amount: AmountValue
    currency: Optional[str] = None
    description: Optional[str] = None
    payer_name: Optional[str] = None
    payer_account: Optional[str] = None
    payer_tax_id: Optional[str] = None
    document_number: Optional[str] = None
    transaction_date: datetime


class BankTransactionSource(ABC):
    """Source of a tenant's bank transactions."""

    name: str = "bank"

    @abstractmethod
    async def fetch_transactions(
        self,
        merchant_id: str,
        token: str,
        start: date,
        end: date,
    ) -> List[Dict[str, Any]]:
        """List raw transaction records for an inclusive date range.

        Raises:
            UpstreamUnavailable: Bank unreachable, timed out, or 5xx
            UpstreamRejected: Bank refused the request (4xx)
        """
        pass

    @abstractmethod
    def normalize(self, raw: Dict[str, Any]) -> BankTransaction:
        """Convert one raw record into a BankTransaction.

        Raises:
            ValueError: Record is malformed
        """
        pass

    def raw_reference(self, raw: Dict[str, Any]) -> Optional[str]:
        """Best-effort id of a raw record, for error reports."""
        if isinstance(raw, dict):
            value = raw.get("id") or raw.get("ID")
            return str(value) if value else None
        return None


# =============================================================================
# Fiscal Receipts
# =============================================================================

class FiscalPaymentType(str, Enum):
    CASH = "CASH"
    CASHLESS = "CASHLESS"


class FiscalCredentials(BaseModel):
    """Decrypted cashier credentials. Never logged or persisted."""

    model_config = ConfigDict(frozen=True)

    license_key: str = Field(..., min_length=1)
    cashier_login: str = Field(..., min_length=1)
    cashier_pin: str = Field(..., min_length=1)

    def __repr__(self) -> str:
        return f"FiscalCredentials(cashier_login={self.cashier_login!r})"

    __str__ = __repr__


class FiscalGood(BaseModel):
    code: str
    name: str
    price: int = Field(..., description="Unit price in minor units")
    quantity: int = Field(..., description="Quantity in thousandths (1000 = one unit)")


class FiscalPaymentLeg(BaseModel):
    type: FiscalPaymentType = FiscalPaymentType.CASHLESS
    value: int = Field(..., description="Amount in minor units")


class FiscalReceiptRequest(BaseModel):
    goods: List[FiscalGood]
    payments: List[FiscalPaymentLeg]
    cashier_name: Optional[str] = None
    header: Optional[str] = None
    footer: Optional[str] = None

    @property
    def total(self) -> int:
        return sum(leg.value for leg in self.payments)


class FiscalReceipt(BaseModel):
    """Fiscal system's answer to a successful submission."""

    receipt_id: str = Field(..., min_length=1)
    fiscal_code: Optional[str] = None
    status: str
    created_at: datetime
    receipt_url: Optional[str] = None
    pdf_url: Optional[str] = None
    total: Optional[int] = None


class FiscalSubmissionAmbiguous(Exception):
    """Raised by a sink when the submission outcome is unknown.

    The request may have been received (timeout or dropped connection after
    sending). The wrapped ``cause`` describes the transport failure.
    """

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class FiscalReceiptSink(ABC):
    """Fiscal registration service."""

    name: str = "fiscal"

    @abstractmethod
    async def issue_receipt(
        self,
        credentials: FiscalCredentials,
        request: FiscalReceiptRequest,
    ) -> FiscalReceipt:
        """Register a sale receipt.

        Must not retry the submission itself.

        Raises:
            UpstreamUnavailable: Failure before the receipt request was sent
                (sign-in, shift opening) or a 5xx answer
            UpstreamRejected: 4xx / business-rule rejection
            FiscalSubmissionAmbiguous: Outcome unknown
        """
        pass
