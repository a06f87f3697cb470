"""Typed records for tenants, payments and receipts.

These replace loose row dicts: required fields are validated when the record
is constructed, so call sites never re-check for missing values.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.functional_validators import BeforeValidator
from typing_extensions import Annotated


# =============================================================================
# Value Parsers
# =============================================================================

TWO_PLACES = Decimal("0.01")


def _parse_amount(value):
    """Parse a monetary amount into a 2-place Decimal.

    Accepts Decimal, int, str (spaces, commas as decimal separator).
    Floats go through ``str`` so 0.1 stays 0.1.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError("Amount cannot be a boolean")
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, float)):
        amount = Decimal(str(value))
    elif isinstance(value, str):
        s = value.strip().replace(" ", "").replace(" ", "")
        if s == "":
            raise ValueError("Amount is empty")
        if "," in s and "." not in s:
            s = s.replace(",", ".")
        else:
            s = s.replace(",", "")
        try:
            amount = Decimal(s)
        except InvalidOperation:
            raise ValueError(f"Cannot parse amount: {value!r}")
    else:
        return value
    if not amount.is_finite():
        raise ValueError(f"Amount must be finite: {value!r}")
    return amount.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def _strip_optional(value):
    if value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


AmountValue = Annotated[Decimal, BeforeValidator(_parse_amount)]
NonNegativeAmount = Annotated[Decimal, BeforeValidator(_parse_amount), Field(ge=0)]
OptionalText = Annotated[Optional[str], BeforeValidator(_strip_optional)]


class RecordBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# =============================================================================
# Company
# =============================================================================

class Company(RecordBase):
    """Tenant with encrypted integration credentials."""

    id: int
    name: str = Field(..., min_length=1)
    tax_id: str = Field(..., min_length=1)

    bank_merchant_id: OptionalText = None
    bank_token_encrypted: OptionalText = None

    fiscal_license_key_encrypted: OptionalText = None
    fiscal_cashier_login: OptionalText = None
    fiscal_cashier_pin_encrypted: OptionalText = None

    created_at: Optional[datetime] = None

    def missing_bank_credentials(self) -> List[str]:
        missing = []
        if not self.bank_merchant_id:
            missing.append("bank_merchant_id")
        if not self.bank_token_encrypted:
            missing.append("bank_token")
        return missing

    def missing_fiscal_credentials(self) -> List[str]:
        missing = []
        if not self.fiscal_license_key_encrypted:
            missing.append("fiscal_license_key")
        if not self.fiscal_cashier_login:
            missing.append("fiscal_cashier_login")
        if not self.fiscal_cashier_pin_encrypted:
            missing.append("fiscal_cashier_pin")
        return missing


# =============================================================================
# Payment
# =============================================================================

class Payment(RecordBase):
    """Incoming bank payment stored for a tenant.

    ``id`` is None until the store assigns it.
    """

    id: Optional[int] = None
    company_id: int
    external_id: str = Field(..., min_length=1)
    amount: NonNegativeAmount
    currency: str = "UAH"
    description: OptionalText = None
    sender_account: OptionalText = None
    sender_name: OptionalText = None
    sender_tax_id: OptionalText = None
    document_number: OptionalText = None
    payment_date: datetime

    receipt_issued: bool = False
    is_target: bool = False
    receipt_id: Optional[int] = None

    created_at: Optional[datetime] = None

    @field_validator("external_id")
    @classmethod
    def _strip_external_id(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("external_id is empty")
        return value

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, value: str) -> str:
        value = (value or "").strip().upper()
        if len(value) != 3:
            raise ValueError(f"Currency must be a 3-letter code: {value!r}")
        return value

    @model_validator(mode="after")
    def _check_receipt_link(self) -> "Payment":
        if self.receipt_issued and self.receipt_id is None:
            raise ValueError("receipt_issued requires receipt_id")
        return self


# =============================================================================
# Receipt
# =============================================================================

class ReceiptStatus(str, Enum):
    """Fiscal receipt status as reported by the fiscal system."""
    CREATED = "CREATED"
    DONE = "DONE"
    ERROR = "ERROR"
    ISSUED = "ISSUED"


class Receipt(RecordBase):
    """Fiscal receipt issued for exactly one payment. Immutable."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: Optional[int] = None
    company_id: int
    payment_id: int
    external_receipt_id: str = Field(..., min_length=1)
    fiscal_code: OptionalText = None
    amount: NonNegativeAmount
    receipt_url: OptionalText = None
    pdf_url: OptionalText = None
    status: str = ReceiptStatus.ISSUED.value
    issued_at: datetime


# =============================================================================
# Issuance state
# =============================================================================

class IssuanceState(str, Enum):
    """Per-payment issuance state.

    PENDING and ISSUED are derived (no claim row / receipt exists);
    the others are stored on the claim row.
    """
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    FAILED = "FAILED"
    UNCERTAIN = "UNCERTAIN"
    ISSUED = "ISSUED"


class IssuanceAttempt(RecordBase):
    payment_id: int
    state: IssuanceState
    error_message: Optional[str] = None
    updated_at: datetime


# =============================================================================
# Ingestion
# =============================================================================

class DateRange(RecordBase):
    """Inclusive date range for a bank statement request."""

    model_config = ConfigDict(frozen=True)

    start: date
    end: date

    @model_validator(mode="after")
    def _check_order(self) -> "DateRange":
        if self.start > self.end:
            raise ValueError(f"start {self.start} is after end {self.end}")
        return self

    @classmethod
    def last_days(cls, days: int, today: Optional[date] = None) -> "DateRange":
        """From ``days`` days before ``today`` through ``today``."""
        end = today or date.today()
        return cls(start=end - timedelta(days=days), end=end)


class IngestionError(RecordBase):
    """A single transaction that could not be ingested."""
    external_id: Optional[str] = None
    message: str


class IngestionResult(RecordBase):
    """Summary of one ingestion run for one tenant.

    Every fetched transaction is counted exactly once as created,
    duplicate or error.
    """

    company_id: int
    date_range: DateRange
    fetched: int = 0
    created: int = 0
    duplicates: int = 0
    errors: List[IngestionError] = Field(default_factory=list)
    created_payment_ids: List[int] = Field(default_factory=list)
    target_payment_ids: List[int] = Field(default_factory=list)

    @property
    def is_balanced(self) -> bool:
        return self.fetched == self.created + self.duplicates + len(self.errors)


class TenantIngestionOutcome(RecordBase):
    """Per-tenant outcome of a multi-tenant ingestion run."""
    company_id: int
    result: Optional[IngestionResult] = None
    error_kind: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.result is not None
