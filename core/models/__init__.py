"""Core data models - typed records shared by ingestion and issuance."""

from core.models.records import (
    AmountValue,
    Company,
    Payment,
    Receipt,
    ReceiptStatus,
    IssuanceState,
    IssuanceAttempt,
    DateRange,
    IngestionError,
    IngestionResult,
    TenantIngestionOutcome,
)
from core.models.money import (
    ONE_UNIT_QUANTITY,
    to_minor_units,
    from_minor_units,
)

__all__ = [
    # Records
    "AmountValue",
    "Company",
    "Payment",
    "Receipt",
    "ReceiptStatus",
    "IssuanceState",
    "IssuanceAttempt",
    # Ingestion
    "DateRange",
    "IngestionError",
    "IngestionResult",
    "TenantIngestionOutcome",
    # Money
    "ONE_UNIT_QUANTITY",
    "to_minor_units",
    "from_minor_units",
]
