"""Connectors - bank statement sources and fiscal receipt sinks.

This package contains the abstract interfaces and concrete implementations
for specific providers (PrivatBank, Checkbox).

Key Design Principle:
- Ingestion and issuance depend ONLY on BankTransactionSource and
  FiscalReceiptSink
- All methods return NORMALIZED types (BankTransaction, FiscalReceipt)
- No provider-specific types leak through the interface

To add a new provider:
1. Create a new folder (e.g., monobank/)
2. Implement BankTransactionSource or FiscalReceiptSink
3. Wire it in core/services.py
"""

from connectors.base import (
    BankTransaction,
    BankTransactionSource,
    FiscalCredentials,
    FiscalGood,
    FiscalPaymentLeg,
    FiscalPaymentType,
    FiscalReceipt,
    FiscalReceiptRequest,
    FiscalReceiptSink,
    FiscalSubmissionAmbiguous,
)

__all__ = [
    # Bank
    "BankTransaction",
    "BankTransactionSource",
    # Fiscal
    "FiscalCredentials",
    "FiscalGood",
    "FiscalPaymentLeg",
    "FiscalPaymentType",
    "FiscalReceipt",
    "FiscalReceiptRequest",
    "FiscalReceiptSink",
    "FiscalSubmissionAmbiguous",
]
