"""Persistence for tenants, payments, receipts and issuance claims."""

from storage.db import DEFAULT_DB_PATH, PaymentStore

__all__ = ["DEFAULT_DB_PATH", "PaymentStore"]
