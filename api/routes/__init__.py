"""API Routes Package."""

from api.routes import health, payments, receipts

__all__ = ["health", "payments", "receipts"]
