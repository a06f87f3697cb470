"""Fiscal receipt issuance."""

from issuance.workflow import ReceiptIssuanceWorkflow

__all__ = ["ReceiptIssuanceWorkflow"]
