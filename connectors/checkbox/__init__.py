"""Checkbox Connector Package.

Implements FiscalReceiptSink for the Checkbox cashier API.
"""

from connectors.checkbox.cb_client import CheckboxClient
from connectors.checkbox.cb_models import CBReceipt, CBShift, CBSignInResponse

__all__ = [
    "CheckboxClient",
    "CBReceipt",
    "CBShift",
    "CBSignInResponse",
]
