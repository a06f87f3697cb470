"""Checkbox cashier API models.

Only the fields the client reads are declared; everything else is ignored.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class CBBaseModel(BaseModel):
    """Base model for Checkbox API entities."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", coerce_numbers_to_str=True)


class CBSignInResponse(CBBaseModel):
    """Maps to: POST /cashier/signin"""
    access_token: str
    token_type: Optional[str] = None


class CBShift(CBBaseModel):
    """Maps to: GET /cashier/shift, POST /shifts"""
    id: str
    status: str

    @property
    def is_open(self) -> bool:
        return self.status.upper() == "OPENED"

    @property
    def is_closed(self) -> bool:
        return self.status.upper() == "CLOSED"


class CBReceipt(CBBaseModel):
    """Maps to: POST /receipts/sell"""
    id: str
    fiscal_code: Optional[str] = None
    status: str
    created_at: datetime
    total_sum: Optional[int] = None
