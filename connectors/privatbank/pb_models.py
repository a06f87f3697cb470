"""PrivatBank statement API models.

These map to the PrivatBank business API schema. They are separate from the
normalized BankTransaction in connectors/base.py.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

PB_DATE_FORMAT = "%d-%m-%Y"
PB_DATETIME_FORMATS = ("%d.%m.%Y %H:%M:%S", "%d.%m.%Y %H:%M")
PB_DAY_FORMAT = "%d.%m.%Y"


class PBBaseModel(BaseModel):
    """Base model for PrivatBank API entities."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", coerce_numbers_to_str=True)


class PBTransaction(PBBaseModel):
    """One statement transaction.

    Maps to: /statements/transactions -> transactions[]
    """
    id: Optional[str] = Field(None, alias="ID")
    ref: Optional[str] = Field(None, alias="REF")
    refn: Optional[str] = Field(None, alias="REFN")
    num_doc: Optional[str] = Field(None, alias="NUM_DOC")
    amount: Optional[str] = Field(None, alias="SUM")
    currency: Optional[str] = Field(None, alias="CCY")
    description: Optional[str] = Field(None, alias="OSND")
    counterparty_account: Optional[str] = Field(None, alias="AUT_CNTR_ACC")
    counterparty_name: Optional[str] = Field(None, alias="AUT_CNTR_NAM")
    counterparty_tax_id: Optional[str] = Field(None, alias="AUT_CNTR_CRF")
    date_time: Optional[str] = Field(None, alias="DATE_TIME_DAT_OD_TIM_P")
    day: Optional[str] = Field(None, alias="DAT_OD")
    time: Optional[str] = Field(None, alias="TIM_P")
    trantype: Optional[str] = Field(None, alias="TRANTYPE")

    @property
    def external_id(self) -> Optional[str]:
        """Bank's unique id: ID, else REF + REFN."""
        if self.id and str(self.id).strip():
            return str(self.id).strip()
        if self.ref:
            return f"{self.ref.strip()}{(self.refn or '').strip()}"
        return None

    def transaction_datetime(self) -> datetime:
        """Parse the transaction timestamp.

        Raises:
            ValueError: No parseable date
        """
        if self.date_time:
            for fmt in PB_DATETIME_FORMATS:
                try:
                    return datetime.strptime(self.date_time.strip(), fmt)
                except ValueError:
                    continue
        if self.day:
            stamp = self.day.strip()
            if self.time:
                try:
                    return datetime.strptime(f"{stamp} {self.time.strip()}", "%d.%m.%Y %H:%M")
                except ValueError:
                    pass
            return datetime.strptime(stamp, PB_DAY_FORMAT)
        raise ValueError("Transaction has no date")


class PBStatementPage(PBBaseModel):
    """One page of /statements/transactions."""
    status: str = ""
    exist_next_page: bool = False
    next_page_id: Optional[str] = None
    transactions: List[dict] = Field(default_factory=list)
