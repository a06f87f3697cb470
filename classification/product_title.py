"""Receipt line-item title and code.

Title comes from a per-tenant table keyed by tax id, falling back to one
universal default. The payment description is not used.
"""

from typing import Mapping, Optional

from core.config import DEFAULT_PRODUCT_TITLE, Settings
from core.models import Company, Payment


class ProductTitleResolver:

    def __init__(
        self,
        titles_by_tax_id: Optional[Mapping[str, str]] = None,
        default_title: str = DEFAULT_PRODUCT_TITLE,
    ):
        if not default_title or not default_title.strip():
            raise ValueError("Default product title must not be empty")
        self._titles = {
            tax_id.strip(): title.strip()
            for tax_id, title in (titles_by_tax_id or {}).items()
            if title and title.strip()
        }
        self.default_title = default_title.strip()

    @classmethod
    def from_settings(cls, settings: Settings) -> "ProductTitleResolver":
        return cls(
            titles_by_tax_id=settings.product_titles,
            default_title=settings.default_product_title,
        )

    def resolve_title(self, company: Company, payment: Payment) -> str:
        return self._titles.get(company.tax_id.strip(), self.default_title)

    def resolve_code(self, payment: Payment) -> str:
        if payment.id is None:
            raise ValueError("Payment has no id; product code needs a stored payment")
        return str(payment.id)
