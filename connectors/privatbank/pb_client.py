"""PrivatBank statement client.

Lists a merchant's statement transactions for a date range, following
pagination, and normalizes them into BankTransaction.
"""

from datetime import date
from typing import Any, Dict, List, Optional

import aiohttp
from pydantic import ValidationError

from connectors.base import BankTransaction, BankTransactionSource
from connectors.http_client import ApiHttpClient, RetryConfig
from connectors.privatbank.pb_models import PB_DATE_FORMAT, PBStatementPage, PBTransaction
from core.errors import UpstreamRejected, UpstreamUnavailable
from core.observability.logging import get_logger

logger = get_logger(__name__)

SOURCE = "privatbank"
TRANSACTIONS_PATH = "/statements/transactions"
PAGE_LIMIT = 100
MAX_PAGES = 1000


class PrivatBankClient(BankTransactionSource):
    """BankTransactionSource backed by the PrivatBank business API.

    Usage:
        client = PrivatBankClient(settings.privatbank_base_url)
        raw = await client.fetch_transactions(merchant_id, token, start, end)
        txs = [client.normalize(r) for r in raw]
    """

    name = SOURCE

    def __init__(
        self,
        base_url: str,
        timeout_seconds: int = 30,
        retry_config: Optional[RetryConfig] = None,
        session: Optional[aiohttp.ClientSession] = None,
        page_limit: int = PAGE_LIMIT,
    ):
        self.base_url = base_url
        self.timeout_seconds = timeout_seconds
        self.retry_config = retry_config
        self._session = session
        self.page_limit = page_limit

    def _new_http(self) -> ApiHttpClient:
        return ApiHttpClient(
            SOURCE,
            self.base_url,
            timeout_seconds=self.timeout_seconds,
            retry_config=self.retry_config,
            session=self._session,
        )

    @staticmethod
    def _headers(merchant_id: str, token: str) -> Dict[str, str]:
        return {
            "id": merchant_id,
            "token": token,
            "Content-Type": "application/json;charset=utf-8",
            "Accept": "application/json",
        }

    async def fetch_transactions(
        self,
        merchant_id: str,
        token: str,
        start: date,
        end: date,
    ) -> List[Dict[str, Any]]:
        headers = self._headers(merchant_id, token)
        params = {
            "startDate": start.strftime(PB_DATE_FORMAT),
            "endDate": end.strftime(PB_DATE_FORMAT),
            "limit": str(self.page_limit),
        }

        transactions: List[Dict[str, Any]] = []
        async with self._new_http() as http:
            for page_number in range(MAX_PAGES):
                response = await http.request("GET", TRANSACTIONS_PATH, headers=headers, params=params)
                try:
                    page = PBStatementPage.model_validate(response)
                except ValidationError:
                    raise UpstreamUnavailable(
                        f"{SOURCE} returned an unexpected statement page",
                        source=SOURCE,
                    )

                if page.status and page.status.upper() != "SUCCESS":
                    raise UpstreamRejected(
                        f"{SOURCE} statement request failed: {page.status}",
                        source=SOURCE,
                    )

                transactions.extend(page.transactions)
                logger.debug(
                    f"Fetched statement page {page_number + 1}",
                    extra_fields={"count": len(page.transactions)},
                )

                if not page.exist_next_page or not page.next_page_id:
                    break
                params = dict(params, followId=page.next_page_id)
            else:
                raise UpstreamUnavailable(
                    f"{SOURCE} pagination did not finish after {MAX_PAGES} pages",
                    source=SOURCE,
                )

        return transactions

    def raw_reference(self, raw: Dict[str, Any]) -> Optional[str]:
        try:
            return PBTransaction.model_validate(raw).external_id
        except ValidationError:
            return None

    def normalize(self, raw: Dict[str, Any]) -> BankTransaction:
        try:
            tx = PBTransaction.model_validate(raw)
        except ValidationError as e:
            raise ValueError(f"Malformed transaction: {e.errors()[0]['msg']}")

        external_id = tx.external_id
        if not external_id:
            raise ValueError("Transaction has no id")
        if tx.amount is None or not str(tx.amount).strip():
            raise ValueError(f"Transaction {external_id} has no amount")

        try:
            return BankTransaction(
                external_id=external_id,
                amount=tx.amount,
                currency=tx.currency,
                description=tx.description,
                payer_name=tx.counterparty_name,
                payer_account=(tx.counterparty_account or "").replace(" ", "") or None,
                payer_tax_id=tx.counterparty_tax_id,
                document_number=tx.num_doc,
                transaction_date=tx.transaction_datetime(),
            )
        except ValidationError as e:
            raise ValueError(f"Transaction {external_id} is malformed: {e.errors()[0]['msg']}")
