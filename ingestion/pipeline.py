"""Payment ingestion.

Pulls a tenant's bank transactions for a date range, classifies each one and
stores the ones not seen before:

1. Resolve and decrypt bank credentials
2. Fetch raw transactions (whole batch fails on upstream errors)
3. Normalize + classify (malformed records are reported, not fatal)
4. De-duplicate by (company_id, external_id)
5. Persist new payments with receipt_issued = False
"""

import asyncio
from typing import Iterable, List, Optional

from classification.account import AccountClassifier
from connectors.base import BankTransaction, BankTransactionSource
from core.errors import CredentialsMissing, PipelineError
from core.models.records import (
    Company,
    DateRange,
    IngestionError,
    IngestionResult,
    Payment,
    TenantIngestionOutcome,
)
from core.observability.logging import get_logger, with_correlation
from core.security.vault import CredentialVault
from storage.db import PaymentStore

logger = get_logger(__name__)

DEFAULT_LOOKBACK_DAYS = 30
DEFAULT_MAX_CONCURRENCY = 5


class PaymentIngestionPipeline:
    """Imports bank transactions as payments for one or more tenants.

    Usage:
        pipeline = PaymentIngestionPipeline(store, vault, classifier, bank_source)
        result = await pipeline.ingest(company)
    """

    def __init__(
        self,
        store: PaymentStore,
        vault: CredentialVault,
        classifier: AccountClassifier,
        bank_source: BankTransactionSource,
        default_currency: str = "UAH",
        lookback_days: int = DEFAULT_LOOKBACK_DAYS,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    ):
        self.store = store
        self.vault = vault
        self.classifier = classifier
        self.bank_source = bank_source
        self.default_currency = default_currency
        self.lookback_days = lookback_days
        self.max_concurrency = max_concurrency

    def default_range(self) -> DateRange:
        return DateRange.last_days(self.lookback_days)

    def _to_payment(self, company: Company, tx: BankTransaction) -> Payment:
        return Payment(
            company_id=company.id,
            external_id=tx.external_id,
            amount=tx.amount,
            currency=tx.currency or self.default_currency,
            description=tx.description,
            sender_account=tx.payer_account,
            sender_name=tx.payer_name,
            sender_tax_id=tx.payer_tax_id,
            document_number=tx.document_number,
            payment_date=tx.transaction_date,
            receipt_issued=False,
            is_target=self.classifier.is_target(tx.payer_account),
        )

    async def ingest(
        self,
        company: Company,
        date_range: Optional[DateRange] = None,
    ) -> IngestionResult:
        """Import one tenant's transactions for an inclusive date range.

        Args:
            company: Tenant to ingest for
            date_range: Range to fetch; defaults to the last ``lookback_days``

        Returns:
            IngestionResult where fetched == created + duplicates + len(errors)

        Raises:
            CredentialsMissing: No merchant id or bank token
            DecryptionError: Bank token cannot be decrypted
            UpstreamUnavailable / UpstreamRejected: Bank fetch failed
        """
        date_range = date_range or self.default_range()

        with with_correlation(company_id=company.id, operation="ingest"):
            missing = company.missing_bank_credentials()
            if missing:
                raise CredentialsMissing(
                    f"Company {company.id} has no bank credentials configured",
                    company_id=company.id,
                    missing=missing,
                )
            token = self.vault.decrypt(company.bank_token_encrypted)

            logger.info(
                f"Fetching transactions {date_range.start} - {date_range.end}",
                extra_fields={"source": self.bank_source.name},
            )
            raw_transactions = await self.bank_source.fetch_transactions(
                company.bank_merchant_id,
                token,
                date_range.start,
                date_range.end,
            )

            result = IngestionResult(
                company_id=company.id,
                date_range=date_range,
                fetched=len(raw_transactions),
            )

            for raw in raw_transactions:
                self._ingest_one(company, raw, result)

            logger.info(
                f"Ingestion finished: {result.created} new, "
                f"{result.duplicates} duplicates, {len(result.errors)} errors",
                extra_fields={
                    "fetched": result.fetched,
                    "created": result.created,
                    "duplicates": result.duplicates,
                    "errors": len(result.errors),
                },
            )
            return result

    def _ingest_one(self, company: Company, raw: dict, result: IngestionResult) -> None:
        try:
            tx = self.bank_source.normalize(raw)
            payment = self._to_payment(company, tx)
        except ValueError as e:
            reference = self.bank_source.raw_reference(raw)
            logger.warning(
                f"Skipping malformed transaction: {e}",
                extra_fields={"external_id": reference},
            )
            result.errors.append(IngestionError(
                external_id=reference,
                message=str(e),
            ))
            return

        if self.store.find_payment_by_external_id(company.id, payment.external_id):
            result.duplicates += 1
            return

        stored = self.store.insert_payment(payment)
        if stored is None:
            # Lost a race with a concurrent ingestion of the same tenant
            result.duplicates += 1
            return

        result.created += 1
        result.created_payment_ids.append(stored.id)
        if stored.is_target:
            result.target_payment_ids.append(stored.id)
        logger.debug(
            f"Stored payment {stored.external_id} ({self.classifier.describe(stored.sender_account)})",
            extra_fields={"payment_id": stored.id, "amount": str(stored.amount)},
        )

    async def ingest_many(
        self,
        companies: Iterable[Company],
        date_range: Optional[DateRange] = None,
    ) -> List[TenantIngestionOutcome]:
        """Ingest several tenants concurrently.

        A failure for one tenant (missing credentials, undecryptable token,
        bank outage) is recorded in its outcome and never affects the others.
        """
        date_range = date_range or self.default_range()
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def run(company: Company) -> TenantIngestionOutcome:
            async with semaphore:
                try:
                    result = await self.ingest(company, date_range)
                except PipelineError as e:
                    logger.warning(
                        f"Ingestion failed for company {company.id}: {e.message}",
                        extra_fields={"company_id": company.id, "error": e.kind},
                    )
                    return TenantIngestionOutcome(
                        company_id=company.id,
                        error_kind=e.kind,
                        error_message=e.message,
                    )
                return TenantIngestionOutcome(company_id=company.id, result=result)

        return list(await asyncio.gather(*(run(c) for c in companies)))
