"""Fiscal receipt issuance.

Turns a target, unissued payment into exactly one fiscal receipt:

    PENDING --claim--> IN_PROGRESS --commit--> ISSUED
                           |--definitive failure--> FAILED (may retry)
                           '--unknown outcome-----> UNCERTAIN (manual release)

The claim row is the per-payment lock. The fiscal submission is attempted
once per call; nothing is awaited between the fiscal response and the
receipt commit.
"""

import asyncio
from typing import List, Optional

from classification.product_title import ProductTitleResolver
from connectors.base import (
    FiscalCredentials,
    FiscalGood,
    FiscalPaymentLeg,
    FiscalPaymentType,
    FiscalReceipt,
    FiscalReceiptRequest,
    FiscalReceiptSink,
    FiscalSubmissionAmbiguous,
)
from core.config import DEFAULT_RECEIPT_FOOTER
from core.errors import (
    AlreadyIssued,
    CompanyNotFound,
    CredentialsMissing,
    DecryptionError,
    FiscalSubmissionFailed,
    PaymentNotEligible,
    PaymentNotFound,
    PersistenceConflict,
    UpstreamError,
)
from core.models.money import ONE_UNIT_QUANTITY, to_minor_units
from core.models.records import Company, Payment, Receipt, ReceiptStatus
from core.observability.logging import get_logger, with_correlation
from core.security.vault import CredentialVault
from storage.db import PaymentStore

logger = get_logger(__name__)

DEFAULT_HEADER_TEMPLATE = "Платіж від: {sender_name}"


class ReceiptIssuanceWorkflow:
    """Issues fiscal receipts for stored payments.

    Usage:
        workflow = ReceiptIssuanceWorkflow(store, vault, sink, title_resolver)
        receipt = await workflow.issue(payment_id)
    """

    def __init__(
        self,
        store: PaymentStore,
        vault: CredentialVault,
        sink: FiscalReceiptSink,
        title_resolver: ProductTitleResolver,
        header_template: str = DEFAULT_HEADER_TEMPLATE,
        footer: Optional[str] = DEFAULT_RECEIPT_FOOTER,
    ):
        self.store = store
        self.vault = vault
        self.sink = sink
        self.title_resolver = title_resolver
        self.header_template = header_template
        self.footer = footer

    # =========================================================================
    # Request building
    # =========================================================================

    def build_request(self, company: Company, payment: Payment) -> FiscalReceiptRequest:
        """One good, one cashless payment leg, both equal to the payment amount."""
        price = to_minor_units(payment.amount)
        header = None
        if payment.sender_name:
            header = self.header_template.format(sender_name=payment.sender_name)

        return FiscalReceiptRequest(
            goods=[
                FiscalGood(
                    code=self.title_resolver.resolve_code(payment),
                    name=self.title_resolver.resolve_title(company, payment),
                    price=price,
                    quantity=ONE_UNIT_QUANTITY,
                )
            ],
            payments=[FiscalPaymentLeg(type=FiscalPaymentType.CASHLESS, value=price)],
            cashier_name=company.name,
            header=header,
            footer=self.footer or None,
        )

    def _decrypt_credentials(self, company: Company) -> FiscalCredentials:
        return FiscalCredentials(
            license_key=self.vault.decrypt(company.fiscal_license_key_encrypted),
            cashier_login=company.fiscal_cashier_login,
            cashier_pin=self.vault.decrypt(company.fiscal_cashier_pin_encrypted),
        )

    # =========================================================================
    # Issue
    # =========================================================================

    def _load(self, payment_id: int):
        payment = self.store.get_payment(payment_id)
        if payment is None:
            raise PaymentNotFound(f"Payment {payment_id} not found")
        company = self.store.get_company(payment.company_id)
        if company is None:
            raise CompanyNotFound(f"Company {payment.company_id} not found")
        return payment, company

    def _check_not_issued(self, payment: Payment) -> None:
        if payment.receipt_issued:
            raise AlreadyIssued(
                f"Receipt already issued for payment {payment.id}",
                payment_id=payment.id,
                receipt_id=payment.receipt_id,
            )

        # Receipt committed but flag lost: repair the flag, drop any stale claim
        existing = self.store.get_receipt_for_payment(payment.id)
        if existing is not None:
            logger.warning(
                f"Payment {payment.id} has receipt {existing.id} but is not flagged; repairing",
                extra_fields={"receipt_id": existing.id},
            )
            self.store.mark_payment_issued(payment.id, existing.id)
            self.store.release_claim(payment.id)
            raise AlreadyIssued(
                f"Receipt already issued for payment {payment.id}",
                payment_id=payment.id,
                receipt_id=existing.id,
            )

    async def issue(self, payment_id: int) -> Receipt:
        """Issue the fiscal receipt for one payment.

        Args:
            payment_id: Stored payment id

        Returns:
            The committed Receipt

        Raises:
            PaymentNotFound / CompanyNotFound: Unknown payment or tenant
            AlreadyIssued: Receipt exists (flag repaired if it was missing)
            PaymentNotEligible: Payment is not a target payment
            CredentialsMissing: No fiscal license key, cashier login or PIN
            PersistenceConflict: Another attempt is running or unresolved
            DecryptionError: Fiscal credentials cannot be decrypted
            FiscalSubmissionFailed: Fiscal system failed; see ``ambiguous``
        """
        with with_correlation(payment_id=payment_id, operation="issue"):
            payment, company = self._load(payment_id)

            with with_correlation(company_id=company.id, external_id=payment.external_id):
                self._check_not_issued(payment)

                if not payment.is_target:
                    raise PaymentNotEligible(
                        f"Payment {payment.id} is not eligible for a receipt"
                    )

                missing = company.missing_fiscal_credentials()
                if missing:
                    raise CredentialsMissing(
                        f"Company {company.id} has no fiscal credentials configured",
                        company_id=company.id,
                        missing=missing,
                    )

                self.store.claim_issuance(payment.id)
                try:
                    credentials = self._decrypt_credentials(company)
                    request = self.build_request(company, payment)
                except DecryptionError:
                    self.store.release_claim(payment.id)
                    raise
                except Exception as e:
                    # Nothing was sent yet
                    self.store.mark_attempt_failed(payment.id, f"{type(e).__name__}: {e}")
                    raise

                fiscal = await self._submit(payment, credentials, request)
                return self._commit(company, payment, request, fiscal)

    async def _submit(
        self,
        payment: Payment,
        credentials: FiscalCredentials,
        request: FiscalReceiptRequest,
    ) -> FiscalReceipt:
        logger.info(
            f"Submitting receipt for {payment.amount} {payment.currency}",
            extra_fields={"amount_minor": request.total, "sink": self.sink.name},
        )
        try:
            return await self.sink.issue_receipt(credentials, request)

        except FiscalSubmissionAmbiguous as e:
            self.store.mark_attempt_uncertain(payment.id, str(e))
            raise FiscalSubmissionFailed(
                f"Receipt submission outcome unknown for payment {payment.id}; "
                f"reconcile manually before retrying",
                ambiguous=True,
            ) from e

        except UpstreamError as e:
            self.store.mark_attempt_failed(payment.id, e.message)
            raise FiscalSubmissionFailed(
                e.message,
                status_code=e.status_code,
                upstream_body=e.upstream_body,
            ) from e

        except (Exception, asyncio.CancelledError) as e:
            # Interrupted mid-submission: the receipt may exist
            self.store.mark_attempt_uncertain(payment.id, f"{type(e).__name__}: {e}")
            if isinstance(e, asyncio.CancelledError):
                raise
            raise FiscalSubmissionFailed(
                f"Receipt submission interrupted for payment {payment.id}",
                ambiguous=True,
            ) from e

    def _commit(
        self,
        company: Company,
        payment: Payment,
        request: FiscalReceiptRequest,
        fiscal: FiscalReceipt,
    ) -> Receipt:
        if fiscal.total is not None and fiscal.total != request.total:
            logger.warning(
                f"Fiscal total {fiscal.total} differs from requested {request.total}",
                extra_fields={"receipt": fiscal.receipt_id},
            )

        receipt = Receipt(
            company_id=company.id,
            payment_id=payment.id,
            external_receipt_id=fiscal.receipt_id,
            fiscal_code=fiscal.fiscal_code,
            amount=payment.amount,
            receipt_url=fiscal.receipt_url,
            pdf_url=fiscal.pdf_url,
            status=fiscal.status or ReceiptStatus.ISSUED.value,
            issued_at=fiscal.created_at,
        )
        try:
            stored = self.store.commit_receipt(receipt)
        except PersistenceConflict:
            self.store.mark_attempt_uncertain(
                payment.id,
                f"Fiscal receipt {fiscal.receipt_id} issued but not stored",
            )
            logger.error(
                f"Fiscal receipt {fiscal.receipt_id} issued but could not be stored",
                extra_fields={"receipt": fiscal.receipt_id},
            )
            raise

        logger.info(
            f"Receipt {stored.id} issued",
            extra_fields={"receipt": fiscal.receipt_id, "fiscal_code": fiscal.fiscal_code},
        )
        return stored

    # =========================================================================
    # Maintenance
    # =========================================================================

    def reconcile_orphans(self, company_id: Optional[int] = None) -> List[Receipt]:
        """Flag every payment whose receipt exists but whose flag was lost.

        Returns:
            Receipts whose payments were repaired
        """
        orphans = self.store.find_orphan_receipts(company_id)
        for receipt in orphans:
            self.store.mark_payment_issued(receipt.payment_id, receipt.id)
            self.store.release_claim(receipt.payment_id)
            logger.info(
                f"Repaired issued flag for payment {receipt.payment_id}",
                extra_fields={"payment_id": receipt.payment_id, "receipt_id": receipt.id},
            )
        return orphans

    def release_claim(self, payment_id: int) -> bool:
        """Clear a FAILED or UNCERTAIN claim after manual reconciliation.

        Returns:
            True if a claim was removed

        Raises:
            PaymentNotFound: Unknown payment
        """
        if self.store.get_payment(payment_id) is None:
            raise PaymentNotFound(f"Payment {payment_id} not found")
        released = self.store.release_claim(payment_id)
        if released:
            logger.info(
                f"Issuance claim released for payment {payment_id}",
                extra_fields={"payment_id": payment_id},
            )
        return released
