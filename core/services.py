"""Service wiring.

Builds the store, vault, connectors and the two pipeline operations from
Settings. Activities, API routes and scripts all get their services here so
every entry point is configured the same way.
"""

from dataclasses import dataclass
from typing import Optional

from classification.account import AccountClassifier
from classification.product_title import ProductTitleResolver
from connectors.base import BankTransactionSource, FiscalReceiptSink
from connectors.checkbox import CheckboxClient
from connectors.privatbank import PrivatBankClient
from core.config import Settings, get_settings
from core.security.vault import CredentialVault
from ingestion.pipeline import PaymentIngestionPipeline
from issuance.workflow import ReceiptIssuanceWorkflow
from storage.db import PaymentStore


@dataclass
class Services:
    settings: Settings
    store: PaymentStore
    vault: CredentialVault
    ingestion: PaymentIngestionPipeline
    issuance: ReceiptIssuanceWorkflow


def build_services(
    settings: Optional[Settings] = None,
    bank_source: Optional[BankTransactionSource] = None,
    fiscal_sink: Optional[FiscalReceiptSink] = None,
) -> Services:
    """Wire all components from settings.

    Args:
        settings: Defaults to the process-wide settings
        bank_source: Override the PrivatBank client (tests)
        fiscal_sink: Override the Checkbox client (tests)

    Raises:
        ValueError: Encryption key missing or invalid
    """
    settings = settings or get_settings()

    store = PaymentStore(settings.db_path)
    store.init_db()
    vault = CredentialVault(settings.encryption_key)

    bank_source = bank_source or PrivatBankClient(
        settings.privatbank_base_url,
        timeout_seconds=settings.http_timeout_seconds,
    )
    fiscal_sink = fiscal_sink or CheckboxClient(
        settings.checkbox_base_url,
        receipt_view_url=settings.checkbox_receipt_view_url,
        client_name=settings.checkbox_client_name,
        client_version=settings.checkbox_client_version,
        timeout_seconds=settings.http_timeout_seconds,
    )

    ingestion = PaymentIngestionPipeline(
        store,
        vault,
        AccountClassifier.from_settings(settings),
        bank_source,
        default_currency=settings.default_currency,
        lookback_days=settings.ingestion_lookback_days,
    )
    issuance = ReceiptIssuanceWorkflow(
        store,
        vault,
        fiscal_sink,
        ProductTitleResolver.from_settings(settings),
        header_template=settings.receipt_header_template,
        footer=settings.receipt_footer,
    )
    return Services(
        settings=settings,
        store=store,
        vault=vault,
        ingestion=ingestion,
        issuance=issuance,
    )


_services: Optional[Services] = None


def get_services() -> Services:
    """Process-wide services (built on first call)."""
    global _services
    if _services is None:
        _services = build_services()
    return _services


def set_services(services: Optional[Services]) -> None:
    """Replace the process-wide services; None resets them."""
    global _services
    _services = services
