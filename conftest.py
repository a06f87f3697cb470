"""Shared pytest fixtures: temporary store, vault, fake bank and fiscal systems."""

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest

from classification.account import AccountClassifier
from classification.product_title import ProductTitleResolver
from connectors.base import (
    FiscalCredentials,
    FiscalReceipt,
    FiscalReceiptRequest,
    FiscalReceiptSink,
)
from connectors.privatbank.pb_client import PrivatBankClient
from core.config import Settings
from core.security.vault import CredentialVault, generate_key
from core.services import Services
from ingestion.pipeline import PaymentIngestionPipeline
from issuance.workflow import ReceiptIssuanceWorkflow
from storage.db import PaymentStore

TARGET_ACCOUNT = "UA783220010000012345678901234"
NON_TARGET_ACCOUNT = "UA843052990000026001031613189"


def pb_transaction(
    tx_id: str,
    amount: str = "1500.00",
    account: Optional[str] = TARGET_ACCOUNT,
    name: str = "ФОП Іваненко Іван",
    when: str = "15.05.2024 10:30:00",
    **extra: Any,
) -> Dict[str, Any]:
    """Raw PrivatBank statement record."""
    raw = {
        "ID": tx_id,
        "SUM": amount,
        "CCY": "UAH",
        "OSND": "Оплата за товар",
        "AUT_CNTR_ACC": account,
        "AUT_CNTR_NAM": name,
        "AUT_CNTR_CRF": "1234567890",
        "NUM_DOC": f"doc-{tx_id}",
        "DATE_TIME_DAT_OD_TIM_P": when,
        "TRANTYPE": "C",
    }
    raw.update(extra)
    return raw


class FakeBankSource(PrivatBankClient):
    """PrivatBank normalization over canned statement records."""

    def __init__(self, transactions: Optional[List[Dict[str, Any]]] = None, error: Exception = None):
        super().__init__("https://bank.test/api")
        self.transactions = transactions or []
        self.error = error
        self.calls: List[tuple] = []

    async def fetch_transactions(self, merchant_id, token, start, end):
        self.calls.append((merchant_id, token, start, end))
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        return list(self.transactions)


class FakeFiscalSink(FiscalReceiptSink):
    """Fiscal system double that records every submission."""

    name = "fake-fiscal"

    def __init__(self, error: Exception = None, delay: float = 0.0):
        self.error = error
        self.delay = delay
        self.requests: List[FiscalReceiptRequest] = []
        self.credentials: List[FiscalCredentials] = []

    async def issue_receipt(self, credentials, request):
        self.requests.append(request)
        self.credentials.append(credentials)
        await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        number = len(self.requests)
        return FiscalReceipt(
            receipt_id=f"rcpt-{number}",
            fiscal_code=f"FC{number:06d}",
            status="DONE",
            created_at=datetime(2024, 5, 15, 12, 0, tzinfo=timezone.utc),
            receipt_url=f"https://check.test/rcpt-{number}",
            pdf_url=f"https://fiscal.test/receipts/rcpt-{number}/pdf",
            total=request.total,
        )


@pytest.fixture
def encryption_key() -> str:
    return generate_key()


@pytest.fixture
def vault(encryption_key) -> CredentialVault:
    return CredentialVault(encryption_key)


@pytest.fixture
def settings(tmp_path, encryption_key) -> Settings:
    return Settings(encryption_key=encryption_key, db_path=tmp_path / "payments.db")


@pytest.fixture
def store(settings) -> PaymentStore:
    store = PaymentStore(settings.db_path)
    store.init_db()
    return store


@pytest.fixture
def make_company(store, vault):
    """Factory for tenants with encrypted credentials."""
    counter = {"n": 0}

    def make(
        name: str = "ТОВ Тест",
        tax_id: Optional[str] = None,
        bank: bool = True,
        fiscal: bool = True,
    ):
        counter["n"] += 1
        return store.add_company(
            name=name,
            tax_id=tax_id or f"4000000{counter['n']}",
            bank_merchant_id="merchant-1" if bank else None,
            bank_token_encrypted=vault.encrypt("bank-token") if bank else None,
            fiscal_license_key_encrypted=vault.encrypt("license-key") if fiscal else None,
            fiscal_cashier_login="cashier" if fiscal else None,
            fiscal_cashier_pin_encrypted=vault.encrypt("1234") if fiscal else None,
        )

    return make


@pytest.fixture
def bank_source() -> FakeBankSource:
    return FakeBankSource()


@pytest.fixture
def fiscal_sink() -> FakeFiscalSink:
    return FakeFiscalSink()


@pytest.fixture
def pipeline(store, vault, bank_source) -> PaymentIngestionPipeline:
    return PaymentIngestionPipeline(store, vault, AccountClassifier(), bank_source)


@pytest.fixture
def issuance(store, vault, fiscal_sink) -> ReceiptIssuanceWorkflow:
    return ReceiptIssuanceWorkflow(store, vault, fiscal_sink, ProductTitleResolver())


@pytest.fixture
def services(settings, store, vault, pipeline, issuance) -> Services:
    return Services(
        settings=settings,
        store=store,
        vault=vault,
        ingestion=pipeline,
        issuance=issuance,
    )
