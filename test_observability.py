"""
Observability Tests

Correlated structured logging: context propagation, formatters and
secret redaction.
"""

import asyncio
import json
import logging

import pytest

from core.observability.logging import (
    CorrelatedLogger,
    CorrelationContext,
    HumanReadableFormatter,
    StructuredFormatter,
    get_correlation_context,
    with_correlation,
)


def _record(msg="Test message", extra_fields=None):
    record = logging.LogRecord(
        name="test",
        level=logging.INFO,
        pathname="test.py",
        lineno=10,
        msg=msg,
        args=(),
        exc_info=None,
    )
    if extra_fields is not None:
        record.extra_fields = extra_fields
    return record


class _ListHandler(logging.Handler):

    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


class TestCorrelationContext:

    def test_to_dict_skips_empty(self):
        ctx = CorrelationContext(company_id=7, operation="ingest")
        assert ctx.to_dict() == {"company_id": 7, "operation": "ingest"}

    def test_nested_contexts_merge_and_reset(self):
        assert get_correlation_context().company_id is None

        with with_correlation(company_id=7, operation="issue"):
            with with_correlation(payment_id=42):
                ctx = get_correlation_context()
                assert (ctx.company_id, ctx.payment_id, ctx.operation) == (7, 42, "issue")
            assert get_correlation_context().payment_id is None

        assert get_correlation_context().company_id is None

    @pytest.mark.asyncio
    async def test_context_isolated_per_task(self):
        seen = {}

        async def work(company_id):
            with with_correlation(company_id=company_id):
                await asyncio.sleep(0)
                seen[company_id] = get_correlation_context().company_id

        await asyncio.gather(work(1), work(2))
        assert seen == {1: 1, 2: 2}


class TestFormatters:

    def test_structured_formatter_json_output(self):
        with with_correlation(company_id=7, payment_id=42):
            data = json.loads(StructuredFormatter().format(_record(extra_fields={"created": 3})))

        assert data["message"] == "Test message"
        assert data["level"] == "INFO"
        assert data["company_id"] == 7
        assert data["payment_id"] == 42
        assert data["created"] == 3

    def test_structured_formatter_keeps_unicode(self):
        output = StructuredFormatter().format(_record(msg="Платіж від: ФОП"))
        assert "Платіж від: ФОП" in output

    def test_human_formatter_shows_correlation(self):
        with with_correlation(company_id=7, payment_id=42):
            output = HumanReadableFormatter().format(_record(extra_fields={"amount": "1.00"}))

        assert "[co:7/pay:42]" in output
        assert "amount=1.00" in output

    @pytest.mark.parametrize("formatter", [StructuredFormatter(), HumanReadableFormatter()])
    def test_secrets_are_redacted(self, formatter):
        output = formatter.format(_record(extra_fields={
            "token": "bank-secret",
            "cashier_pin": "pin-secret",
            "license_key": "lic-secret",
            "source": "privatbank",
        }))

        assert "bank-secret" not in output
        assert "lic-secret" not in output
        assert "pin-secret" not in output
        assert "privatbank" in output


class TestCorrelatedLogger:

    def test_extra_fields_attached(self):
        handler = _ListHandler()
        base = logging.getLogger("test.correlated")
        base.addHandler(handler)
        base.setLevel(logging.INFO)
        try:
            logger = CorrelatedLogger(base)
            logger.info("Stored payment", extra_fields={"payment_id": 5})
            logger.debug("hidden")
        finally:
            base.removeHandler(handler)

        assert len(handler.records) == 1
        assert handler.records[0].extra_fields == {"payment_id": 5}
        assert handler.records[0].getMessage() == "Stored payment"
