"""Typed error kinds for the ingestion and issuance pipeline.

Every error the two public operations can raise derives from
``PipelineError``. ``to_dict()`` is what callers may show to end users: the
kind and a summarized message. Raw upstream bodies stay on the exception for
logging only.
"""

from typing import Any, Dict, Optional

MAX_UPSTREAM_BODY = 500


def _truncate(body: str, limit: int = MAX_UPSTREAM_BODY) -> str:
    if len(body) <= limit:
        return body
    return body[:limit] + "..."


class PipelineError(Exception):
    """Base class for all pipeline errors."""

    kind: str = "PipelineError"
    retryable: bool = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.kind, "message": self.message}


class CredentialsMissing(PipelineError):
    """Tenant has no bank or fiscal credentials configured."""

    kind = "CredentialsMissing"

    def __init__(self, message: str, company_id: Optional[int] = None, missing: tuple = ()):
        super().__init__(message)
        self.company_id = company_id
        self.missing = tuple(missing)


class DecryptionError(PipelineError):
    """Stored secret cannot be decrypted with the configured key.

    Treated as a configuration failure (wrong or rotated key), never as
    data corruption.
    """

    kind = "DecryptionError"


class UpstreamError(PipelineError):
    """Base for failures reported by the bank or fiscal system."""

    kind = "UpstreamError"

    def __init__(
        self,
        message: str,
        source: str = "",
        status_code: int = 0,
        upstream_body: str = "",
    ):
        super().__init__(message)
        self.source = source
        self.status_code = status_code
        self.upstream_body = _truncate(upstream_body or "")

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        if self.source:
            data["source"] = self.source
        if self.status_code:
            data["status_code"] = self.status_code
        return data


class UpstreamUnavailable(UpstreamError):
    """Upstream unreachable, timed out, or answered 5xx/429."""

    kind = "UpstreamUnavailable"
    retryable = True


class UpstreamRejected(UpstreamError):
    """Upstream answered 4xx or a business-rule rejection."""

    kind = "UpstreamRejected"


class CompanyNotFound(PipelineError):
    kind = "CompanyNotFound"


class PaymentNotFound(PipelineError):
    kind = "PaymentNotFound"


class InvalidDateRange(PipelineError):
    """Statement range is malformed or starts after it ends."""

    kind = "InvalidDateRange"


class PaymentNotEligible(PipelineError):
    """Payment is not a target payment and must not get a receipt."""

    kind = "PaymentNotEligible"


class AlreadyIssued(PipelineError):
    """A receipt already exists for the payment.

    Not an operational failure: the receipt can be looked up by id.
    Must never be retried.
    """

    kind = "AlreadyIssued"

    def __init__(self, message: str, payment_id: int, receipt_id: Optional[int] = None):
        super().__init__(message)
        self.payment_id = payment_id
        self.receipt_id = receipt_id

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["payment_id"] = self.payment_id
        if self.receipt_id is not None:
            data["receipt_id"] = self.receipt_id
        return data


class FiscalSubmissionFailed(PipelineError):
    """Fiscal receipt request failed.

    ``ambiguous`` is True when the request may have reached the fiscal
    system (timeout or dropped connection during submission). Such attempts
    need manual reconciliation and are not retried automatically.
    """

    kind = "FiscalSubmissionFailed"

    def __init__(
        self,
        message: str,
        status_code: int = 0,
        ambiguous: bool = False,
        upstream_body: str = "",
    ):
        super().__init__(message)
        self.status_code = status_code
        self.ambiguous = ambiguous
        self.upstream_body = _truncate(upstream_body or "")
        self.retryable = not ambiguous

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["ambiguous"] = self.ambiguous
        if self.status_code:
            data["status_code"] = self.status_code
        return data


class PersistenceConflict(PipelineError):
    """Uniqueness violation or concurrent claim surfaced from the store."""

    kind = "PersistenceConflict"


# Error kinds Temporal must not retry
NON_RETRYABLE_ERROR_TYPES = [
    "CredentialsMissing",
    "DecryptionError",
    "UpstreamRejected",
    "CompanyNotFound",
    "PaymentNotFound",
    "PaymentNotEligible",
    "InvalidDateRange",
    "AlreadyIssued",
    "FiscalSubmissionFailed",
    "PersistenceConflict",
]
