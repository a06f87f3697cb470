"""Map pipeline errors to HTTP responses.

Only ``PipelineError.to_dict()`` reaches the client; upstream bodies and
secrets stay in the logs.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from core.errors import PipelineError
from core.observability.logging import get_logger

logger = get_logger(__name__)

STATUS_BY_KIND = {
    "CredentialsMissing": 400,
    "PaymentNotEligible": 400,
    "InvalidDateRange": 422,
    "CompanyNotFound": 404,
    "PaymentNotFound": 404,
    "AlreadyIssued": 409,
    "PersistenceConflict": 409,
    "DecryptionError": 500,
    "UpstreamUnavailable": 502,
    "UpstreamRejected": 502,
    "FiscalSubmissionFailed": 502,
}


def status_for(error: PipelineError) -> int:
    return STATUS_BY_KIND.get(error.kind, 500)


async def pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error(
            f"{request.method} {request.url.path} failed: {exc.kind}: {exc.message}",
            extra_fields={"upstream_body": getattr(exc, "upstream_body", "")},
        )
    else:
        logger.info(f"{request.method} {request.url.path} -> {status_code} {exc.kind}")
    return JSONResponse(status_code=status_code, content=exc.to_dict())


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PipelineError, pipeline_error_handler)
