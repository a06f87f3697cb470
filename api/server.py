"""FastAPI server for the payment receipt pipeline.

Run with ``python -m api.server`` or ``uvicorn api.server:app``.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI

from api.errors import register_error_handlers
from api.routes import health, payments, receipts
from core import __version__
from core.observability.logging import get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logger.info(f"Payment receipts API {__version__} starting")
    yield
    logger.info("Payment receipts API shutting down")


def create_app() -> FastAPI:
    """Build the app: pipeline error mapping plus payment and receipt routers."""
    app = FastAPI(
        title="Payment Receipts API",
        description="Bank payment ingestion and fiscal receipt issuance",
        version=__version__,
        lifespan=lifespan,
    )
    register_error_handlers(app)

    app.include_router(health.router, tags=["Health"])
    app.include_router(payments.router, prefix="/payments", tags=["Payments"])
    app.include_router(receipts.router, prefix="/receipts", tags=["Receipts"])
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("api.server:app", host="127.0.0.1", port=8000)
