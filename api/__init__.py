"""API Package.

FastAPI server for payment ingestion and fiscal receipt issuance.
"""

from api.server import create_app, app

__all__ = [
    "create_app",
    "app",
]
