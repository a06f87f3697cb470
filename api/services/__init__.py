"""API Services Package."""

from api.services.dependencies import get_pipeline_services

__all__ = ["get_pipeline_services"]
