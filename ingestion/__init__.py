"""Bank transaction ingestion."""

from ingestion.pipeline import PaymentIngestionPipeline

__all__ = ["PaymentIngestionPipeline"]
