"""Streaming ingestion of hotel and offer files."""

from .loaders import hotel_pipeline, load_hotels, load_offers, offer_pipeline
from .pipeline import IngestionPipeline, IngestResult, SourceUnreadableError

__all__ = [
    "IngestResult",
    "IngestionPipeline",
    "SourceUnreadableError",
    "hotel_pipeline",
    "load_hotels",
    "load_offers",
    "offer_pipeline",
]
