"""Pipelines for the hotels and offers files, configured from :class:`Settings`."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

from holiday_offers.config.settings import Settings
from holiday_offers.hotels import (
    HOTEL_MIN_COLUMNS,
    OFFER_MIN_COLUMNS,
    Hotel,
    Offer,
    parse_hotel_row,
    parse_offer_row,
)

from .pipeline import IngestionPipeline

logger = logging.getLogger(__name__)


def hotel_pipeline(settings: Settings) -> IngestionPipeline[Hotel]:
    return IngestionPipeline(
        parse_hotel_row,
        min_columns=HOTEL_MIN_COLUMNS,
        delimiter=settings.hotels_delimiter,
        batch_size=settings.ingest_batch_size,
        workers=settings.resolved_ingest_workers(),
        queue_size=settings.ingest_queue_size,
        error_capacity=settings.ingest_error_capacity,
        progress_interval=settings.ingest_progress_interval,
    )


def offer_pipeline(settings: Settings) -> IngestionPipeline[Offer]:
    return IngestionPipeline(
        parse_offer_row,
        min_columns=OFFER_MIN_COLUMNS,
        delimiter=settings.offers_delimiter,
        batch_size=settings.ingest_batch_size,
        workers=settings.resolved_ingest_workers(),
        queue_size=settings.ingest_queue_size,
        error_capacity=settings.ingest_error_capacity,
        progress_interval=settings.ingest_progress_interval,
    )


def load_hotels(settings: Settings, path: Optional[Path] = None) -> List[Hotel]:
    source = path or settings.hotels_data_path
    logger.info("Loading hotels from %s", source)
    return hotel_pipeline(settings).run(source).records


def load_offers(settings: Settings, path: Optional[Path] = None) -> List[Offer]:
    source = path or settings.offers_data_path
    logger.info("Loading offers from %s", source)
    return offer_pipeline(settings).run(source).records
