"""Offer storage backends."""
from __future__ import annotations

import logging

from holiday_offers.config.settings import Settings
from holiday_offers.ingest import load_hotels, load_offers

from .base import OfferStorage, StorageUnavailableError
from .memory import InMemoryOfferStore

logger = logging.getLogger(__name__)


def open_storage(settings: Settings) -> OfferStorage:
    """Build the backend selected by ``settings.storage_backend``.

    The in-memory backend is populated from the configured data files. The
    Cassandra backend serves what an import already wrote and only seeds the
    hotels table when it is empty.
    """
    if settings.storage_backend == "cassandra":
        from .cassandra_store import CassandraOfferStore

        store = CassandraOfferStore.from_settings(settings)
        try:
            store.seed_hotels_if_empty(lambda: load_hotels(settings))
        except Exception:
            store.close()
            raise
        return store

    memory_store = InMemoryOfferStore()
    memory_store.load(load_hotels(settings), load_offers(settings))
    return memory_store


__all__ = [
    "InMemoryOfferStore",
    "OfferStorage",
    "StorageUnavailableError",
    "open_storage",
]
