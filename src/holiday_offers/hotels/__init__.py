"""Hotel and offer domain models, parsing and filtering helpers."""

from .filters import FilterPredicate
from .models import Hotel, HotelWithBestOffer, Offer, StorageStats
from .parser import (
    HOTEL_MIN_COLUMNS,
    OFFER_MIN_COLUMNS,
    MalformedRecord,
    parse_hotel_row,
    parse_offer_row,
    parse_timestamp,
)

__all__ = [
    "FilterPredicate",
    "HOTEL_MIN_COLUMNS",
    "Hotel",
    "HotelWithBestOffer",
    "MalformedRecord",
    "OFFER_MIN_COLUMNS",
    "Offer",
    "StorageStats",
    "parse_hotel_row",
    "parse_offer_row",
    "parse_timestamp",
]
