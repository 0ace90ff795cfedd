"""In-memory offer index."""
from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from holiday_offers.hotels import FilterPredicate, Hotel, HotelWithBestOffer, Offer, StorageStats
from holiday_offers.utils.locking import ReadWriteLock

from .base import OfferStorage, sort_by_best_price

logger = logging.getLogger(__name__)


class InMemoryOfferStore(OfferStorage):
    """Keeps every hotel and offer in process memory.

    Each hotel's offers are sorted by price once at load time, so the cheapest
    matching offer is the first match of a linear scan. A reload builds a new
    index and swaps it in under the write lock; readers never see a partial
    index.
    """

    def __init__(self) -> None:
        self._lock = ReadWriteLock()
        self._hotels: Dict[int, Hotel] = {}
        self._offers_by_hotel: Mapping[int, Tuple[Offer, ...]] = {}
        self._offer_count = 0
        self._airports: Tuple[str, ...] = ()

    def load(self, hotels: Iterable[Hotel], offers: Iterable[Offer]) -> None:
        """Replace the whole index with ``hotels`` and ``offers``."""
        hotel_map = {hotel.id: hotel for hotel in hotels}
        grouped: Dict[int, List[Offer]] = defaultdict(list)
        airports: set[str] = set()
        offer_count = 0
        for offer in offers:
            grouped[offer.hotel_id].append(offer)
            if offer.outbound_departure_airport:
                airports.add(offer.outbound_departure_airport)
            offer_count += 1
        offers_by_hotel = {
            hotel_id: tuple(sorted(items, key=lambda offer: offer.price)) for hotel_id, items in grouped.items()
        }

        with self._lock.write_locked():
            self._hotels = hotel_map
            self._offers_by_hotel = offers_by_hotel
            self._offer_count = offer_count
            self._airports = tuple(sorted(airports))
        logger.info(
            "Indexed %d hotels and %d offers across %d hotel ids",
            len(hotel_map),
            offer_count,
            len(offers_by_hotel),
        )

    def get_hotel(self, hotel_id: int) -> Optional[Hotel]:
        with self._lock.read_locked():
            return self._hotels.get(hotel_id)

    def list_hotels(self) -> List[Hotel]:
        with self._lock.read_locked():
            hotels = list(self._hotels.values())
        return sorted(hotels, key=lambda hotel: hotel.id)

    def list_offers(self, hotel_id: int, predicate: FilterPredicate) -> List[Offer]:
        with self._lock.read_locked():
            offers = self._offers_by_hotel.get(hotel_id, ())
            return [offer for offer in offers if predicate.matches(offer)]

    def best_offers_by_hotel(self, predicate: FilterPredicate) -> List[HotelWithBestOffer]:
        results: List[HotelWithBestOffer] = []
        with self._lock.read_locked():
            for hotel_id in sorted(self._offers_by_hotel):
                hotel = self._hotels.get(hotel_id)
                if hotel is None:
                    continue
                offers = self._offers_by_hotel[hotel_id]
                best = next((offer for offer in offers if predicate.matches(offer)), None)
                if best is not None:
                    results.append(HotelWithBestOffer(hotel=hotel, best_offer=best))
        return sort_by_best_price(results)

    def stats(self) -> StorageStats:
        with self._lock.read_locked():
            return StorageStats(
                hotel_count=len(self._hotels),
                offer_count=self._offer_count,
                hotels_with_offers_count=sum(1 for hotel_id in self._offers_by_hotel if hotel_id in self._hotels),
            )

    def distinct_departure_airports(self) -> List[str]:
        with self._lock.read_locked():
            return list(self._airports)
