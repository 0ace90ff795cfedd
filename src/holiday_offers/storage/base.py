"""Query contract shared by every offer storage backend."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional

from holiday_offers.hotels import FilterPredicate, Hotel, HotelWithBestOffer, Offer, StorageStats


class StorageUnavailableError(RuntimeError):
    """Raised when a backend cannot be reached; distinct from a missing record."""


class OfferStorage(ABC):
    """Read-only queries over hotels and their offers.

    Loading data is backend specific and deliberately not part of this
    interface. None of the query methods mutate state.
    """

    @abstractmethod
    def get_hotel(self, hotel_id: int) -> Optional[Hotel]:
        """Return the hotel, or ``None`` when no hotel has that id."""

    @abstractmethod
    def list_hotels(self) -> List[Hotel]:
        """Return every hotel ordered by id."""

    @abstractmethod
    def list_offers(self, hotel_id: int, predicate: FilterPredicate) -> List[Offer]:
        """Return the hotel's offers matching ``predicate``, cheapest first."""

    @abstractmethod
    def best_offers_by_hotel(self, predicate: FilterPredicate) -> List[HotelWithBestOffer]:
        """Return the cheapest matching offer per hotel, ordered by that price.

        Hotels without a matching offer are omitted.
        """

    @abstractmethod
    def stats(self) -> StorageStats:
        ...

    @abstractmethod
    def distinct_departure_airports(self) -> List[str]:
        """Return the sorted outbound departure airports seen across all offers."""

    def close(self) -> None:
        return None

    def __enter__(self) -> "OfferStorage":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def sort_by_best_price(results: List[HotelWithBestOffer]) -> List[HotelWithBestOffer]:
    """Order results by best price; ties keep their incoming (hotel id) order."""
    return sorted(results, key=lambda item: item.best_offer.price)
