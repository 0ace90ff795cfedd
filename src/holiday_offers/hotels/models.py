"""Dataclasses for hotels, travel offers and query projections."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional

SECONDS_PER_DAY = 86400


def _iso(value: datetime) -> str:
    return value.isoformat().replace("+00:00", "Z")


@dataclass(frozen=True, slots=True)
class Hotel:
    """Hotel metadata as loaded from the hotels file."""

    id: int
    name: str
    stars: float

    def to_dict(self) -> dict[str, object]:
        return {"id": self.id, "name": self.name, "stars": self.stars}


@dataclass(frozen=True, slots=True)
class Offer:
    """A bookable trip for one hotel.

    All timestamps are timezone-aware UTC. ``outbound_departure`` and
    ``inbound_departure`` bound the trip and define :attr:`duration`.
    """

    hotel_id: int
    outbound_departure: datetime
    inbound_departure: datetime
    count_adults: int
    count_children: int
    price: Decimal
    inbound_departure_airport: str
    inbound_arrival_airport: str
    inbound_arrival: datetime
    outbound_departure_airport: str
    outbound_arrival_airport: str
    outbound_arrival: datetime
    meal_type: Optional[str] = None
    ocean_view: Optional[bool] = None
    room_type: Optional[str] = None

    @property
    def duration(self) -> int:
        """Whole days from outbound departure to inbound departure, truncated toward zero."""
        seconds = (self.inbound_departure - self.outbound_departure).total_seconds()
        return int(seconds / SECONDS_PER_DAY)

    def to_dict(self) -> dict[str, object]:
        return {
            "hotelId": self.hotel_id,
            "outboundDepartureDateTime": _iso(self.outbound_departure),
            "inboundDepartureDateTime": _iso(self.inbound_departure),
            "countAdults": self.count_adults,
            "countChildren": self.count_children,
            "price": float(self.price),
            "inboundDepartureAirport": self.inbound_departure_airport,
            "inboundArrivalAirport": self.inbound_arrival_airport,
            "inboundArrivalDateTime": _iso(self.inbound_arrival),
            "outboundDepartureAirport": self.outbound_departure_airport,
            "outboundArrivalAirport": self.outbound_arrival_airport,
            "outboundArrivalDateTime": _iso(self.outbound_arrival),
            "mealType": self.meal_type,
            "oceanView": self.ocean_view,
            "roomType": self.room_type,
            "duration": self.duration,
        }

    @classmethod
    def from_iterable(cls, records: Iterable["Offer"]) -> List[dict[str, object]]:
        return [record.to_dict() for record in records]


@dataclass(frozen=True, slots=True)
class HotelWithBestOffer:
    """A hotel paired with its cheapest offer for a given predicate."""

    hotel: Hotel
    best_offer: Offer

    @property
    def price(self) -> Decimal:
        return self.best_offer.price

    def to_dict(self) -> dict[str, object]:
        offer = self.best_offer
        return {
            "hotel": self.hotel.to_dict(),
            "minPrice": float(offer.price),
            "departureDate": offer.outbound_departure.date().isoformat(),
            "returnDate": offer.inbound_departure.date().isoformat(),
            "roomType": offer.room_type,
            "mealType": offer.meal_type,
            "countAdults": offer.count_adults,
            "countChildren": offer.count_children,
            "duration": offer.duration,
            "bestOffer": offer.to_dict(),
        }


@dataclass(frozen=True, slots=True)
class StorageStats:
    hotel_count: int
    offer_count: int
    hotels_with_offers_count: int

    def to_dict(self) -> dict[str, int]:
        return {
            "hotels": self.hotel_count,
            "offers": self.offer_count,
            "hotels_with_offers": self.hotels_with_offers_count,
        }
