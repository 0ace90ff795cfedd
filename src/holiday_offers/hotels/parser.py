"""Turn raw delimited rows into typed hotel and offer records.

Everything here is pure: no I/O and no logging. Callers decide how to report a
:class:`MalformedRecord`.
"""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional, Sequence

from .models import Hotel, Offer

HOTEL_MIN_COLUMNS = 3
OFFER_MIN_COLUMNS = 15

# Tried in order; the first layout that parses wins.
TIMESTAMP_FORMATS: tuple[str, ...] = (
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%SZ",
    "%Y-%m-%dT%H:%M:%S.%fZ",
    "%d.%m.%Y %H:%M:%S",
    "%d.%m.%Y",
    "%Y-%m-%d",
    "%Y-%m-%dT%H:%M:%S%z",
)

_TRUTHY = frozenset({"true", "1", "yes", "y"})


class MalformedRecord(ValueError):
    """Raised when a row cannot be turned into a typed record."""

    def __init__(self, field: str, value: object, reason: str) -> None:
        super().__init__(f"{field}: {reason} ({value!r})")
        self.field = field
        self.value = value
        self.reason = reason


def parse_timestamp(text: str) -> datetime:
    """Parse ``text`` with the first matching layout and return it as aware UTC."""
    value = text.strip()
    for layout in TIMESTAMP_FORMATS:
        try:
            parsed = datetime.strptime(value, layout)
        except ValueError:
            continue
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)
    raise ValueError(f"unknown timestamp layout: {text!r}")


def _int_field(row: Sequence[str], index: int, field: str, *, non_negative: bool = False) -> int:
    raw = row[index].strip()
    try:
        value = int(raw)
    except ValueError as exc:
        raise MalformedRecord(field, row[index], "not an integer") from exc
    if non_negative and value < 0:
        raise MalformedRecord(field, row[index], "must not be negative")
    return value


def _timestamp_field(row: Sequence[str], index: int, field: str) -> datetime:
    try:
        return parse_timestamp(row[index])
    except ValueError as exc:
        raise MalformedRecord(field, row[index], "unparseable timestamp") from exc


def _price_field(row: Sequence[str], index: int) -> Decimal:
    raw = row[index].strip()
    try:
        price = Decimal(raw)
    except InvalidOperation as exc:
        raise MalformedRecord("price", row[index], "not a decimal") from exc
    if not price.is_finite():
        raise MalformedRecord("price", row[index], "not a finite decimal")
    if price < 0:
        raise MalformedRecord("price", row[index], "must not be negative")
    return price


def _optional_text(value: str) -> Optional[str]:
    stripped = value.strip()
    return stripped or None


def _optional_bool(value: str) -> Optional[bool]:
    stripped = value.strip().lower()
    if not stripped:
        return None
    return stripped in _TRUTHY


def parse_hotel_row(row: Sequence[str]) -> Hotel:
    if len(row) < HOTEL_MIN_COLUMNS:
        raise MalformedRecord("row", len(row), f"expected at least {HOTEL_MIN_COLUMNS} columns")
    hotel_id = _int_field(row, 0, "hotelid")
    raw_stars = row[2].strip()
    try:
        stars = float(raw_stars)
    except ValueError as exc:
        raise MalformedRecord("hotelstars", row[2], "not a number") from exc
    return Hotel(id=hotel_id, name=row[1].strip(), stars=stars)


def parse_offer_row(row: Sequence[str]) -> Offer:
    """Parse one row of the 15-column offers layout.

    Columns: hotelid, outbounddeparturedatetime, inbounddeparturedatetime,
    countadults, countchildren, price, inbounddepartureairport,
    inboundarrivalairport, inboundarrivaldatetime, outbounddepartureairport,
    outboundarrivalairport, outboundarrivaldatetime, mealtype, oceanview,
    roomtype.
    """
    if len(row) < OFFER_MIN_COLUMNS:
        raise MalformedRecord("row", len(row), f"expected at least {OFFER_MIN_COLUMNS} columns")
    return Offer(
        hotel_id=_int_field(row, 0, "hotelid"),
        outbound_departure=_timestamp_field(row, 1, "outbounddeparturedatetime"),
        inbound_departure=_timestamp_field(row, 2, "inbounddeparturedatetime"),
        count_adults=_int_field(row, 3, "countadults", non_negative=True),
        count_children=_int_field(row, 4, "countchildren", non_negative=True),
        price=_price_field(row, 5),
        inbound_departure_airport=row[6].strip(),
        inbound_arrival_airport=row[7].strip(),
        inbound_arrival=_timestamp_field(row, 8, "inboundarrivaldatetime"),
        outbound_departure_airport=row[9].strip(),
        outbound_arrival_airport=row[10].strip(),
        outbound_arrival=_timestamp_field(row, 11, "outboundarrivaldatetime"),
        meal_type=_optional_text(row[12]),
        ocean_view=_optional_bool(row[13]),
        room_type=_optional_text(row[14]),
    )
