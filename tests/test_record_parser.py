from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from holiday_offers.hotels import MalformedRecord, parse_hotel_row, parse_offer_row, parse_timestamp

from factories import make_offer, offer_row


def _row(**overrides: str) -> list[str]:
    row = offer_row(make_offer())
    columns = {
        "hotelid": 0,
        "outbound": 1,
        "inbound": 2,
        "adults": 3,
        "children": 4,
        "price": 5,
        "inbound_arrival": 8,
        "airport": 9,
        "meal": 12,
        "ocean": 13,
        "room": 14,
    }
    for name, value in overrides.items():
        row[columns[name]] = value
    return row


def test_parse_offer_row_builds_typed_offer() -> None:
    offer = parse_offer_row(_row(price=" 1234.50 ", ocean="YES"))

    assert offer.hotel_id == 1
    assert offer.price == Decimal("1234.50")
    assert offer.count_adults == 2
    assert offer.count_children == 0
    assert offer.outbound_departure == datetime(2025, 8, 10, 6, 30, tzinfo=timezone.utc)
    assert offer.outbound_departure_airport == "FRA"
    assert offer.outbound_arrival_airport == "PMI"
    assert offer.inbound_departure_airport == "PMI"
    assert offer.meal_type == "halfboard"
    assert offer.ocean_view is True
    assert offer.room_type == "double"
    assert offer.duration == 7


def test_blank_optional_fields_become_none() -> None:
    offer = parse_offer_row(_row(meal="", ocean=" ", room=""))

    assert offer.meal_type is None
    assert offer.ocean_view is None
    assert offer.room_type is None


def test_ocean_view_false_for_unrecognised_values() -> None:
    assert parse_offer_row(_row(ocean="false")).ocean_view is False
    assert parse_offer_row(_row(ocean="0")).ocean_view is False
    assert parse_offer_row(_row(ocean="1")).ocean_view is True


@pytest.mark.parametrize(
    "value, field",
    [
        ({"price": "abc"}, "price"),
        ({"price": "-1"}, "price"),
        ({"price": "NaN"}, "price"),
        ({"hotelid": "x12"}, "hotelid"),
        ({"adults": "two"}, "countadults"),
        ({"children": "-1"}, "countchildren"),
        ({"outbound": "10/08/2025"}, "outbounddeparturedatetime"),
        ({"inbound_arrival": ""}, "inboundarrivaldatetime"),
    ],
)
def test_malformed_fields_are_named(value: dict[str, str], field: str) -> None:
    with pytest.raises(MalformedRecord) as excinfo:
        parse_offer_row(_row(**value))
    assert excinfo.value.field == field


def test_short_offer_row_is_rejected() -> None:
    with pytest.raises(MalformedRecord):
        parse_offer_row(_row()[:12])


@pytest.mark.parametrize(
    "text, expected",
    [
        ("2025-08-10T06:30:00", datetime(2025, 8, 10, 6, 30, tzinfo=timezone.utc)),
        ("2025-08-10 06:30:00", datetime(2025, 8, 10, 6, 30, tzinfo=timezone.utc)),
        ("2025-08-10T06:30:00Z", datetime(2025, 8, 10, 6, 30, tzinfo=timezone.utc)),
        ("2025-08-10T06:30:00.250Z", datetime(2025, 8, 10, 6, 30, 0, 250000, tzinfo=timezone.utc)),
        ("10.08.2025 06:30:00", datetime(2025, 8, 10, 6, 30, tzinfo=timezone.utc)),
        ("10.08.2025", datetime(2025, 8, 10, tzinfo=timezone.utc)),
        ("2025-08-10", datetime(2025, 8, 10, tzinfo=timezone.utc)),
        ("2025-08-10T08:30:00+02:00", datetime(2025, 8, 10, 6, 30, tzinfo=timezone.utc)),
        ("  2025-08-10  ", datetime(2025, 8, 10, tzinfo=timezone.utc)),
    ],
)
def test_parse_timestamp_accepts_known_layouts(text: str, expected: datetime) -> None:
    parsed = parse_timestamp(text)
    assert parsed == expected
    assert parsed.tzinfo is not None
    assert parsed.utcoffset().total_seconds() == 0


def test_parse_timestamp_rejects_unknown_layout() -> None:
    with pytest.raises(ValueError):
        parse_timestamp("August 10th")


def test_duration_counts_whole_days_between_departures() -> None:
    offer = parse_offer_row(_row(outbound="2025-08-10T22:00:00", inbound="2025-08-17T21:00:00"))
    # 6 days 23 hours truncates to 6.
    assert offer.duration == 6


def test_negative_and_zero_durations_are_legal() -> None:
    same_day = parse_offer_row(_row(outbound="2025-08-10T06:00:00", inbound="2025-08-10T20:00:00"))
    backwards = parse_offer_row(_row(outbound="2025-08-10T06:00:00", inbound="2025-08-07T06:00:00"))

    assert same_day.duration == 0
    assert backwards.duration == -3


def test_parse_hotel_row() -> None:
    hotel = parse_hotel_row(["17", "  Sunny Beach Resort ", "4.5"])

    assert hotel.id == 17
    assert hotel.name == "Sunny Beach Resort"
    assert hotel.stars == 4.5


def test_parse_hotel_row_rejects_bad_values() -> None:
    with pytest.raises(MalformedRecord) as excinfo:
        parse_hotel_row(["seventeen", "Resort", "4"])
    assert excinfo.value.field == "hotelid"

    with pytest.raises(MalformedRecord) as excinfo:
        parse_hotel_row(["17", "Resort", "four"])
    assert excinfo.value.field == "hotelstars"
