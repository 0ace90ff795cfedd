"""Search predicate applied to offers."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from typing import Iterable, Optional

from .models import Offer


def _coerce_airports(value: object) -> frozenset[str]:
    if value in (None, "", ()):
        return frozenset()
    if isinstance(value, str):
        items: Iterable[object] = value.split(",")
    elif isinstance(value, Iterable):
        items = value
    else:
        raise TypeError("departure_airports must be a comma-separated string or iterable")
    airports: set[str] = set()
    for item in items:
        if not isinstance(item, str):
            raise TypeError("departure_airports must contain strings")
        # Clients sometimes send "FRA,MUC" as a single list element.
        airports.update(part.strip() for part in item.split(",") if part.strip())
    return frozenset(airports)


def _coerce_bound(value: object, name: str) -> Optional[datetime]:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    elif isinstance(value, str):
        text = value.strip()
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError as exc:
            raise ValueError(f"{name} must be an ISO-8601 date-time or YYYY-MM-DD, got {value!r}") from exc
    else:
        raise TypeError(f"{name} must be a date, datetime or string")
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _coerce_count(value: object, name: str) -> int:
    if value in (None, ""):
        return 0
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    try:
        count = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{name} must be an integer, got {value!r}") from exc
    if count < 0:
        raise ValueError(f"{name} must not be negative")
    return count


@dataclass(frozen=True, slots=True)
class FilterPredicate:
    """Conjunction of optional offer constraints.

    Every constraint is vacuously satisfied when unset: an empty airport set,
    a ``None`` bound, or a zero count/duration. Bounds are inclusive and
    compared against timezone-aware UTC timestamps.
    """

    departure_airports: frozenset[str] = field(default_factory=frozenset)
    earliest_departure: Optional[datetime] = None
    latest_return: Optional[datetime] = None
    count_adults: int = 0
    count_children: int = 0
    duration: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "departure_airports", _coerce_airports(self.departure_airports))
        object.__setattr__(self, "earliest_departure", _coerce_bound(self.earliest_departure, "earliest_departure"))
        object.__setattr__(self, "latest_return", _coerce_bound(self.latest_return, "latest_return"))

    @classmethod
    def from_query(
        cls,
        *,
        departure_airports: object = None,
        earliest_departure: object = None,
        latest_return: object = None,
        count_adults: object = None,
        count_children: object = None,
        duration: object = None,
    ) -> "FilterPredicate":
        """Build a predicate from loosely typed request values."""
        return cls(
            departure_airports=_coerce_airports(departure_airports),
            earliest_departure=_coerce_bound(earliest_departure, "earliest_departure"),
            latest_return=_coerce_bound(latest_return, "latest_return"),
            count_adults=_coerce_count(count_adults, "count_adults"),
            count_children=_coerce_count(count_children, "count_children"),
            duration=_coerce_count(duration, "duration"),
        )

    @property
    def is_unconstrained(self) -> bool:
        return (
            not self.departure_airports
            and self.earliest_departure is None
            and self.latest_return is None
            and not self.count_adults
            and not self.count_children
            and not self.duration
        )

    def matches(self, offer: Offer) -> bool:
        if self.departure_airports and offer.outbound_departure_airport not in self.departure_airports:
            return False
        if self.earliest_departure is not None and offer.outbound_departure < self.earliest_departure:
            return False
        if self.latest_return is not None and offer.inbound_departure > self.latest_return:
            return False
        if self.count_adults and offer.count_adults != self.count_adults:
            return False
        if self.count_children and offer.count_children != self.count_children:
            return False
        if self.duration and offer.duration != self.duration:
            return False
        return True

    def to_dict(self) -> dict[str, object]:
        return {
            "departure_airports": sorted(self.departure_airports),
            "earliest_departure": self.earliest_departure.isoformat() if self.earliest_departure else None,
            "latest_return": self.latest_return.isoformat() if self.latest_return else None,
            "count_adults": self.count_adults,
            "count_children": self.count_children,
            "duration": self.duration,
        }
