"""Query the configured offer storage from the command line and print JSON."""
from __future__ import annotations

import argparse
import json
import logging
import sys

from holiday_offers.config.settings import Settings
from holiday_offers.core.logging import configure_logging
from holiday_offers.hotels import FilterPredicate, Offer
from holiday_offers.ingest import SourceUnreadableError
from holiday_offers.storage import StorageUnavailableError, open_storage


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Search hotel offers")
    parser.add_argument("--hotel-id", type=int, help="List this hotel's offers instead of best offers")
    parser.add_argument("--airports", help="Comma-separated departure airports, e.g. FRA,MUC")
    parser.add_argument("--earliest-departure", help="YYYY-MM-DD or ISO-8601 date-time")
    parser.add_argument("--latest-return", help="YYYY-MM-DD or ISO-8601 date-time")
    parser.add_argument("--adults", type=int, default=0)
    parser.add_argument("--children", type=int, default=0)
    parser.add_argument("--duration", type=int, default=0, help="Trip length in days")
    parser.add_argument("--limit", type=int, default=20, help="Maximum results to print")
    parser.add_argument("--stats", action="store_true", help="Print storage statistics and airports")
    return parser


def main() -> int:
    args = _build_parser().parse_args()
    settings = Settings()
    configure_logging(settings.log_level, settings.log_dir)

    try:
        predicate = FilterPredicate.from_query(
            departure_airports=args.airports,
            earliest_departure=args.earliest_departure,
            latest_return=args.latest_return,
            count_adults=args.adults,
            count_children=args.children,
            duration=args.duration,
        )
    except ValueError as exc:
        logging.error("Invalid search parameters: %s", exc)
        return 2

    try:
        storage = open_storage(settings)
    except (SourceUnreadableError, StorageUnavailableError) as exc:
        logging.error("Storage unavailable: %s", exc)
        return 1

    with storage:
        if args.stats:
            payload: object = {
                "stats": storage.stats().to_dict(),
                "airports": storage.distinct_departure_airports(),
            }
        elif args.hotel_id is not None:
            hotel = storage.get_hotel(args.hotel_id)
            if hotel is None:
                logging.error("Hotel %s not found", args.hotel_id)
                return 1
            offers = storage.list_offers(args.hotel_id, predicate)
            payload = {"hotel": hotel.to_dict(), "items": Offer.from_iterable(offers[: args.limit])}
        else:
            results = storage.best_offers_by_hotel(predicate)
            payload = [item.to_dict() for item in results[: args.limit]]
    print(json.dumps(payload, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
