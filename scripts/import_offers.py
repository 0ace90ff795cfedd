"""One-shot import of the hotels and offers files into Cassandra/ScyllaDB."""
from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path

from holiday_offers.config.settings import Settings
from holiday_offers.core.logging import configure_logging
from holiday_offers.ingest import SourceUnreadableError, load_hotels, offer_pipeline
from holiday_offers.storage import StorageUnavailableError
from holiday_offers.storage.cassandra_store import CassandraOfferStore, connect, ensure_schema

logger = logging.getLogger("import_offers")


def main() -> int:
    parser = argparse.ArgumentParser(description="Stream offers from CSV into Cassandra")
    parser.add_argument("--offers", type=Path, help="Offers CSV (defaults to HOLIDAY_OFFERS_DATA_PATH)")
    parser.add_argument("--hotels", type=Path, help="Hotels CSV (defaults to HOLIDAY_HOTELS_DATA_PATH)")
    parser.add_argument("--workers", type=int, help="Parser worker threads")
    parser.add_argument(
        "--skip-hotels",
        action="store_true",
        help="Do not touch the hotels table",
    )
    args = parser.parse_args()

    settings = Settings()
    if args.workers:
        settings.ingest_workers = args.workers
    configure_logging(settings.log_level, settings.log_dir)

    offers_path = args.offers or settings.offers_data_path
    try:
        cluster, session = connect(settings, use_keyspace=False)
    except StorageUnavailableError as exc:
        logger.error("%s", exc)
        return 1

    store = CassandraOfferStore(
        session,
        cluster=cluster,
        read_consistency=settings.cassandra_read_consistency,
        fetch_size=settings.cassandra_fetch_size,
        write_concurrency=settings.cassandra_write_concurrency,
    )
    with store:
        started = time.monotonic()
        try:
            ensure_schema(
                session,
                settings.cassandra_keyspace,
                replication_factor=settings.cassandra_replication_factor,
            )
            if not args.skip_hotels:
                store.seed_hotels_if_empty(lambda: load_hotels(settings, args.hotels))
            logger.info("Starting offers import from %s", offers_path)
            result, rejected = store.import_offers(offers_path, offer_pipeline(settings))
        except (SourceUnreadableError, StorageUnavailableError) as exc:
            logger.error("Import failed: %s", exc)
            return 1
        logger.info(
            "Done in %.1fs: %d offers written, %d malformed rows, %d rejected by the store",
            time.monotonic() - started,
            result.parsed_count - rejected,
            result.error_count,
            rejected,
        )
    return 0


if __name__ == "__main__":
    sys.exit(main())
