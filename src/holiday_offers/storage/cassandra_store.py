"""Cassandra/ScyllaDB-backed offer storage.

Offers are partitioned by hotel and clustered by price, so every partition scan
returns a hotel's offers cheapest first. The best offer for a hotel is the
first row of its partition that matches the predicate.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Iterator, List, Optional, Sequence, Tuple

from cassandra import ConsistencyLevel, DriverException
from cassandra.auth import PlainTextAuthProvider
from cassandra.cluster import EXEC_PROFILE_DEFAULT, Cluster, ExecutionProfile, NoHostAvailable, Session
from cassandra.concurrent import execute_concurrent_with_args
from cassandra.policies import (
    DCAwareRoundRobinPolicy,
    ExponentialReconnectionPolicy,
    RoundRobinPolicy,
    TokenAwarePolicy,
)
from cassandra.query import BatchStatement, BatchType, PreparedStatement

from holiday_offers.config.settings import Settings
from holiday_offers.hotels import FilterPredicate, Hotel, HotelWithBestOffer, Offer, StorageStats
from holiday_offers.ingest.pipeline import IngestionPipeline, IngestResult

from .base import OfferStorage, StorageUnavailableError, sort_by_best_price

logger = logging.getLogger(__name__)

OFFER_ID_NAMESPACE = uuid.UUID("6f1c7d36-52a4-4f54-9a53-2f0c4c1b8e11")
HOTEL_BATCH_SIZE = 100
MAX_REPORTED_WRITE_ERRORS = 10

# NoHostAvailable does not derive from DriverException.
DRIVER_ERRORS = (DriverException, NoHostAvailable)

CREATE_KEYSPACE = (
    "CREATE KEYSPACE IF NOT EXISTS {keyspace} "
    "WITH replication = {{'class': 'SimpleStrategy', 'replication_factor': {replication_factor}}}"
)
CREATE_HOTELS = """
CREATE TABLE IF NOT EXISTS hotels (
    hotelid int PRIMARY KEY,
    hotelname text,
    hotelstars float
)
"""
CREATE_OFFERS = """
CREATE TABLE IF NOT EXISTS offers (
    hotelid int,
    price decimal,
    offerid uuid,
    outbounddeparturedatetime timestamp,
    inbounddeparturedatetime timestamp,
    countadults int,
    countchildren int,
    inbounddepartureairport text,
    inboundarrivalairport text,
    inboundarrivaldatetime timestamp,
    outbounddepartureairport text,
    outboundarrivalairport text,
    outboundarrivaldatetime timestamp,
    mealtype text,
    oceanview boolean,
    roomtype text,
    PRIMARY KEY ((hotelid), price, offerid)
) WITH CLUSTERING ORDER BY (price ASC, offerid ASC)
"""

SELECT_HOTEL = "SELECT hotelid, hotelname, hotelstars FROM hotels WHERE hotelid = ?"
SELECT_HOTELS = "SELECT hotelid, hotelname, hotelstars FROM hotels"
SELECT_OFFERS = (
    "SELECT hotelid, outbounddeparturedatetime, inbounddeparturedatetime, countadults, countchildren, "
    "price, inbounddepartureairport, inboundarrivalairport, inboundarrivaldatetime, "
    "outbounddepartureairport, outboundarrivalairport, outboundarrivaldatetime, "
    "mealtype, oceanview, roomtype FROM offers WHERE hotelid = ?"
)
SELECT_DEPARTURE_AIRPORTS = "SELECT outbounddepartureairport FROM offers WHERE hotelid = ?"
SELECT_OFFER_PARTITIONS = "SELECT DISTINCT hotelid FROM offers"
PROBE_OFFERS = "SELECT price FROM offers WHERE hotelid = ? LIMIT 1"
PROBE_HOTELS = "SELECT hotelid FROM hotels LIMIT 1"
COUNT_HOTELS = "SELECT COUNT(*) FROM hotels"
COUNT_OFFERS = "SELECT COUNT(*) FROM offers"
INSERT_HOTEL = "INSERT INTO hotels (hotelid, hotelname, hotelstars) VALUES (?, ?, ?)"
INSERT_OFFER = (
    "INSERT INTO offers (hotelid, price, offerid, outbounddeparturedatetime, inbounddeparturedatetime, "
    "countadults, countchildren, inbounddepartureairport, inboundarrivalairport, inboundarrivaldatetime, "
    "outbounddepartureairport, outboundarrivalairport, outboundarrivaldatetime, mealtype, oceanview, roomtype) "
    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)"
)


def connect(settings: Settings, *, use_keyspace: bool = True) -> Tuple[Cluster, Session]:
    """Open a cluster connection configured from ``settings``."""
    if settings.cassandra_local_dc:
        child_policy = DCAwareRoundRobinPolicy(local_dc=settings.cassandra_local_dc)
    else:
        child_policy = RoundRobinPolicy()
    profile = ExecutionProfile(
        load_balancing_policy=TokenAwarePolicy(child_policy),
        consistency_level=ConsistencyLevel.name_to_value[settings.cassandra_consistency],
        request_timeout=settings.cassandra_request_timeout_s,
    )
    auth_provider = None
    if settings.cassandra_username:
        auth_provider = PlainTextAuthProvider(
            username=settings.cassandra_username,
            password=settings.cassandra_password or "",
        )
    cluster = Cluster(
        execution_profiles={EXEC_PROFILE_DEFAULT: profile},
        auth_provider=auth_provider,
        reconnection_policy=ExponentialReconnectionPolicy(base_delay=0.2, max_delay=3.0),
        **settings.cluster_kwargs(),
    )
    try:
        session = cluster.connect(settings.cassandra_keyspace if use_keyspace else None)
    except DRIVER_ERRORS as exc:
        cluster.shutdown()
        raise StorageUnavailableError(
            f"Could not connect to {', '.join(settings.cassandra_hosts)}:{settings.cassandra_port}: {exc}"
        ) from exc
    logger.info(
        "Connected to cluster %s (keyspace=%s)",
        ",".join(settings.cassandra_hosts),
        settings.cassandra_keyspace if use_keyspace else None,
    )
    return cluster, session


def ensure_schema(session: Session, keyspace: str, *, replication_factor: int = 1) -> None:
    """Create the keyspace and tables when missing, then switch the session to the keyspace."""
    try:
        session.execute(CREATE_KEYSPACE.format(keyspace=keyspace, replication_factor=replication_factor))
        session.set_keyspace(keyspace)
        session.execute(CREATE_HOTELS)
        session.execute(CREATE_OFFERS)
    except DRIVER_ERRORS as exc:
        raise StorageUnavailableError(f"Failed to create schema in {keyspace}: {exc}") from exc


def offer_id(offer: Offer) -> uuid.UUID:
    """Deterministic id so that re-importing the same row overwrites instead of duplicating."""
    key = "|".join(
        str(part)
        for part in (
            offer.hotel_id,
            offer.outbound_departure.isoformat(),
            offer.inbound_departure.isoformat(),
            offer.count_adults,
            offer.count_children,
            offer.price,
            offer.inbound_departure_airport,
            offer.inbound_arrival_airport,
            offer.inbound_arrival.isoformat(),
            offer.outbound_departure_airport,
            offer.outbound_arrival_airport,
            offer.outbound_arrival.isoformat(),
            offer.meal_type,
            offer.ocean_view,
            offer.room_type,
        )
    )
    return uuid.uuid5(OFFER_ID_NAMESPACE, key)


def _utc(value: datetime) -> datetime:
    # The driver returns naive datetimes that are already UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _row_to_hotel(row: Any) -> Hotel:
    return Hotel(id=int(row.hotelid), name=row.hotelname or "", stars=float(row.hotelstars or 0.0))


def _row_to_offer(row: Any) -> Offer:
    price = row.price if isinstance(row.price, Decimal) else Decimal(str(row.price))
    return Offer(
        hotel_id=int(row.hotelid),
        outbound_departure=_utc(row.outbounddeparturedatetime),
        inbound_departure=_utc(row.inbounddeparturedatetime),
        count_adults=int(row.countadults or 0),
        count_children=int(row.countchildren or 0),
        price=price,
        inbound_departure_airport=row.inbounddepartureairport or "",
        inbound_arrival_airport=row.inboundarrivalairport or "",
        inbound_arrival=_utc(row.inboundarrivaldatetime),
        outbound_departure_airport=row.outbounddepartureairport or "",
        outbound_arrival_airport=row.outboundarrivalairport or "",
        outbound_arrival=_utc(row.outboundarrivaldatetime),
        meal_type=row.mealtype,
        ocean_view=row.oceanview,
        room_type=row.roomtype,
    )


def _offer_params(offer: Offer) -> tuple[object, ...]:
    return (
        offer.hotel_id,
        offer.price,
        offer_id(offer),
        offer.outbound_departure,
        offer.inbound_departure,
        offer.count_adults,
        offer.count_children,
        offer.inbound_departure_airport,
        offer.inbound_arrival_airport,
        offer.inbound_arrival,
        offer.outbound_departure_airport,
        offer.outbound_arrival_airport,
        offer.outbound_arrival,
        offer.meal_type,
        offer.ocean_view,
        offer.room_type,
    )


class CassandraOfferStore(OfferStorage):
    """Offer queries answered by streaming price-ordered partitions.

    Multi-hotel queries read every partition independently, so they do not
    observe a single consistent snapshot while an import is running.
    """

    def __init__(
        self,
        session: Session,
        *,
        cluster: Optional[Cluster] = None,
        read_consistency: str = "ONE",
        fetch_size: int = 100,
        write_concurrency: int = 64,
    ) -> None:
        self._session = session
        self._cluster = cluster
        self._read_consistency = ConsistencyLevel.name_to_value[read_consistency]
        self._fetch_size = fetch_size
        self._write_concurrency = write_concurrency
        self._statements: dict[str, PreparedStatement] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> "CassandraOfferStore":
        cluster, session = connect(settings)
        return cls(
            session,
            cluster=cluster,
            read_consistency=settings.cassandra_read_consistency,
            fetch_size=settings.cassandra_fetch_size,
            write_concurrency=settings.cassandra_write_concurrency,
        )

    def close(self) -> None:
        if self._cluster is not None:
            self._cluster.shutdown()
            self._cluster = None

    # ------------------------------------------------------------------
    # statement helpers

    def _prepared(self, cql: str, *, read: bool = True) -> PreparedStatement:
        statement = self._statements.get(cql)
        if statement is None:
            try:
                statement = self._session.prepare(cql)
            except DRIVER_ERRORS as exc:
                raise StorageUnavailableError(f"Failed to prepare statement: {exc}") from exc
            if read:
                statement.consistency_level = self._read_consistency
                statement.fetch_size = self._fetch_size
            else:
                statement.is_idempotent = True
            self._statements[cql] = statement
        return statement

    def _execute(self, cql: str, params: Sequence[object] = ()) -> Any:
        try:
            return self._session.execute(self._prepared(cql), params)
        except DRIVER_ERRORS as exc:
            raise StorageUnavailableError(f"Query failed: {exc}") from exc

    def _rows(self, cql: str, params: Sequence[object] = ()) -> Iterator[Any]:
        """Stream rows; further pages are fetched lazily while iterating."""
        result = self._execute(cql, params)
        try:
            yield from result
        except DRIVER_ERRORS as exc:
            raise StorageUnavailableError(f"Paging failed: {exc}") from exc

    def _partition(self, hotel_id: int) -> Iterator[Offer]:
        for row in self._rows(SELECT_OFFERS, (hotel_id,)):
            yield _row_to_offer(row)

    # ------------------------------------------------------------------
    # queries

    def get_hotel(self, hotel_id: int) -> Optional[Hotel]:
        row = self._execute(SELECT_HOTEL, (hotel_id,)).one()
        if row is None:
            return None
        return _row_to_hotel(row)

    def list_hotels(self) -> List[Hotel]:
        hotels = [_row_to_hotel(row) for row in self._rows(SELECT_HOTELS)]
        return sorted(hotels, key=lambda hotel: hotel.id)

    def list_offers(self, hotel_id: int, predicate: FilterPredicate) -> List[Offer]:
        return [offer for offer in self._partition(hotel_id) if predicate.matches(offer)]

    def best_offers_by_hotel(self, predicate: FilterPredicate) -> List[HotelWithBestOffer]:
        hotels = self.list_hotels()
        logger.debug("Searching best offers across %d hotels", len(hotels))
        results: List[HotelWithBestOffer] = []
        for hotel in hotels:
            offers = self._partition(hotel.id)
            try:
                best = next((offer for offer in offers if predicate.matches(offer)), None)
            finally:
                offers.close()
            if best is not None:
                results.append(HotelWithBestOffer(hotel=hotel, best_offer=best))
        logger.debug("Found best offers for %d of %d hotels", len(results), len(hotels))
        return sort_by_best_price(results)

    def stats(self) -> StorageStats:
        # COUNT(*) scans the whole table and gets slow on large datasets.
        hotel_count = int(self._execute(COUNT_HOTELS).one()[0])
        offer_count = int(self._execute(COUNT_OFFERS).one()[0])
        with_offers = 0
        for hotel in self.list_hotels():
            if self._execute(PROBE_OFFERS, (hotel.id,)).one() is not None:
                with_offers += 1
        return StorageStats(
            hotel_count=hotel_count,
            offer_count=offer_count,
            hotels_with_offers_count=with_offers,
        )

    def distinct_departure_airports(self) -> List[str]:
        # Walks every offer partition, including hotels missing from the hotels table.
        hotel_ids = [int(row.hotelid) for row in self._rows(SELECT_OFFER_PARTITIONS)]
        airports: set[str] = set()
        for hotel_id in hotel_ids:
            for row in self._rows(SELECT_DEPARTURE_AIRPORTS, (hotel_id,)):
                if row.outbounddepartureairport:
                    airports.add(row.outbounddepartureairport)
        return sorted(airports)

    # ------------------------------------------------------------------
    # bulk loading

    def write_hotels(self, hotels: Sequence[Hotel]) -> int:
        """Insert hotels in unlogged batches; returns the number written."""
        statement = self._prepared(INSERT_HOTEL, read=False)
        written = 0
        for start in range(0, len(hotels), HOTEL_BATCH_SIZE):
            batch = BatchStatement(batch_type=BatchType.UNLOGGED)
            chunk = hotels[start : start + HOTEL_BATCH_SIZE]
            for hotel in chunk:
                batch.add(statement, (hotel.id, hotel.name, hotel.stars))
            try:
                self._session.execute(batch)
            except DRIVER_ERRORS as exc:
                raise StorageUnavailableError(f"Failed to write hotels: {exc}") from exc
            written += len(chunk)
        logger.info("Wrote %d hotels", written)
        return written

    def write_offers(self, offers: Sequence[Offer]) -> Tuple[int, List[BaseException]]:
        """Insert offers concurrently.

        Returns the number of rejected rows and at most
        ``MAX_REPORTED_WRITE_ERRORS`` of their errors.
        """
        statement = self._prepared(INSERT_OFFER, read=False)
        results = execute_concurrent_with_args(
            self._session,
            statement,
            [_offer_params(offer) for offer in offers],
            concurrency=self._write_concurrency,
            raise_on_first_error=False,
        )
        failed = 0
        samples: List[BaseException] = []
        for success, outcome in results:
            if success:
                continue
            failed += 1
            if len(samples) < MAX_REPORTED_WRITE_ERRORS:
                samples.append(outcome)
        return failed, samples

    def import_offers(self, source: Path, pipeline: IngestionPipeline[Offer]) -> Tuple[IngestResult[Offer], int]:
        """Stream ``source`` through ``pipeline`` straight into the offers table.

        Returns the ingestion result and the number of rows the store rejected.
        """
        rejected = 0
        samples: List[BaseException] = []

        def _sink(batch: List[Offer]) -> None:
            nonlocal rejected
            failed, errors = self.write_offers(batch)
            rejected += failed
            samples.extend(errors[: MAX_REPORTED_WRITE_ERRORS - len(samples)])

        result = pipeline.run(source, sink=_sink)
        for error in samples:
            logger.warning("Offer insert failed: %s", error)
        if rejected:
            logger.warning("Total offer insert failures: %d", rejected)
        logger.info("Imported %d offers from %s", result.parsed_count - rejected, source)
        return result, rejected

    def seed_hotels_if_empty(self, load: Callable[[], Sequence[Hotel]]) -> int:
        """Import hotels from ``load`` when the hotels table has no rows."""
        if self._execute(PROBE_HOTELS).one() is not None:
            return 0
        logger.info("Hotels table empty; importing hotels")
        return self.write_hotels(list(load()))
