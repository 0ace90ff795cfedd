from __future__ import annotations

import io
import logging
from collections import Counter
from datetime import timedelta

import pytest

from holiday_offers.config.settings import Settings
from holiday_offers.hotels import OFFER_MIN_COLUMNS, MalformedRecord, parse_offer_row
from holiday_offers.ingest import IngestionPipeline, SourceUnreadableError, hotel_pipeline

from factories import DEFAULT_DEPARTURE, HOTEL_HEADER, OFFER_HEADER, make_offer, offer_row, write_csv


def _offer_rows(count: int) -> list[list[str]]:
    return [
        offer_row(
            make_offer(
                hotel_id=index % 7 + 1,
                price=100 + index,
                departure=DEFAULT_DEPARTURE + timedelta(days=index % 30),
            )
        )
        for index in range(count)
    ]


def _pipeline(**kwargs) -> IngestionPipeline:
    options = {"min_columns": OFFER_MIN_COLUMNS, "batch_size": 10, "workers": 2}
    options.update(kwargs)
    return IngestionPipeline(parse_offer_row, **options)


def test_result_does_not_depend_on_worker_count(tmp_path) -> None:
    path = write_csv(tmp_path / "offers.csv", _offer_rows(257))

    single = _pipeline(workers=1).run(path)
    many = _pipeline(workers=4, batch_size=7).run(path)

    assert single.parsed_count == many.parsed_count == 257
    assert Counter(single.records) == Counter(many.records)
    assert single.rows_read == 257
    assert single.error_count == 0


def test_malformed_row_is_counted_and_reported(tmp_path) -> None:
    rows = _offer_rows(20)
    rows[5][5] = "abc"
    path = write_csv(tmp_path / "offers.csv", rows)

    result = _pipeline().run(path)

    assert result.parsed_count == 19
    assert result.error_count == 1
    assert len(result.errors) == 1
    assert isinstance(result.errors[0], MalformedRecord)
    assert result.errors[0].field == "price"


def test_short_rows_are_skipped_not_errors(tmp_path) -> None:
    rows = _offer_rows(4) + [["1", "2025-08-10"], []]
    path = write_csv(tmp_path / "offers.csv", rows)

    result = _pipeline().run(path)

    assert result.parsed_count == 4
    assert result.error_count == 0
    assert result.rows_skipped == 2


def test_retained_errors_are_capped(tmp_path) -> None:
    rows = _offer_rows(10)
    for row in rows[:5]:
        row[3] = "many"
    path = write_csv(tmp_path / "offers.csv", rows)

    result = _pipeline(error_capacity=2).run(path)

    assert result.error_count == 5
    assert len(result.errors) == 2
    assert result.parsed_count == 5


def test_zero_error_capacity_still_counts(tmp_path) -> None:
    rows = _offer_rows(3)
    rows[0][1] = "soon"
    path = write_csv(tmp_path / "offers.csv", rows)

    result = _pipeline(error_capacity=0).run(path)

    assert result.error_count == 1
    assert result.errors == []


def test_missing_file_is_fatal(tmp_path) -> None:
    with pytest.raises(SourceUnreadableError):
        _pipeline().run(tmp_path / "absent.csv")


def test_empty_file_is_fatal(tmp_path) -> None:
    path = tmp_path / "offers.csv"
    path.write_text("", encoding="utf-8")

    with pytest.raises(SourceUnreadableError):
        _pipeline().run(path)


def test_header_only_file_yields_nothing(tmp_path) -> None:
    path = write_csv(tmp_path / "offers.csv", [])

    result = _pipeline().run(path)

    assert result.records == []
    assert result.rows_read == 0


def test_reads_from_text_stream() -> None:
    buffer = io.StringIO()
    buffer.write(",".join(OFFER_HEADER) + "\n")
    for row in _offer_rows(3):
        buffer.write(",".join(row) + "\n")
    buffer.seek(0)

    result = _pipeline().run(buffer)

    assert result.parsed_count == 3
    assert not buffer.closed


def test_sink_receives_batches_instead_of_result(tmp_path) -> None:
    path = write_csv(tmp_path / "offers.csv", _offer_rows(35))
    received: list[list] = []

    result = _pipeline(batch_size=10, workers=3).run(path, sink=received.append)

    assert result.records == []
    assert result.parsed_count == 35
    assert sum(len(batch) for batch in received) == 35
    assert all(len(batch) <= 10 for batch in received)


def test_sink_failure_propagates_after_draining(tmp_path) -> None:
    path = write_csv(tmp_path / "offers.csv", _offer_rows(50))
    calls = []

    def _sink(batch) -> None:
        calls.append(len(batch))
        raise RuntimeError("store down")

    with pytest.raises(RuntimeError, match="store down"):
        _pipeline(batch_size=5, workers=2).run(path, sink=_sink)
    assert len(calls) == 1


def test_progress_is_logged_at_milestones(tmp_path, caplog) -> None:
    path = write_csv(tmp_path / "offers.csv", _offer_rows(25))
    caplog.set_level(logging.INFO, logger="holiday_offers.ingest.pipeline")

    _pipeline(batch_size=5, workers=1, progress_interval=10).run(path)

    progress = [record.getMessage() for record in caplog.records if record.getMessage().startswith("Processed")]
    assert progress == ["Processed 10 rows", "Processed 20 rows"]


class _FlakySource:
    """Yields a header and a few rows, then fails like a dropped network mount."""

    name = "flaky.csv"

    def __init__(self, lines: list[str]) -> None:
        self._lines = lines

    def __iter__(self):
        yield from self._lines
        raise OSError("stale file handle")


def test_read_error_mid_stream_aborts_run() -> None:
    lines = [",".join(OFFER_HEADER) + "\n"] + [",".join(row) + "\n" for row in _offer_rows(12)]

    with pytest.raises(SourceUnreadableError, match="stale file handle"):
        _pipeline(batch_size=5).run(_FlakySource(lines))


def test_worker_exception_propagates(tmp_path) -> None:
    path = write_csv(tmp_path / "offers.csv", _offer_rows(6))

    def _explode(row):
        raise KeyError("unexpected")

    pipeline = IngestionPipeline(_explode, min_columns=OFFER_MIN_COLUMNS, batch_size=2, workers=2)
    with pytest.raises(KeyError):
        pipeline.run(path)


def test_invalid_configuration_is_rejected() -> None:
    with pytest.raises(ValueError):
        _pipeline(batch_size=0)
    with pytest.raises(ValueError):
        _pipeline(workers=0)


def test_short_hotel_rows_are_skipped(tmp_path) -> None:
    path = write_csv(
        tmp_path / "hotels.csv",
        [["1", "Playa", "4"], ["2", "Costa"], ["3", "Sol", "3.5"]],
        header=HOTEL_HEADER,
        delimiter=";",
    )
    settings = Settings(_env_file=None, ingest_workers=2)

    result = hotel_pipeline(settings).run(path)

    assert result.rows_skipped == 1
    assert result.error_count == 0
    assert sorted(hotel.id for hotel in result.records) == [1, 3]
