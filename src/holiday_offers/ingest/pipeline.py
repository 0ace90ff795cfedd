"""Streaming, multi-threaded ingestion of delimited record files.

One producer thread reads the source and groups rows into small batches.
A fixed pool of worker threads parses the batches, and the calling thread
collects the results. Threads communicate only through bounded queues, so a
slow consumer blocks the producer instead of letting memory grow with the
input size.
"""
from __future__ import annotations

import csv
import logging
import os
import queue
import threading
import time
from contextlib import suppress
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Generic, Iterator, List, Optional, Sequence, TextIO, TypeVar, Union

from holiday_offers.hotels.parser import MalformedRecord

logger = logging.getLogger(__name__)

T = TypeVar("T")
Source = Union[str, Path, TextIO]

_STOP = object()
_READ_BUFFER_BYTES = 1024 * 1024


class SourceUnreadableError(RuntimeError):
    """Raised when the source or its header row cannot be read. Aborts the run."""


@dataclass
class IngestResult(Generic[T]):
    """Outcome of one ingestion run. ``records`` is unordered."""

    records: List[T] = field(default_factory=list)
    rows_read: int = 0
    rows_skipped: int = 0
    parsed_count: int = 0
    error_count: int = 0
    errors: List[MalformedRecord] = field(default_factory=list)
    elapsed_s: float = 0.0


@dataclass(frozen=True)
class _BatchResult:
    records: list
    rows: int
    failures: int


@dataclass(frozen=True)
class _WorkerFailure:
    error: BaseException


@dataclass
class _ProducerOutcome:
    # Written by the producer thread only; read after it has been joined.
    rows_read: int = 0
    rows_skipped: int = 0
    error: Optional[BaseException] = None


class IngestionPipeline(Generic[T]):
    """Parse a delimited source into typed records using a pool of workers."""

    def __init__(
        self,
        parse_row: Callable[[Sequence[str]], T],
        *,
        min_columns: int,
        delimiter: str = ",",
        batch_size: int = 100,
        workers: Optional[int] = None,
        queue_size: int = 1,
        error_capacity: int = 10,
        progress_interval: int = 10000,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if workers is not None and workers < 1:
            raise ValueError("workers must be at least 1")
        self.parse_row = parse_row
        self.min_columns = min_columns
        self.delimiter = delimiter
        self.batch_size = batch_size
        self.workers = workers or (os.cpu_count() or 1) * 2
        self.queue_size = max(queue_size, 1)
        self.error_capacity = max(error_capacity, 0)
        self.progress_interval = max(progress_interval, 1)

    def run(
        self,
        source: Source,
        *,
        sink: Optional[Callable[[List[T]], None]] = None,
    ) -> IngestResult[T]:
        """Ingest ``source`` and return the parsed records.

        When ``sink`` is given, each parsed batch is passed to it from the
        calling thread instead of being accumulated in the result.
        """
        started = time.monotonic()
        handle, owned = self._open(source)
        try:
            reader = csv.reader(handle, delimiter=self.delimiter)
            name = getattr(handle, "name", "<stream>")
            try:
                next(reader)
            except StopIteration as exc:
                raise SourceUnreadableError(f"{name} has no header row") from exc
            except (OSError, csv.Error, UnicodeDecodeError) as exc:
                raise SourceUnreadableError(f"Failed to read header of {name}: {exc}") from exc
            result = self._process(reader, sink)
        finally:
            if owned:
                handle.close()
        result.elapsed_s = time.monotonic() - started
        logger.info(
            "Ingested %s: %d rows read, %d skipped, %d parsed, %d errors in %.2fs",
            name,
            result.rows_read,
            result.rows_skipped,
            result.parsed_count,
            result.error_count,
            result.elapsed_s,
        )
        return result

    def _open(self, source: Source) -> tuple[TextIO, bool]:
        if isinstance(source, (str, Path)):
            path = Path(source)
            try:
                handle = path.open("r", encoding="utf-8", newline="", buffering=_READ_BUFFER_BYTES)
            except OSError as exc:
                raise SourceUnreadableError(f"Failed to open {path}: {exc}") from exc
            return handle, True
        return source, False

    def _process(self, reader: Iterator[list[str]], sink: Optional[Callable[[List[T]], None]]) -> IngestResult[T]:
        batches: queue.Queue = queue.Queue(maxsize=self.queue_size)
        results: queue.Queue = queue.Queue(maxsize=self.workers)
        errors: Optional[queue.Queue] = queue.Queue(maxsize=self.error_capacity) if self.error_capacity else None
        outcome = _ProducerOutcome()

        producer = threading.Thread(
            target=self._produce, args=(reader, batches, outcome), name="ingest-producer", daemon=True
        )
        workers = [
            threading.Thread(
                target=self._work, args=(batches, results, errors), name=f"ingest-worker-{index}", daemon=True
            )
            for index in range(self.workers)
        ]
        for worker in workers:
            worker.start()
        producer.start()

        result: IngestResult[T] = IngestResult()
        worker_failure: Optional[BaseException] = None
        sink_failure: Optional[BaseException] = None
        processed = 0
        last_milestone = 0
        finished = 0
        while finished < len(workers):
            message = results.get()
            if message is _STOP:
                finished += 1
                continue
            if isinstance(message, _WorkerFailure):
                worker_failure = worker_failure or message.error
                continue
            processed += message.rows
            result.parsed_count += len(message.records)
            result.error_count += message.failures
            milestone = processed // self.progress_interval
            if milestone > last_milestone:
                last_milestone = milestone
                logger.info("Processed %d rows", processed)
            if not message.records or sink_failure is not None:
                continue
            if sink is None:
                result.records.extend(message.records)
                continue
            try:
                sink(message.records)
            except Exception as exc:
                # Keep draining so that the workers and the producer can exit.
                logger.error("Batch sink failed; discarding remaining batches: %s", exc)
                sink_failure = exc

        producer.join()
        for worker in workers:
            worker.join()

        if errors is not None:
            while True:
                try:
                    result.errors.append(errors.get_nowait())
                except queue.Empty:
                    break
        for error in result.errors:
            logger.warning("Skipped malformed row: %s", error)
        if result.error_count > len(result.errors):
            logger.warning("%d further malformed rows were not reported", result.error_count - len(result.errors))

        result.rows_read = outcome.rows_read
        result.rows_skipped = outcome.rows_skipped
        if outcome.error is not None:
            raise SourceUnreadableError(
                f"Reading stopped after {outcome.rows_read} rows: {outcome.error}"
            ) from outcome.error
        if worker_failure is not None:
            raise worker_failure
        if sink_failure is not None:
            raise sink_failure
        return result

    def _produce(self, reader: Iterator[list[str]], batches: queue.Queue, outcome: _ProducerOutcome) -> None:
        batch: list[list[str]] = []
        try:
            for row in reader:
                outcome.rows_read += 1
                if len(row) < self.min_columns:
                    outcome.rows_skipped += 1
                    continue
                batch.append(row)
                if len(batch) >= self.batch_size:
                    batches.put(batch)
                    batch = []
            if batch:
                batches.put(batch)
        except (OSError, csv.Error, UnicodeDecodeError) as exc:
            outcome.error = exc
        finally:
            for _ in range(self.workers):
                batches.put(_STOP)

    def _work(self, batches: queue.Queue, results: queue.Queue, errors: Optional[queue.Queue]) -> None:
        while True:
            batch = batches.get()
            if batch is _STOP:
                results.put(_STOP)
                return
            try:
                parsed = []
                failures = 0
                for row in batch:
                    try:
                        parsed.append(self.parse_row(row))
                    except MalformedRecord as exc:
                        failures += 1
                        if errors is not None:
                            with suppress(queue.Full):
                                errors.put_nowait(exc)
                results.put(_BatchResult(parsed, len(batch), failures))
            except Exception as exc:
                results.put(_WorkerFailure(exc))
