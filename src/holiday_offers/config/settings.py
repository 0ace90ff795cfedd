"""Runtime configuration for ingestion and offer search.

Relies on pydantic-settings so that environment variables (prefixed with ``HOLIDAY_``)
can override defaults.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Annotated, Optional, Tuple

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

logger = logging.getLogger(__name__)

STORAGE_BACKENDS = frozenset({"memory", "cassandra"})
CONSISTENCY_LEVELS = frozenset(
    {
        "ANY",
        "ONE",
        "TWO",
        "THREE",
        "QUORUM",
        "ALL",
        "LOCAL_QUORUM",
        "EACH_QUORUM",
        "LOCAL_ONE",
    }
)


class Settings(BaseSettings):
    """Captures runtime configuration for the offer search backend."""

    hotels_data_path: Path = Field(default=Path("data/hotels.csv"), description="Semicolon-delimited hotels file")
    offers_data_path: Path = Field(default=Path("data/offers.csv"), description="Comma-delimited offers file")
    hotels_delimiter: str = Field(default=";", min_length=1, max_length=1)
    offers_delimiter: str = Field(default=",", min_length=1, max_length=1)
    storage_backend: str = Field(default="memory", description="Either 'memory' or 'cassandra'")

    ingest_batch_size: int = Field(default=100, ge=1, description="Rows per batch handed to a worker")
    ingest_workers: Optional[int] = Field(
        default=None, ge=1, description="Parser worker threads; defaults to twice the CPU count"
    )
    ingest_queue_size: int = Field(default=1, ge=1, description="Batches buffered ahead of the workers")
    ingest_error_capacity: int = Field(
        default=10, ge=0, description="Parse errors retained for reporting; further errors are only counted"
    )
    ingest_progress_interval: int = Field(default=10000, ge=1, description="Rows between progress log lines")

    log_level: str = Field(default="INFO")
    log_dir: Path = Field(default=Path("data/logs"))

    cassandra_hosts: Annotated[Tuple[str, ...], NoDecode] = Field(
        default=("localhost",), description="Comma-separated contact points"
    )
    cassandra_port: int = Field(default=9042, description="Native transport port (19042 for shard-aware)")
    cassandra_keyspace: str = Field(default="holidays")
    cassandra_username: Optional[str] = None
    cassandra_password: Optional[str] = None
    cassandra_consistency: str = Field(default="QUORUM", description="Default consistency for writes")
    cassandra_read_consistency: str = Field(default="ONE", description="Consistency for partition scans")
    cassandra_local_dc: Optional[str] = Field(
        default=None, description="Enables DC-aware routing when set"
    )
    cassandra_protocol_version: int = Field(default=4)
    cassandra_request_timeout_s: float = Field(default=15.0, gt=0)
    cassandra_connect_timeout_s: float = Field(default=15.0, gt=0)
    cassandra_fetch_size: int = Field(default=100, ge=1, description="Rows fetched per page during scans")
    cassandra_write_concurrency: int = Field(default=64, ge=1, description="In-flight inserts during import")
    cassandra_replication_factor: int = Field(default=1, ge=1, description="Used when creating the keyspace")

    model_config = SettingsConfigDict(
        env_prefix="HOLIDAY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("hotels_data_path", "offers_data_path", "log_dir", mode="before")
    def _expand_path(cls, value: str | Path) -> Path:
        if isinstance(value, Path):
            return value
        return Path(value).expanduser()

    @field_validator("storage_backend", mode="before")
    def _normalize_backend(cls, value: object) -> str:
        backend = str(value or "").strip().lower()
        if backend not in STORAGE_BACKENDS:
            raise ValueError(f"storage_backend must be one of {sorted(STORAGE_BACKENDS)}, got {value!r}")
        return backend

    @field_validator("cassandra_hosts", mode="before")
    def _parse_hosts(cls, value: object) -> Tuple[str, ...]:
        if value is None or value == "":
            return ()
        if isinstance(value, (tuple, list)):
            return tuple(str(item).strip() for item in value if str(item).strip())
        if isinstance(value, str):
            parts = [part.strip() for part in value.split(",")]
            return tuple(part for part in parts if part)
        raise TypeError("cassandra_hosts must be provided as a comma-separated string or list")

    @field_validator("cassandra_consistency", "cassandra_read_consistency", mode="before")
    def _normalize_consistency(cls, value: object) -> str:
        name = str(value or "").strip().upper()
        if name not in CONSISTENCY_LEVELS:
            logger.warning("Unknown consistency level %r; falling back to QUORUM", value)
            return "QUORUM"
        return name

    def ensure_directories(self) -> None:
        """Create directories that must exist at runtime."""
        self.log_dir.mkdir(parents=True, exist_ok=True)

    def resolved_ingest_workers(self) -> int:
        if self.ingest_workers:
            return self.ingest_workers
        return (os.cpu_count() or 1) * 2

    def cluster_kwargs(self) -> dict[str, object]:
        """Keyword arguments for ``cassandra.cluster.Cluster`` that do not need driver objects."""
        return {
            "contact_points": list(self.cassandra_hosts),
            "port": self.cassandra_port,
            "protocol_version": self.cassandra_protocol_version,
            "connect_timeout": self.cassandra_connect_timeout_s,
        }
