from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from holiday_offers.config.settings import Settings


def test_defaults_without_environment(monkeypatch) -> None:
    monkeypatch.delenv("HOLIDAY_STORAGE_BACKEND", raising=False)
    settings = Settings(_env_file=None)

    assert settings.storage_backend == "memory"
    assert settings.hotels_delimiter == ";"
    assert settings.offers_delimiter == ","
    assert settings.ingest_batch_size == 100
    assert settings.cassandra_hosts == ("localhost",)


def test_environment_overrides(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("HOLIDAY_STORAGE_BACKEND", " Cassandra ")
    monkeypatch.setenv("HOLIDAY_CASSANDRA_HOSTS", "scylla-1, scylla-2,")
    monkeypatch.setenv("HOLIDAY_CASSANDRA_READ_CONSISTENCY", "local_one")
    monkeypatch.setenv("HOLIDAY_INGEST_WORKERS", "3")
    monkeypatch.setenv("HOLIDAY_OFFERS_DATA_PATH", str(tmp_path / "offers.csv"))

    settings = Settings(_env_file=None)

    assert settings.storage_backend == "cassandra"
    assert settings.cassandra_hosts == ("scylla-1", "scylla-2")
    assert settings.cassandra_read_consistency == "LOCAL_ONE"
    assert settings.resolved_ingest_workers() == 3
    assert settings.offers_data_path == tmp_path / "offers.csv"
    assert settings.cluster_kwargs()["contact_points"] == ["scylla-1", "scylla-2"]


def test_unknown_backend_is_rejected() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, storage_backend="redis")


def test_unknown_consistency_falls_back_to_quorum() -> None:
    settings = Settings(_env_file=None, cassandra_consistency="SOMETIMES")

    assert settings.cassandra_consistency == "QUORUM"


def test_default_workers_scale_with_cpu_count(monkeypatch) -> None:
    monkeypatch.delenv("HOLIDAY_INGEST_WORKERS", raising=False)
    monkeypatch.setattr("holiday_offers.config.settings.os.cpu_count", lambda: 4)

    assert Settings(_env_file=None).resolved_ingest_workers() == 8


def test_ensure_directories_creates_log_dir(tmp_path) -> None:
    settings = Settings(_env_file=None, log_dir=tmp_path / "logs" / "nested")

    settings.ensure_directories()

    assert Path(settings.log_dir).is_dir()
