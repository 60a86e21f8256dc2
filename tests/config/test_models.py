"""Tests for config/models.py module."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from identdb.config.models import (
    DatabaseConfig,
    IdentDbConfig,
    LoggingConfig,
    LogOutputConfig,
    StoreConfig,
)


class TestLogOutputConfig:
    """Tests for LogOutputConfig destination validation."""

    @pytest.mark.parametrize("destination", ["stderr", "stdout"])
    def test_accepts_streams(self, destination: str) -> None:
        assert LogOutputConfig(destination=destination).destination == destination

    def test_accepts_absolute_path(self, tmp_path: Path) -> None:
        path = tmp_path / "identdb.log"
        assert LogOutputConfig(destination=str(path)).destination == str(path)

    def test_rejects_relative_path(self) -> None:
        with pytest.raises(ValidationError):
            LogOutputConfig(destination="logs/identdb.log")


class TestDatabaseConfig:
    def test_rejects_negative_busy_timeout(self) -> None:
        with pytest.raises(ValidationError):
            DatabaseConfig(busy_timeout_ms=-1)

    def test_default_path_unset(self) -> None:
        assert DatabaseConfig().path is None


class TestStoreConfig:
    @pytest.mark.parametrize("policy", ["atomic", "best_effort"])
    def test_accepts_policies(self, policy: str) -> None:
        assert StoreConfig(write_policy=policy).write_policy == policy  # type: ignore[arg-type]

    def test_rejects_unknown_policy(self) -> None:
        with pytest.raises(ValidationError):
            StoreConfig(write_policy="sometimes")  # type: ignore[arg-type]


class TestIdentDbConfig:
    def test_defaults(self) -> None:
        config = IdentDbConfig()

        assert config.logging == LoggingConfig()
        assert config.logging.outputs[0].destination == "stderr"
        assert config.database.busy_timeout_ms == 30000
        assert config.tokenizer.recursive_split is False
