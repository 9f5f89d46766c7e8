"""Unit tests for logging configuration."""

import json
from pathlib import Path

import pytest
from loguru import logger

from discovery_cache.core.logging import setup_logging


class TestLogging:
    """Tests for Loguru logging setup."""

    @pytest.fixture(autouse=True)
    def _reset_logger(self):
        yield
        logger.remove()

    def test_setup_logging_does_not_raise(self) -> None:
        """setup_logging with valid log level does not raise."""
        setup_logging("DEBUG")
        setup_logging("INFO")
        setup_logging("WARNING")

    def test_setup_logging_case_insensitive(self) -> None:
        """setup_logging accepts case-insensitive log levels."""
        setup_logging("info")
        setup_logging("debug")

    def test_json_logs_serialize_records(self, capsys: pytest.CaptureFixture[str]) -> None:
        """With json_logs every stderr line is a JSON object."""
        setup_logging("INFO", json_logs=True)
        logger.info("event window refreshed")

        line = capsys.readouterr().err.strip().splitlines()[-1]
        assert json.loads(line)["record"]["message"] == "event window refreshed"

    def test_log_dir_creates_file_sink(self, tmp_path: Path) -> None:
        """A log file is written under log_dir."""
        log_dir = tmp_path / "logs"
        setup_logging("INFO", log_dir=str(log_dir))
        logger.info("written to file")
        logger.remove()

        log_file = log_dir / "discovery-cache.log"
        assert log_file.exists()
        assert "written to file" in log_file.read_text()
