"""Tests for logging configuration."""

import json
import logging
import sys
from datetime import UTC, datetime
from unittest.mock import patch

from workout_cache.config import Environment, Settings
from workout_cache.logging_config import (
    DevFormatter,
    JSONFormatter,
    setup_logging,
)


def _record(msg: str = "Cache lookup: miss", **extra: object) -> logging.LogRecord:
    record = logging.LogRecord(
        name="workout_cache.service",
        level=logging.WARNING,
        pathname="service.py",
        lineno=7,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    """Tests for JSON log formatter."""

    def test_extra_fields_grouped(self) -> None:
        """Fields passed through ``extra=`` land under "extra"."""
        data = json.loads(JSONFormatter().format(_record(backend="direct", error_code="WC-4001")))

        assert data["level"] == "WARNING"
        assert data["logger"] == "workout_cache.service"
        assert data["file"] == "service.py:7"
        assert data["extra"] == {"backend": "direct", "error_code": "WC-4001"}

    def test_extra_values_not_json_native(self) -> None:
        """Values json cannot encode are written as strings."""
        refreshed = datetime(2026, 1, 1, tzinfo=UTC)

        data = json.loads(JSONFormatter().format(_record(refreshed_at=refreshed)))

        assert data["extra"]["refreshed_at"] == str(refreshed)

    def test_empty_extra_omitted(self) -> None:
        """Records without extra fields carry no "extra" key."""
        data = json.loads(JSONFormatter().format(_record()))

        assert "extra" not in data

    def test_exception_included(self) -> None:
        """Exception tracebacks are rendered into the record."""
        record = _record("Managed index refresh crashed")
        try:
            raise ConnectionError("store connection reset")
        except ConnectionError:
            record.exc_info = sys.exc_info()

        data = json.loads(JSONFormatter().format(record))

        assert "ConnectionError: store connection reset" in data["exception"]
        assert "extra" not in data


class TestSetupLogging:
    """Tests for logging setup."""

    def test_json_in_production(self) -> None:
        """Production logs are JSON and noisy client loggers are quieted."""
        with patch(
            "workout_cache.logging_config.get_settings",
            return_value=Settings(environment=Environment.PRODUCTION),
        ):
            root = setup_logging(level="DEBUG")

        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JSONFormatter)
        assert root.level == logging.DEBUG
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_dev_formatter_in_development(self) -> None:
        """Development logs are human-readable unless JSON is forced."""
        with patch(
            "workout_cache.logging_config.get_settings",
            return_value=Settings(environment=Environment.DEVELOPMENT),
        ):
            root = setup_logging()
            assert isinstance(root.handlers[0].formatter, DevFormatter)

            root = setup_logging(json_output=True)
            assert isinstance(root.handlers[0].formatter, JSONFormatter)
