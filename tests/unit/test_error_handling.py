"""
Error Handling Tests
====================

Exception hierarchy, exception conversion and log formatting.
"""

import json
import logging
from unittest.mock import Mock

import pytest

from patchwatch.utils.exceptions import (
    ConfigurationError,
    DeliveryError,
    DuplicateRecordError,
    ErrorCode,
    PatchWatchError,
    StoreError,
    handle_exception,
)
from patchwatch.utils.logging import (
    ColoredConsoleFormatter,
    PerformanceLogger,
    StructuredFormatter,
    get_logger_for_component,
)


class TestExceptions:

    def test_error_code_prefixes_message(self):
        error = StoreError("timeout talking to store", resource="items")

        assert str(error) == "[D002] timeout talking to store"
        assert error.context["resource"] == "items"
        assert not error.recoverable

    def test_duplicate_is_recoverable_store_error(self):
        error = DuplicateRecordError("already there", resource="items", status=409)

        assert isinstance(error, StoreError)
        assert error.error_code == ErrorCode.STORE_DUPLICATE
        assert error.recoverable
        assert error.context["status"] == 409

    def test_configuration_error_user_message(self):
        error = ConfigurationError("Missing env vars: X", error_code=ErrorCode.CONFIG_MISSING)

        assert error.user_message == "Configuration error: Missing env vars: X"

    def test_delivery_error_context(self):
        error = DeliveryError("rate limited", attempts=3, retry_after=5.0)

        assert error.to_dict()["context"] == {"attempts": 3, "retry_after": 5.0}

    def test_to_dict(self):
        data = StoreError("boom").to_dict()

        assert data["error_type"] == "StoreError"
        assert data["error_code"] == "D002"
        assert data["recoverable"] is False


class TestHandleException:

    def test_passes_through_own_errors(self):
        logger = Mock()
        original = StoreError("boom")

        assert handle_exception(original, logger, "query") is original
        logger.error.assert_called_once()

    def test_network_errors_recoverable(self):
        error = handle_exception(ConnectionError("reset"), Mock(), "fetch")

        assert error.error_code == ErrorCode.FEED_NETWORK_ERROR
        assert error.recoverable

    def test_unexpected_errors(self):
        error = handle_exception(KeyError("missing"), Mock(), "poll run", {"run_id": "abc"})

        assert isinstance(error, PatchWatchError)
        assert error.error_code == ErrorCode.SYSTEM_UNEXPECTED
        assert error.context["run_id"] == "abc"
        assert error.context["original_exception_type"] == "KeyError"


class TestLogging:

    def _record(self, **extra):
        record = logging.LogRecord("patchwatch.test", logging.INFO, __file__, 10,
                                   "Fetched %d bytes", (42,), None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_structured_formatter_emits_json_with_extra(self):
        output = StructuredFormatter().format(self._record(source_id=7, component="fetcher"))
        data = json.loads(output)

        assert data["message"] == "Fetched 42 bytes"
        assert data["level"] == "INFO"
        assert data["extra"] == {"source_id": 7, "component": "fetcher"}

    def test_console_formatter_prefixes_source(self):
        output = ColoredConsoleFormatter().format(self._record(source_id=7))

        assert "[source 7] Fetched 42 bytes" in output

    def test_component_logger_context(self):
        adapter = get_logger_for_component("pipeline", source_id=3, run_id="r1")

        assert adapter.logger.name == "patchwatch.pipeline"
        assert adapter.extra == {"component": "pipeline", "source_id": 3, "run_id": "r1"}

    def test_performance_logger_records_duration(self):
        logger = Mock()

        with PerformanceLogger(logger, "persisting") as perf:
            pass

        assert perf.duration >= 0
        logger.debug.assert_called()

    def test_performance_logger_reports_failure(self):
        logger = Mock()

        with pytest.raises(ValueError):
            with PerformanceLogger(logger, "persisting"):
                raise ValueError("bad")

        logger.error.assert_called_once()
