"""
STOCKCOUNT Logging Configuration Tests
"""

import json
import logging

import pytest

from stockcount.logging_config import (
    ROOT_LOGGER_NAME,
    JsonFormatter,
    get_logger,
    set_service_level,
    setup_logging,
)


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger(ROOT_LOGGER_NAME)
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


class TestSetupLogging:
    """Tests for setup_logging()."""

    def test_sets_level(self):
        setup_logging(log_level="DEBUG")
        assert logging.getLogger(ROOT_LOGGER_NAME).level == logging.DEBUG

    def test_unknown_level_falls_back_to_info(self):
        setup_logging(log_level="CHATTY")
        assert logging.getLogger(ROOT_LOGGER_NAME).level == logging.INFO

    def test_single_console_handler(self):
        """Repeated setup does not stack handlers."""
        setup_logging()
        setup_logging()
        assert len(logging.getLogger(ROOT_LOGGER_NAME).handlers) == 1

    def test_file_handler(self, tmp_path):
        log_file = tmp_path / "logs" / "stockcount.log"
        setup_logging(log_file=log_file)

        get_logger("pipeline").info("hello from the pipeline")
        for handler in logging.getLogger(ROOT_LOGGER_NAME).handlers:
            handler.flush()

        assert log_file.exists()
        assert "hello from the pipeline" in log_file.read_text()


class TestGetLogger:
    """Tests for get_logger()."""

    def test_prefixes_namespace(self):
        assert get_logger("pipeline").name == "stockcount.pipeline"

    def test_keeps_qualified_name(self):
        assert get_logger("stockcount.main").name == "stockcount.main"

    def test_service_level(self):
        set_service_level("extractor", "WARNING")
        assert logging.getLogger("stockcount.extractor").level == logging.WARNING
        logging.getLogger("stockcount.extractor").setLevel(logging.NOTSET)


class TestJsonFormatter:
    """Tests for single-line JSON records."""

    def test_record_fields(self):
        record = logging.LogRecord(
            "stockcount.server", logging.WARNING, __file__, 1, "port %d busy", (10500,), None
        )
        payload = json.loads(JsonFormatter().format(record))
        assert payload["logger"] == "stockcount.server"
        assert payload["level"] == "WARNING"
        assert payload["message"] == "port 10500 busy"
