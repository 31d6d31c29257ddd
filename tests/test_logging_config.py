"""
Test suite for configuration and structured logging
"""

import json
import logging

from lending_core.config import LendingConfig, reload_config, get_config
from lending_core.logging_config import JSONFormatter, get_logger, log_action, setup_logging


class ListHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


class TestLendingConfig:
    """Test environment-based configuration"""

    def test_defaults(self):
        config = LendingConfig()

        assert config.api_port == 8091
        assert config.rounding_epsilon == "0.00"
        assert config.calendar_max_lookup_dates == 1000

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("LENDING_LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("LENDING_CALENDAR_MAX_LOOKUP_DATES", "50")

        config = reload_config()

        assert config.log_level == "DEBUG"
        assert config.calendar_max_lookup_dates == 50
        assert get_config() is config

        monkeypatch.delenv("LENDING_LOG_LEVEL")
        monkeypatch.delenv("LENDING_CALENDAR_MAX_LOOKUP_DATES")
        reload_config()


class TestStructuredLogging:
    """Test JSON log output"""

    def test_json_formatter_fields(self):
        logger = get_logger("lending.test.formatter")
        record = logger.makeRecord(logger.name, logging.INFO, __name__, 0, "Loan approved", (), None)
        record.action = "approve_loan"
        record.resource = "loan:123"

        entry = json.loads(JSONFormatter().format(record))

        assert entry["message"] == "Loan approved"
        assert entry["action"] == "approve_loan"
        assert entry["resource"] == "loan:123"
        assert "correlation_id" not in entry

    def test_log_action_attaches_structured_data(self):
        logger = setup_logging("INFO", logger_name="lending.test.actions")
        handler = ListHandler()
        logger.addHandler(handler)

        log_action(
            logger, "info", "Loan disbursed", action="disburse_loan",
            resource="loan:1", extra={"version": 3}
        )
        log_action(logger, "debug", "Not emitted at INFO")

        assert len(handler.records) == 1
        record = handler.records[0]
        assert record.action == "disburse_loan"
        assert record.extra == {"version": 3}

    def test_text_format(self):
        logger = setup_logging("WARNING", logger_name="lending.test.text", log_format="text")

        assert logger.level == logging.WARNING
        assert not isinstance(logger.handlers[0].formatter, JSONFormatter)
        assert logger.propagate is False
