"""
Tests for configuration loading and structured logging
"""

import json
import logging
from decimal import Decimal

import pytest

from lending_core import config as config_module
from lending_core.config import LendingConfig, get_config, reload_config
from lending_core.logging_config import JSONFormatter, setup_logging, get_logger, log_action
from lending_core.storage import InMemoryStorage
from lending_core.system import LendingSystem


class TestLendingConfig:
    """Test pydantic-settings configuration"""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("LENDING_API_PORT", raising=False)
        cfg = LendingConfig(_env_file=None)

        assert cfg.storage_backend == "sqlite"
        assert cfg.api_port == 8090
        assert cfg.payment_tolerance == "0.05"
        assert cfg.default_page_size == 100
        assert cfg.enable_audit_logging

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("LENDING_STORAGE_BACKEND", "memory")
        monkeypatch.setenv("LENDING_API_PORT", "9100")
        monkeypatch.setenv("LENDING_PAYMENT_TOLERANCE", "0.10")

        cfg = LendingConfig(_env_file=None)
        assert cfg.storage_backend == "memory"
        assert cfg.api_port == 9100
        assert cfg.payment_tolerance == "0.10"

    def test_reload_config(self, monkeypatch):
        original = get_config()
        monkeypatch.setenv("LENDING_LOG_LEVEL", "DEBUG")
        try:
            reloaded = reload_config()
            assert reloaded.log_level == "DEBUG"
            assert get_config() is reloaded
        finally:
            config_module.config = original

    def test_system_uses_configured_tolerance(self):
        cfg = LendingConfig(_env_file=None, payment_tolerance="0.10", enable_audit_logging=False)
        system = LendingSystem(storage=InMemoryStorage(), config=cfg)

        assert system.loan_ledger.payment_tolerance == Decimal('0.10')
        assert not system.audit_trail.enabled

        client = system.client_manager.create_client("Ana", "Gomez", "1001", "3001234567")
        loan = system.loan_ledger.create_loan(client.id, 1200, 0, 12)
        # 9% short is inside a 10% band
        system.loan_ledger.apply_payment(loan.id, 1, '91.37')
        assert system.audit_trail.count_events() == 0
        system.close()

    def test_memory_backend_from_config(self):
        cfg = LendingConfig(_env_file=None, storage_backend="memory")
        system = LendingSystem(config=cfg)
        assert isinstance(system.storage, InMemoryStorage)


class TestStructuredLogging:
    """Test JSON log output"""

    def _record(self, **extra):
        record = logging.LogRecord("lending.loans", logging.INFO, __file__, 1, "Loan issued", None, None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_formatter_emits_json(self):
        output = JSONFormatter().format(self._record(action="loan.create", resource="loan", resource_id="L1"))
        entry = json.loads(output)

        assert entry["level"] == "INFO"
        assert entry["logger"] == "lending.loans"
        assert entry["message"] == "Loan issued"
        assert entry["action"] == "loan.create"
        assert entry["resource_id"] == "L1"
        assert "timestamp" in entry

    def test_formatter_drops_empty_fields(self):
        entry = json.loads(JSONFormatter().format(self._record()))
        assert "action" not in entry
        assert "extra" not in entry

    def test_setup_logging(self):
        logger = setup_logging(level="warning", logger_name="lending.test_setup")

        assert logger.level == logging.WARNING
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0].formatter, JSONFormatter)
        assert not logger.propagate

        # Calling again replaces the handler instead of stacking another
        setup_logging(level="INFO", logger_name="lending.test_setup")
        assert len(logger.handlers) == 1

    def test_log_action_attaches_fields(self, caplog):
        logger = get_logger("lending.test_action")
        with caplog.at_level(logging.INFO, logger="lending.test_action"):
            log_action(logger, "info", "Payment recorded", action="payment.record",
                       resource="payment", resource_id="P1", extra={"installment": 2})

        record = caplog.records[-1]
        assert record.action == "payment.record"
        assert record.resource == "payment"
        assert record.resource_id == "P1"
        assert record.extra == {"installment": 2}

    def test_log_to_file(self, tmp_path):
        log_file = tmp_path / "lending.log"
        logger = setup_logging(level="INFO", logger_name="lending.test_file", log_file=str(log_file))

        log_action(logger, "info", "Client registered", action="client.create")
        for handler in logger.handlers:
            handler.flush()

        entry = json.loads(log_file.read_text().strip().splitlines()[-1])
        assert entry["action"] == "client.create"

        for handler in logger.handlers[:]:
            handler.close()
            logger.removeHandler(handler)
