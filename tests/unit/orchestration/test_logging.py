"""Tests for structured logging setup."""

import json
import logging

import pytest
import structlog

from fhir_orchestration.config import Settings
from fhir_orchestration.utils import logging as logging_utils
from fhir_orchestration.utils.logging import app_context, get_logger, setup_logging


@pytest.fixture
def configure(monkeypatch):
    """Run setup_logging with the given settings and restore logging afterwards."""
    package_logger = logging.getLogger("fhir_orchestration")
    httpx_logger = logging.getLogger("httpx")
    saved_levels = (package_logger.level, httpx_logger.level)

    def _configure(settings: Settings, **kwargs) -> None:
        monkeypatch.setattr(logging_utils, "get_settings", lambda: settings)
        setup_logging(**kwargs)

    yield _configure

    package_logger.setLevel(saved_levels[0])
    httpx_logger.setLevel(saved_levels[1])
    structlog.reset_defaults()


class TestAppContext:
    """Test the application context processor."""

    def test_adds_app_and_environment(self):
        """Every event names the application and its environment."""
        processor = app_context("FHIR Orchestration", "staging")

        event = processor(None, "info", {"event": "validated"})

        assert event == {
            "event": "validated",
            "app": "FHIR Orchestration",
            "environment": "staging",
        }

    def test_keeps_values_bound_by_the_caller(self):
        """Explicitly bound values win over the configured ones."""
        processor = app_context("FHIR Orchestration", "staging")

        event = processor(None, "info", {"event": "validated", "environment": "ci"})

        assert event["environment"] == "ci"


class TestSetupLogging:
    """Test how settings drive logging configuration."""

    def test_debug_mode_lowers_package_level(self, configure):
        """Debug mode logs everything from the package."""
        configure(Settings(_env_file=None, debug=True, log_level="WARNING"))

        assert logging.getLogger("fhir_orchestration").level == logging.DEBUG
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_explicit_level_overrides_debug(self, configure):
        """A level passed in wins over debug mode."""
        configure(Settings(_env_file=None, debug=True), level="error")

        assert logging.getLogger("fhir_orchestration").level == logging.ERROR

    def test_configured_level_without_debug(self, configure):
        """Outside debug mode the configured level applies."""
        configure(Settings(_env_file=None, log_level="WARNING"))

        assert logging.getLogger("fhir_orchestration").level == logging.WARNING

    def test_json_records_carry_app_context(self, configure, caplog):
        """Rendered JSON events include the application name and environment."""
        configure(
            Settings(_env_file=None, app_name="Validator Hub", environment="test"),
            level="INFO",
            log_format="json",
        )

        with caplog.at_level(logging.INFO, logger="fhir_orchestration"):
            get_logger("fhir_orchestration.tests").info("bundle_checked", is_valid=True)

        (record,) = [r for r in caplog.records if r.name == "fhir_orchestration.tests"]
        event = json.loads(record.getMessage())
        assert event["event"] == "bundle_checked"
        assert event["app"] == "Validator Hub"
        assert event["environment"] == "test"
        assert event["is_valid"] is True
