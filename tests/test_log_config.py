"""Tests for logging setup."""

import logging

import pytest
import structlog

from lide.api.errors import error_body
from lide.log_config import configure_logging


@pytest.fixture
def restore_logging():
    yield
    configure_logging("info", "console")


class TestConfigureLogging:
    """Test levels applied to stdlib and uvicorn loggers."""

    def test_explicit_level_is_applied(self, restore_logging) -> None:
        level = configure_logging("debug", "json")

        assert level == logging.DEBUG
        assert logging.getLogger().level == logging.DEBUG
        assert logging.getLogger("uvicorn.error").level == logging.DEBUG

    def test_access_log_is_quieted(self, restore_logging) -> None:
        """Per-request uvicorn lines are held back below WARNING."""
        configure_logging("info", "console")
        assert logging.getLogger("uvicorn.access").level == logging.WARNING

        configure_logging("error", "console")
        assert logging.getLogger("uvicorn.access").level == logging.ERROR

    def test_unknown_level_falls_back_to_info(self, restore_logging) -> None:
        assert configure_logging("chatty", "console") == logging.INFO

    def test_level_from_environment(self, monkeypatch, restore_logging) -> None:
        monkeypatch.setenv("LIDE_LOG_LEVEL", "warning")
        assert configure_logging() == logging.WARNING

    def test_structlog_routes_through_stdlib(self, restore_logging) -> None:
        configure_logging("info", "json")
        config = structlog.get_config()
        assert isinstance(config["logger_factory"], structlog.stdlib.LoggerFactory)
        assert config["processors"][-1] is structlog.stdlib.ProcessorFormatter.wrap_for_formatter


class TestErrorBody:
    """Test the error envelope shape."""

    def test_details_default_to_none(self) -> None:
        assert error_body("NOT_FOUND", "gone") == {
            "error": {"code": "NOT_FOUND", "message": "gone", "details": None}
        }

    def test_details_are_kept(self) -> None:
        body = error_body("VALIDATION_ERROR", "Invalid request", [{"loc": ["body"]}])
        assert body["error"]["details"] == [{"loc": ["body"]}]
