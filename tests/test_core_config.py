"""
Tests for the core configuration, error and logging modules.
"""
import json
import logging
import os
from unittest.mock import MagicMock, patch

import pytest
from pydantic import ValidationError

from core.best_effort import BestEffort, best_effort, best_effort_async
from core.config import Settings, settings
from core.errors import (
    HTTP_STATUS_BY_ERROR_TYPE,
    AuthenticationError,
    ConfigurationError,
    DuplicateDeliveryNoop,
    EngineError,
    ExternalDispatchError,
    NotFoundError,
    StatusTransitionError,
)
from core.logging_config import ExecutionLogger, JsonFormatter


class TestSettings:
    """Test the Settings class."""

    def test_default_values(self):
        """Test that default values are set correctly."""
        with patch.dict(os.environ, {}, clear=True):
            test_settings = Settings(_env_file=None)

            assert test_settings.database_path == "workflow_engine.db"
            assert test_settings.base_url == "http://localhost:8000"
            assert test_settings.environment == "development"
            assert test_settings.worker_dispatch_timeout == 30.0
            assert test_settings.webhook_max_age_seconds == 300
            assert test_settings.collector_failure_policy == "fail"
            assert test_settings.debug is False
            assert test_settings.log_level == "INFO"
            assert test_settings.api_host == "0.0.0.0"
            assert test_settings.api_port == 8000
            assert test_settings.is_hardened is False

    def test_environment_variable_override(self):
        """Test that environment variables override defaults."""
        test_env = {
            "DATABASE_PATH": "/tmp/engine.db",
            "BASE_URL": "https://engine.example.com",
            "ENVIRONMENT": "production",
            "COLLECTOR_FAILURE_POLICY": "partial",
            "DEBUG": "true",
            "LOG_LEVEL": "DEBUG",
        }

        with patch.dict(os.environ, test_env, clear=True):
            test_settings = Settings(_env_file=None)

            assert test_settings.database_path == "/tmp/engine.db"
            assert test_settings.base_url == "https://engine.example.com"
            assert test_settings.collector_failure_policy == "partial"
            assert test_settings.debug is True
            assert test_settings.log_level == "DEBUG"
            assert test_settings.is_hardened is True

    def test_settings_instance(self):
        """Test that the global settings instance exists."""
        assert isinstance(settings, Settings)
        assert hasattr(settings, 'database_path')
        assert hasattr(settings, 'base_url')

    def test_field_descriptions(self):
        """Test that field descriptions are set."""
        assert Settings.model_fields['base_url'].description == "Public base URL used to build worker callback URLs"
        assert Settings.model_fields['collector_failure_policy'].description

    def test_invalid_boolean_environment_variable(self):
        """Test handling of invalid boolean environment variables."""
        with patch.dict(os.environ, {"DEBUG": "invalid_boolean"}, clear=True):
            with pytest.raises(ValidationError):
                Settings(_env_file=None)

    def test_invalid_integer_environment_variable(self):
        with patch.dict(os.environ, {"API_PORT": "not_a_number"}, clear=True):
            with pytest.raises(ValidationError):
                Settings(_env_file=None)

    def test_invalid_collector_policy(self):
        with patch.dict(os.environ, {"COLLECTOR_FAILURE_POLICY": "sometimes"}, clear=True):
            with pytest.raises(ValidationError):
                Settings(_env_file=None)


class TestErrors:
    """Test the error taxonomy."""

    def test_status_mapping(self):
        assert HTTP_STATUS_BY_ERROR_TYPE["validation"] == 400
        assert HTTP_STATUS_BY_ERROR_TYPE["authentication"] == 401
        assert HTTP_STATUS_BY_ERROR_TYPE["not_found"] == 404
        assert HTTP_STATUS_BY_ERROR_TYPE["configuration"] == 422
        assert HTTP_STATUS_BY_ERROR_TYPE["dispatch"] == 502
        assert HTTP_STATUS_BY_ERROR_TYPE["internal"] == 500

    def test_to_dict(self):
        error = ConfigurationError("Webhook is inactive", endpoint_slug="s1")

        assert error.to_dict() == {"error": "Webhook is inactive", "errorType": "configuration"}
        assert error.context == {"endpoint_slug": "s1"}
        assert isinstance(error, EngineError)

    def test_subclasses_carry_their_tags(self):
        assert NotFoundError("x").http_status == 404
        assert AuthenticationError("x").error_type == "authentication"
        assert DuplicateDeliveryNoop("x").http_status == 200
        assert ExternalDispatchError("x", status_code=503).status_code == 503

    def test_status_transition_error(self):
        error = StatusTransitionError("completed", "running", node_id="n1")

        assert "completed" in error.message
        assert error.http_status == 500


class TestBestEffort:
    """Test explicit best-effort results."""

    def test_success(self):
        result = best_effort(lambda a, b: a + b, 1, b=2)

        assert result.ok
        assert result.value == 3

    def test_failure_is_captured_and_logged(self):
        def fail():
            raise RuntimeError("nope")

        logger = MagicMock()
        result = best_effort(fail)

        assert not result.ok
        assert result.acknowledge(logger, "Placement failed", entity_id="e1", edge_id=None) is None
        logger.warning.assert_called_once_with("Placement failed: nope | entity_id=e1")

    def test_acknowledge_success_does_not_log(self):
        logger = MagicMock()

        assert BestEffort(value=5).acknowledge(logger, "unused") == 5
        logger.warning.assert_not_called()

    @pytest.mark.asyncio
    async def test_async_failure(self):
        async def fail():
            raise ValueError("bad")

        result = await best_effort_async(fail)

        assert isinstance(result.error, ValueError)


class TestExecutionLogger:
    """Test structured execution logging."""

    def test_event_renders_context(self):
        logger = MagicMock()
        exec_logger = ExecutionLogger(logger)

        exec_logger.log_node_execution("r1", "n1", "Worker", input={"a": 1})

        level, text = logger.log.call_args[0]
        assert level == logging.INFO
        assert text == 'Node execution started | run_id=r1 node_id=n1 node_type=Worker input={"a": 1}'
        assert logger.log.call_args[1]["extra"]["context"]["run_id"] == "r1"

    def test_execution_error_includes_exception(self):
        logger = MagicMock()

        ExecutionLogger(logger).log_execution_error("Node failed", error=KeyError("k"), run_id="r1")

        level, text = logger.log.call_args[0]
        assert level == logging.ERROR
        assert "error_type=KeyError" in text

    def test_json_formatter(self):
        record = logging.LogRecord("engine", logging.INFO, __file__, 1, "Edge walking", None, None)
        record.context = {"run_id": "r1"}

        entry = json.loads(JsonFormatter().format(record))

        assert entry["message"] == "Edge walking"
        assert entry["run_id"] == "r1"
        assert entry["level"] == "INFO"
