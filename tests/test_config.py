"""
Configuration and Logging Tests

Validates environment selection, settings validation and structured logging
setup for the workflow core.

Key Testing Coverage:
- Environment name to configuration class mapping with production fallback
- Validation of reminder schedule, thresholds and limits
- ``ConfigurationError`` raised by ``create_workflow_settings``
- structlog configuration for JSON and console rendering

Dependencies:
- pytest 7.4+ with monkeypatch for environment isolation
- structlog for logging configuration checks
"""

import json
import logging

import pytest
import structlog

from src.config.settings import (
    BaseConfig, DevelopmentConfig, ProductionConfig, TestingConfig,
    create_workflow_settings, get_config, validate_configuration
)
from src.monitoring.logging import get_logger, setup_structured_logging
from src.utils.exceptions import ConfigurationError

logger = structlog.get_logger("tests.test_config")


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    structlog.reset_defaults()
    root.handlers[:] = handlers
    root.setLevel(level)


# ============================================================================
# ENVIRONMENT SELECTION
# ============================================================================

class TestEnvironmentSelection:

    @pytest.mark.parametrize('name, expected', [
        ('development', DevelopmentConfig),
        ('testing', TestingConfig),
        ('TESTING', TestingConfig),
        ('production', ProductionConfig),
    ])
    def test_known_environments(self, name, expected):
        assert get_config(name) is expected

    def test_unknown_environment_falls_back_to_production(self):
        assert get_config('staging') is ProductionConfig

    def test_app_env_variable(self, monkeypatch):
        monkeypatch.setenv('APP_ENV', 'development')
        assert get_config() is DevelopmentConfig

    def test_testing_defaults(self):
        assert TestingConfig.REMINDER_INTERVALS_HOURS == (24, 48, 168)
        assert TestingConfig.OVERDUE_THRESHOLD_DAYS == 0
        assert TestingConfig.FIRST_REMINDER_WINDOW_DAYS == 7
        assert TestingConfig.WORKFLOW_ID_PREFIX == 'WF-REQ'
        assert TestingConfig.MAX_BULK_WORKFLOWS == 100
        assert TestingConfig.REMINDER_MESSAGE_MAX_LENGTH == 500


# ============================================================================
# VALIDATION
# ============================================================================

class TestConfigurationValidation:

    def test_testing_config_is_valid(self):
        assert validate_configuration(TestingConfig) == []
        assert create_workflow_settings('testing') is TestingConfig

    @pytest.mark.parametrize('attribute, value, issue', [
        ('REMINDER_INTERVALS_HOURS', (), 'REMINDER_INTERVALS_HOURS must contain at least one interval'),
        ('REMINDER_INTERVALS_HOURS', (24, 0), 'REMINDER_INTERVALS_HOURS must be positive'),
        ('REMINDER_INTERVALS_HOURS', (48, 24), 'REMINDER_INTERVALS_HOURS must be in ascending order'),
        ('OVERDUE_THRESHOLD_DAYS', -1, 'OVERDUE_THRESHOLD_DAYS must not be negative'),
        ('WORKFLOW_ID_PREFIX', '', 'WORKFLOW_ID_PREFIX must not be empty'),
        ('MAX_BULK_WORKFLOWS', 0, 'MAX_BULK_WORKFLOWS must be at least 1'),
    ])
    def test_invalid_settings_reported(self, attribute, value, issue):
        config = type('BrokenConfig', (TestingConfig,), {attribute: value})
        assert validate_configuration(config) == [issue]

    def test_create_settings_raises_on_issues(self, monkeypatch):
        monkeypatch.setattr(TestingConfig, 'MAX_BULK_WORKFLOWS', 0)

        with pytest.raises(ConfigurationError) as exc_info:
            create_workflow_settings('testing')
        assert exc_info.value.issues == ['MAX_BULK_WORKFLOWS must be at least 1']

    def test_base_config_is_shared_parent(self):
        for config in (DevelopmentConfig, TestingConfig, ProductionConfig):
            assert issubclass(config, BaseConfig)


# ============================================================================
# STRUCTURED LOGGING
# ============================================================================

class TestStructuredLogging:

    def test_json_output(self, restore_logging, capsys):
        setup_structured_logging(log_level='INFO', log_format='json')
        get_logger('tests.logging').info("Workflow created", workflow_id='WF-1')

        lines = [line for line in capsys.readouterr().out.splitlines() if line.strip()]
        events = [json.loads(line) for line in lines]
        created = [event for event in events if event['event'] == 'Workflow created']

        assert created[0]['workflow_id'] == 'WF-1'
        assert created[0]['level'] == 'info'
        assert created[0]['logger'] == 'tests.logging'
        assert any(event['event'] == 'Structured logging initialized' for event in events)

    def test_level_filtering(self, restore_logging, capsys):
        setup_structured_logging(log_level='WARNING', log_format='json')
        get_logger('tests.logging').info("Hidden event")

        assert 'Hidden event' not in capsys.readouterr().out

    def test_console_output(self, restore_logging, capsys):
        setup_structured_logging(log_level='DEBUG', log_format='console')
        get_logger('tests.logging').debug("Console event", workflow_id='WF-2')

        output = capsys.readouterr().out
        assert 'Console event' in output
        assert 'WF-2' in output
        logger.info("Logging configuration verified")
