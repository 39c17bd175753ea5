"""
Workflow Core Configuration Classes

Environment-specific settings (Development, Testing, Production) for the
validation engine and the workflow lifecycle manager. Values are read from the
process environment, optionally seeded from a ``.env`` file via python-dotenv.

Key settings:
- REMINDER_INTERVALS_HOURS: ascending escalation schedule between reminders
- OVERDUE_THRESHOLD_DAYS: a workflow is overdue once fewer days than this remain
- FIRST_REMINDER_WINDOW_DAYS: first reminder becomes due this many days before the target date
- WORKFLOW_ID_PREFIX: prefix of generated workflow identifiers
- MAX_BULK_WORKFLOWS: upper bound on ids accepted by one bulk operation
- REMINDER_MESSAGE_MAX_LENGTH: upper bound on custom reminder text
"""

import os
from typing import List, Optional, Tuple, Type

import structlog
from dotenv import load_dotenv

from src.utils.exceptions import ConfigurationError

load_dotenv()

logger = structlog.get_logger("config.settings")


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == 'true'


def _env_int(name: str, default: str) -> int:
    raw = os.getenv(name, default)
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer", issues=[f"{name}={raw!r}"])


def _env_intervals(name: str, default: str) -> Tuple[int, ...]:
    raw = os.getenv(name, default)
    try:
        return tuple(int(part) for part in raw.split(',') if part.strip())
    except ValueError:
        raise ConfigurationError(
            f"{name} must be a comma-separated list of hours",
            issues=[f"{name}={raw!r}"]
        )


class BaseConfig:
    """Defaults shared by every environment."""

    ENVIRONMENT = 'base'
    DEBUG = False
    TESTING = False

    # Logging
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()
    LOG_FORMAT = os.getenv('LOG_FORMAT', 'json')

    # Reminder escalation
    REMINDER_INTERVALS_HOURS = _env_intervals('REMINDER_INTERVALS_HOURS', '24,48,168')
    OVERDUE_THRESHOLD_DAYS = _env_int('OVERDUE_THRESHOLD_DAYS', '0')
    FIRST_REMINDER_WINDOW_DAYS = _env_int('FIRST_REMINDER_WINDOW_DAYS', '7')

    # Identifiers
    WORKFLOW_ID_PREFIX = os.getenv('WORKFLOW_ID_PREFIX', 'WF-REQ')

    # Input limits
    MAX_BULK_WORKFLOWS = _env_int('MAX_BULK_WORKFLOWS', '100')
    REMINDER_MESSAGE_MAX_LENGTH = _env_int('REMINDER_MESSAGE_MAX_LENGTH', '500')

    # Validation defaults
    DEFAULT_ALLOW_UNKNOWN = _env_bool('DEFAULT_ALLOW_UNKNOWN', 'true')


class DevelopmentConfig(BaseConfig):
    ENVIRONMENT = 'development'
    DEBUG = True
    LOG_FORMAT = os.getenv('LOG_FORMAT', 'console')
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'DEBUG').upper()


class TestingConfig(BaseConfig):
    """Fixed values so tests do not depend on the environment."""

    ENVIRONMENT = 'testing'
    DEBUG = True
    TESTING = True
    LOG_FORMAT = 'console'
    LOG_LEVEL = 'WARNING'
    REMINDER_INTERVALS_HOURS = (24, 48, 168)
    OVERDUE_THRESHOLD_DAYS = 0
    FIRST_REMINDER_WINDOW_DAYS = 7
    WORKFLOW_ID_PREFIX = 'WF-REQ'
    MAX_BULK_WORKFLOWS = 100
    REMINDER_MESSAGE_MAX_LENGTH = 500
    DEFAULT_ALLOW_UNKNOWN = True


class ProductionConfig(BaseConfig):
    ENVIRONMENT = 'production'
    LOG_FORMAT = os.getenv('LOG_FORMAT', 'json')


config_map = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
}


def get_config(environment: Optional[str] = None) -> Type[BaseConfig]:
    """
    Configuration class for ``environment`` (defaults to ``APP_ENV``).

    Unknown names fall back to production settings.
    """
    environment = (environment or os.getenv('APP_ENV', 'production')).lower()
    config_class = config_map.get(environment)
    if config_class is None:
        logger.warning("Unknown environment, using production settings", environment=environment)
        config_class = ProductionConfig
    return config_class


def validate_configuration(config: Type[BaseConfig]) -> List[str]:
    """Return a list of human-readable problems; empty when the settings are usable."""
    issues = []

    intervals = list(config.REMINDER_INTERVALS_HOURS)
    if not intervals:
        issues.append("REMINDER_INTERVALS_HOURS must contain at least one interval")
    elif any(hours <= 0 for hours in intervals):
        issues.append("REMINDER_INTERVALS_HOURS must be positive")
    elif intervals != sorted(intervals):
        issues.append("REMINDER_INTERVALS_HOURS must be in ascending order")

    if config.OVERDUE_THRESHOLD_DAYS < 0:
        issues.append("OVERDUE_THRESHOLD_DAYS must not be negative")
    if config.FIRST_REMINDER_WINDOW_DAYS < 0:
        issues.append("FIRST_REMINDER_WINDOW_DAYS must not be negative")
    if not config.WORKFLOW_ID_PREFIX:
        issues.append("WORKFLOW_ID_PREFIX must not be empty")
    if config.MAX_BULK_WORKFLOWS < 1:
        issues.append("MAX_BULK_WORKFLOWS must be at least 1")
    if config.REMINDER_MESSAGE_MAX_LENGTH < 1:
        issues.append("REMINDER_MESSAGE_MAX_LENGTH must be at least 1")

    logger.debug(
        "Configuration validation completed",
        config_class=getattr(config, '__name__', type(config).__name__),
        issues_found=len(issues),
    )
    return issues


def create_workflow_settings(environment: Optional[str] = None) -> Type[BaseConfig]:
    """
    Resolve and validate settings for ``environment``.

    Raises:
        ConfigurationError: if validation reports any issue
    """
    config_class = get_config(environment)
    issues = validate_configuration(config_class)
    if issues:
        raise ConfigurationError(
            f"Configuration validation failed: {'; '.join(issues)}",
            issues=issues
        )
    return config_class


__all__ = [
    'BaseConfig',
    'DevelopmentConfig',
    'TestingConfig',
    'ProductionConfig',
    'config_map',
    'get_config',
    'validate_configuration',
    'create_workflow_settings',
]
