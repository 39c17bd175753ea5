"""
Structured Logging Implementation using structlog

Configures structlog on top of the standard library logging module so every
component of the workflow core emits keyword-rich events, rendered as JSON for
log aggregation or as readable console lines during development.

Usage:
    from src.monitoring.logging import setup_structured_logging, get_logger

    setup_structured_logging()
    logger = get_logger("workflow.service")
    logger.info("Workflow created", workflow_id=workflow_id)
"""

import logging
import logging.config
import os
from typing import Optional

import structlog


class LoggingConfig:
    """Logging settings read from the environment."""

    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()
    LOG_FORMAT = os.getenv('LOG_FORMAT', 'json')  # json, console
    COLORED_CONSOLE_OUTPUT = os.getenv('COLORED_CONSOLE_OUTPUT', 'false').lower() == 'true'
    APPLICATION_NAME = os.getenv('APPLICATION_NAME', 'workflow-core')
    APPLICATION_VERSION = os.getenv('APPLICATION_VERSION', '1.0.0')


def _build_processors(log_format: str) -> list:
    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="ISO"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if log_format == 'console':
        processors.append(structlog.dev.ConsoleRenderer(colors=LoggingConfig.COLORED_CONSOLE_OUTPUT))
    else:
        # Anything other than console renders JSON.
        processors.append(structlog.processors.JSONRenderer())
    return processors


def setup_structured_logging(
    log_level: Optional[str] = None,
    log_format: Optional[str] = None
) -> structlog.stdlib.BoundLogger:
    """
    Configure structlog and the standard library root logger.

    Args:
        log_level: Overrides ``LOG_LEVEL``
        log_format: ``json`` or ``console``; overrides ``LOG_FORMAT``

    Returns:
        Logger bound to the application name
    """
    log_level = (log_level or LoggingConfig.LOG_LEVEL).upper()
    log_format = log_format or LoggingConfig.LOG_FORMAT

    structlog.configure(
        processors=_build_processors(log_format),
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging.config.dictConfig({
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'plain': {'format': '%(message)s'},
        },
        'handlers': {
            'console': {
                'class': 'logging.StreamHandler',
                'formatter': 'plain',
                'stream': 'ext://sys.stdout',
            },
        },
        'loggers': {
            '': {
                'handlers': ['console'],
                'level': log_level,
                'propagate': False,
            },
        },
    })

    logger = structlog.get_logger(LoggingConfig.APPLICATION_NAME)
    logger.info(
        "Structured logging initialized",
        log_level=log_level,
        log_format=log_format,
        version=LoggingConfig.APPLICATION_VERSION,
    )
    return logger


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


__all__ = ['LoggingConfig', 'setup_structured_logging', 'get_logger']
