"""Monitoring package: structured logging setup."""

from .logging import LoggingConfig, get_logger, setup_structured_logging

__all__ = ['LoggingConfig', 'get_logger', 'setup_structured_logging']
