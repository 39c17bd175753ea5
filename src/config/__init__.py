"""Configuration package."""

from .settings import (
    BaseConfig,
    DevelopmentConfig,
    ProductionConfig,
    TestingConfig,
    create_workflow_settings,
    get_config,
    validate_configuration,
)

__all__ = [
    'BaseConfig',
    'DevelopmentConfig',
    'ProductionConfig',
    'TestingConfig',
    'create_workflow_settings',
    'get_config',
    'validate_configuration',
]
