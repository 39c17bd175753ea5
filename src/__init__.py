"""
Workflow Core Package

Schema-driven validation and workflow lifecycle management for employee
onboarding requests.

Package Structure:
- validation: rule registry, validation engine and result types
- workflow: domain models, record schemas, lifecycle rules, ports and service
- config: environment-specific settings loaded with python-dotenv
- monitoring: structlog configuration
- utils: error taxonomy and date helpers
"""

__version__ = "1.0.0"
__title__ = "Workflow Core"

PACKAGE_NAME = "src"
APPLICATION_NAME = "workflow-core"

__all__ = ['__version__', '__title__', 'PACKAGE_NAME', 'APPLICATION_NAME']
