"""
Validation package.

- rules: the rule registry (built-in rules, parameterized factories, custom rules)
- engine: field, record and cross-field validation plus trim/sanitize
- results: result and error types returned by the engine
"""

from .engine import ValidationEngine, default_engine, escape_html
from .results import (
    BatchValidationResult,
    CrossFieldError,
    CrossFieldResult,
    CrossFieldRule,
    FieldError,
    FieldResult,
    ValidationResult,
)
from .rules import (
    BuiltinRule,
    Rule,
    RuleFactory,
    RuleRegistry,
    custom,
    default_registry,
    pattern,
    register,
    resolve,
)

__all__ = [
    'ValidationEngine',
    'default_engine',
    'escape_html',
    'BatchValidationResult',
    'CrossFieldError',
    'CrossFieldResult',
    'CrossFieldRule',
    'FieldError',
    'FieldResult',
    'ValidationResult',
    'BuiltinRule',
    'Rule',
    'RuleFactory',
    'RuleRegistry',
    'custom',
    'default_registry',
    'pattern',
    'register',
    'resolve',
]
