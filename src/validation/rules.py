"""
Rule Registry.

A rule is a predicate plus the message reported when it fails. Built-in rules
form a closed set (:class:`BuiltinRule` for zero-argument rules,
:class:`RuleFactory` for parameterized ones); applications extend the set at
runtime through :meth:`RuleRegistry.register`, which keeps custom rules in a
separate map and reports whether a name was overwritten.

Rule identifiers are strings so schemas stay plain data: ``"email"``,
``"minLength:2"``, ``"enum:Hourly,Salary"``. The identifier is split on the
first ``:`` only; multi-valued parameters are then split on ``,``.

Every rule except ``required`` passes for empty values, so presence and format
compose: ``["required", "email"]`` demands an address, ``["email"]`` only checks
the format when something was entered.
"""

import math
import re
from dataclasses import dataclass
from enum import Enum
from numbers import Number
from typing import Any, Callable, Dict, Iterable, List, Optional, Pattern

import structlog
from marshmallow import ValidationError as MarshmallowValidationError
from marshmallow import validate as marshmallow_validate

from src.utils.datetime_utils import now_local, parse_date_value, start_of_day
from src.utils.exceptions import UnknownRuleError

logger = structlog.get_logger("validation.rules")


@dataclass(frozen=True)
class Rule:
    """Predicate and failure message. ``name`` is informational."""

    test: Callable[[Any], bool]
    message: str
    name: Optional[str] = None


class BuiltinRule(str, Enum):
    """Zero-argument built-in rules, keyed by their identifier."""

    REQUIRED = 'required'
    EMAIL = 'email'
    DATE = 'date'
    FUTURE_DATE = 'futureDate'
    PAST_DATE = 'pastDate'
    PHONE = 'phone'
    URL = 'url'
    NUMERIC = 'numeric'
    INTEGER = 'integer'
    POSITIVE = 'positive'
    ALPHANUMERIC = 'alphanumeric'
    ALPHA = 'alpha'
    ZIP_CODE = 'zipCode'
    SSN = 'ssn'


class RuleFactory(str, Enum):
    """Parameterized built-in rules (``name:param``)."""

    MIN_LENGTH = 'minLength'
    MAX_LENGTH = 'maxLength'
    MIN = 'min'
    MAX = 'max'
    ENUM = 'enum'
    PATTERN = 'pattern'


# ============================================================================
# VALUE HELPERS
# ============================================================================

EMAIL_PATTERN = re.compile(r'[^\s@]+@[^\s@]+\.[^\s@]{2,}')
PHONE_SEPARATORS = re.compile(r'[\s\-().]')
PHONE_PATTERN = re.compile(r'\+?1?\d{10,15}', re.ASCII)
ALPHANUMERIC_PATTERN = re.compile(r'[a-zA-Z0-9]+')
ALPHA_PATTERN = re.compile(r'[a-zA-Z\s]+')
ZIP_CODE_PATTERN = re.compile(r'\d{5}(-\d{4})?|[A-Z]\d[A-Z]\s?\d[A-Z]\d', re.IGNORECASE | re.ASCII)
SSN_PATTERN = re.compile(r'\d{3}-\d{2}-\d{4}', re.ASCII)

_DECIMAL_NUMBER = re.compile(r'[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?', re.ASCII)
_PREFIXED_INTEGER = re.compile(r'0([xX][0-9a-fA-F]+|[bB][01]+|[oO][0-7]+)')
_INFINITY = {'Infinity': math.inf, '+Infinity': math.inf, '-Infinity': -math.inf}

_url_validator = marshmallow_validate.URL(relative=False, require_tld=False)


def is_empty(value: Any) -> bool:
    """Values that count as "nothing entered": None, '', False, 0 and NaN."""
    if value is None or value is False:
        return True
    if isinstance(value, str):
        return value == ''
    if isinstance(value, Number) and not isinstance(value, bool):
        return value == 0 or (isinstance(value, float) and math.isnan(value))
    return False


def _is_zero(value: Any) -> bool:
    return (
        isinstance(value, Number)
        and not isinstance(value, bool)
        and value == 0
    )


def _skips_numeric_check(value: Any) -> bool:
    """Numeric rules still evaluate an explicit zero."""
    return is_empty(value) and not _is_zero(value)


def to_number(value: Any) -> Optional[float]:
    """
    Convert ``value`` to a float, or None when it is not numeric.

    Strings are trimmed first; a blank string converts to 0. Decimal, signed
    exponent, ``Infinity`` and 0x/0b/0o prefixed forms are accepted.
    """
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, Number):
        try:
            number = float(value)
        except (TypeError, ValueError):
            return None
        return None if math.isnan(number) else number
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return 0.0
    if text in _INFINITY:
        return _INFINITY[text]
    if _PREFIXED_INTEGER.fullmatch(text):
        return float(int(text, 0))
    if _DECIMAL_NUMBER.fullmatch(text):
        return float(text)
    return None


def format_number(number: float) -> str:
    """Render 18.0 as ``18`` and 2.5 as ``2.5`` in messages."""
    if math.isfinite(number) and number == int(number):
        return str(int(number))
    return str(number)


def _plural(count: int, word: str) -> str:
    return word if count == 1 else f"{word}s"


# ============================================================================
# BUILT-IN PREDICATES
# ============================================================================

def _required(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ''
    if isinstance(value, (list, tuple, set, frozenset)):
        return len(value) > 0
    return True


def _email(value: Any) -> bool:
    return is_empty(value) or EMAIL_PATTERN.fullmatch(str(value)) is not None


def _date(value: Any) -> bool:
    return is_empty(value) or parse_date_value(value) is not None


def _future_date(value: Any) -> bool:
    if is_empty(value):
        return True
    parsed = parse_date_value(value)
    return parsed is not None and parsed >= start_of_day(now_local())


def _past_date(value: Any) -> bool:
    if is_empty(value):
        return True
    parsed = parse_date_value(value)
    return parsed is not None and parsed < start_of_day(now_local())


def _phone(value: Any) -> bool:
    if is_empty(value):
        return True
    cleaned = PHONE_SEPARATORS.sub('', str(value))
    return PHONE_PATTERN.fullmatch(cleaned) is not None


def _url(value: Any) -> bool:
    if is_empty(value):
        return True
    try:
        _url_validator(str(value))
    except MarshmallowValidationError:
        return False
    return True


def _numeric(value: Any) -> bool:
    return _skips_numeric_check(value) or to_number(value) is not None


def _integer(value: Any) -> bool:
    if _skips_numeric_check(value):
        return True
    number = to_number(value)
    return number is not None and math.isfinite(number) and number == math.floor(number)


def _positive(value: Any) -> bool:
    if _skips_numeric_check(value):
        return True
    number = to_number(value)
    return number is not None and number > 0


def _matches(pattern: Pattern) -> Callable[[Any], bool]:
    def test(value: Any) -> bool:
        return is_empty(value) or pattern.fullmatch(str(value)) is not None
    return test


BUILTIN_RULES: Dict[BuiltinRule, Rule] = {
    BuiltinRule.REQUIRED: Rule(_required, 'This field is required', 'required'),
    BuiltinRule.EMAIL: Rule(_email, 'Please enter a valid email address', 'email'),
    BuiltinRule.DATE: Rule(_date, 'Please enter a valid date', 'date'),
    BuiltinRule.FUTURE_DATE: Rule(_future_date, 'Date must be today or in the future', 'futureDate'),
    BuiltinRule.PAST_DATE: Rule(_past_date, 'Date must be in the past', 'pastDate'),
    BuiltinRule.PHONE: Rule(_phone, 'Please enter a valid phone number (10-15 digits)', 'phone'),
    BuiltinRule.URL: Rule(_url, 'Please enter a valid URL (e.g., https://example.com)', 'url'),
    BuiltinRule.NUMERIC: Rule(_numeric, 'Please enter a valid number', 'numeric'),
    BuiltinRule.INTEGER: Rule(_integer, 'Please enter a whole number', 'integer'),
    BuiltinRule.POSITIVE: Rule(_positive, 'Please enter a positive number', 'positive'),
    BuiltinRule.ALPHANUMERIC: Rule(
        _matches(ALPHANUMERIC_PATTERN), 'Only letters and numbers are allowed', 'alphanumeric'
    ),
    BuiltinRule.ALPHA: Rule(_matches(ALPHA_PATTERN), 'Only letters are allowed', 'alpha'),
    BuiltinRule.ZIP_CODE: Rule(
        _matches(ZIP_CODE_PATTERN), 'Please enter a valid ZIP/postal code', 'zipCode'
    ),
    BuiltinRule.SSN: Rule(_matches(SSN_PATTERN), 'Please enter SSN in format XXX-XX-XXXX', 'ssn'),
}

_missing_builtins = set(BuiltinRule) - set(BUILTIN_RULES)
if _missing_builtins:
    raise RuntimeError(f"Built-in rules without an implementation: {sorted(_missing_builtins)}")


# ============================================================================
# PARAMETERIZED FACTORIES
# ============================================================================

def min_length(length: int) -> Rule:
    return Rule(
        lambda value: is_empty(value) or len(str(value)) >= length,
        f"Must be at least {length} {_plural(length, 'character')}",
        f"minLength:{length}",
    )


def max_length(length: int) -> Rule:
    return Rule(
        lambda value: is_empty(value) or len(str(value)) <= length,
        f"Must be no more than {length} {_plural(length, 'character')}",
        f"maxLength:{length}",
    )


def min_value(bound: float) -> Rule:
    def test(value: Any) -> bool:
        if _skips_numeric_check(value):
            return True
        number = to_number(value)
        return number is not None and number >= bound
    return Rule(test, f"Must be at least {format_number(bound)}", f"min:{format_number(bound)}")


def max_value(bound: float) -> Rule:
    def test(value: Any) -> bool:
        if _skips_numeric_check(value):
            return True
        number = to_number(value)
        return number is not None and number <= bound
    return Rule(test, f"Must be no more than {format_number(bound)}", f"max:{format_number(bound)}")


def one_of(values: Iterable[Any]) -> Rule:
    allowed = list(values)
    return Rule(
        lambda value: is_empty(value) or value in allowed,
        f"Must be one of: {', '.join(str(item) for item in allowed)}",
        f"enum:{','.join(str(item) for item in allowed)}",
    )


def pattern(regex: Any, message: str = 'Invalid format') -> Rule:
    """Rule matching the whole value against ``regex`` (a string or compiled pattern)."""
    compiled = re.compile(regex) if isinstance(regex, str) else regex
    return Rule(_matches(compiled), message, f"pattern:{compiled.pattern}")


def custom(test: Callable[[Any], bool], message: str) -> Rule:
    return Rule(test, message, 'custom')


def _parse_int(rule_id: str, param: str) -> int:
    try:
        return int(param.strip())
    except ValueError:
        raise UnknownRuleError(rule_id, f"expected an integer parameter, got '{param}'")


def _parse_float(rule_id: str, param: str) -> float:
    number = to_number(param) if param.strip() else None
    if number is None:
        raise UnknownRuleError(rule_id, f"expected a numeric parameter, got '{param}'")
    return number


def _build_from_factory(factory: RuleFactory, rule_id: str, param: str) -> Rule:
    if factory is RuleFactory.MIN_LENGTH:
        return min_length(_parse_int(rule_id, param))
    if factory is RuleFactory.MAX_LENGTH:
        return max_length(_parse_int(rule_id, param))
    if factory is RuleFactory.MIN:
        return min_value(_parse_float(rule_id, param))
    if factory is RuleFactory.MAX:
        return max_value(_parse_float(rule_id, param))
    if factory is RuleFactory.ENUM:
        values = [item.strip() for item in param.split(',')]
        if not any(values):
            raise UnknownRuleError(rule_id, "expected at least one allowed value")
        return one_of(values)
    if factory is RuleFactory.PATTERN:
        try:
            return pattern(param)
        except re.error as exc:
            raise UnknownRuleError(rule_id, f"invalid regular expression: {exc}")
    raise UnknownRuleError(rule_id, f"no builder for factory '{factory.value}'")


# ============================================================================
# REGISTRY
# ============================================================================

_BUILTIN_BY_NAME = {rule.value: rule for rule in BuiltinRule}
_FACTORY_BY_NAME = {factory.value: factory for factory in RuleFactory}


class RuleRegistry:
    """
    Resolves rule identifiers to rules.

    Lookup order: custom rules registered under the exact identifier, then
    built-in zero-argument rules, then parameterized factories.
    """

    def __init__(self):
        self._custom: Dict[str, Rule] = {}

    def register(self, name: str, rule: Rule) -> bool:
        """
        Install ``rule`` under ``name``.

        Returns:
            True when an existing rule (built-in or custom) was shadowed
        """
        if not name:
            raise ValueError("Rule name must be a non-empty string")
        overwrote = self.is_known(name)
        self._custom[name] = rule

        if overwrote:
            logger.warning("Validation rule overwritten", rule_name=name)
        else:
            logger.debug("Validation rule registered", rule_name=name)
        return overwrote

    def unregister(self, name: str) -> bool:
        """Remove a custom rule; built-ins become visible again. Returns whether one was removed."""
        removed = self._custom.pop(name, None) is not None
        if removed:
            logger.debug("Validation rule unregistered", rule_name=name)
        return removed

    def is_known(self, name: str) -> bool:
        return name in self._custom or name in _BUILTIN_BY_NAME or name in _FACTORY_BY_NAME

    def rule_names(self) -> List[str]:
        names = list(_BUILTIN_BY_NAME) + list(_FACTORY_BY_NAME)
        names.extend(name for name in self._custom if name not in names)
        return names

    def resolve(self, rule_id: str) -> Rule:
        """
        Resolve ``rule_id`` to a rule.

        Raises:
            UnknownRuleError: if the base name is unknown or a parameter fails to parse
        """
        if not isinstance(rule_id, str) or not rule_id:
            raise UnknownRuleError(str(rule_id), "rule identifier must be a non-empty string")

        if rule_id in self._custom:
            return self._custom[rule_id]
        if rule_id in _BUILTIN_BY_NAME:
            return BUILTIN_RULES[_BUILTIN_BY_NAME[rule_id]]

        name, separator, param = rule_id.partition(':')

        if name in _FACTORY_BY_NAME:
            if not separator or not param.strip():
                raise UnknownRuleError(rule_id, f"rule '{name}' requires a parameter")
            return _build_from_factory(_FACTORY_BY_NAME[name], rule_id, param)

        # A parameter on a zero-argument rule is ignored.
        if name in self._custom:
            return self._custom[name]
        if name in _BUILTIN_BY_NAME:
            return BUILTIN_RULES[_BUILTIN_BY_NAME[name]]

        raise UnknownRuleError(rule_id)


default_registry = RuleRegistry()


def resolve(rule_id: str) -> Rule:
    return default_registry.resolve(rule_id)


def register(name: str, rule: Rule) -> bool:
    return default_registry.register(name, rule)


__all__ = [
    'Rule',
    'BuiltinRule',
    'RuleFactory',
    'RuleRegistry',
    'BUILTIN_RULES',
    'default_registry',
    'resolve',
    'register',
    'min_length',
    'max_length',
    'min_value',
    'max_value',
    'one_of',
    'pattern',
    'custom',
    'is_empty',
    'to_number',
    'format_number',
]
