"""
Validation Engine.

Resolves rule identifiers through a :class:`~src.validation.rules.RuleRegistry`
and applies them to single values, whole records and cross-field invariants.
Results are returned, never raised: the only exception that escapes the engine
is ``UnknownRuleError``, which signals a broken schema rather than bad input.
Use :meth:`ValidationEngine.check_schema` to surface it when a schema is loaded.

Within a field, rules run in schema order and the first failure wins. Fields
are independent of each other unless ``abort_early`` is set.
"""

from typing import (
    Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional,
    Sequence, Union
)

import structlog

from src.utils.exceptions import format_error_messages
from src.validation.results import (
    BatchItemResult, BatchValidationResult, CrossFieldError, CrossFieldResult,
    CrossFieldRule, FieldError, FieldResult, Schema, ValidationResult
)
from src.validation.rules import Rule, RuleRegistry, default_registry

logger = structlog.get_logger("validation.engine")

UNKNOWN_FIELD_RULE = 'unknown'
UNKNOWN_FIELD_MESSAGE = 'Unknown field'
GENERAL_ERROR_KEY = '_general'
ASYNC_RULE = 'async'

_HTML_ESCAPES = str.maketrans({
    '&': '&amp;',
    '<': '&lt;',
    '>': '&gt;',
    '"': '&quot;',
    "'": '&#x27;',
    '/': '&#x2F;',
})

RuleSpec = Union[str, Rule]
AsyncFieldCheck = Callable[[Any, Mapping[str, Any]], Awaitable[Optional[str]]]


def escape_html(text: str) -> str:
    """Escape ``& < > " ' /``. Not idempotent: ``&amp;`` becomes ``&amp;amp;``."""
    return text.translate(_HTML_ESCAPES)


class ValidationEngine:
    """
    Schema-driven validator.

    Args:
        registry: Rule registry used to resolve identifiers; the process-wide
            default registry when omitted
        allow_unknown: Default for the ``allow_unknown`` option of :meth:`validate`
    """

    def __init__(self, registry: Optional[RuleRegistry] = None, allow_unknown: bool = True):
        self.registry = registry or default_registry
        self.allow_unknown = allow_unknown

    # ------------------------------------------------------------------
    # Rule resolution
    # ------------------------------------------------------------------

    def _resolve(self, rule: RuleSpec) -> Rule:
        if isinstance(rule, Rule):
            return rule
        return self.registry.resolve(rule)

    @staticmethod
    def _rule_label(spec: RuleSpec, rule: Rule) -> str:
        if isinstance(spec, str):
            return spec
        return rule.name or 'custom'

    def check_schema(self, schema: Schema) -> Dict[str, List[Rule]]:
        """
        Resolve every rule in ``schema``.

        Raises:
            UnknownRuleError: on the first identifier the registry cannot build
        """
        return {
            field: [self._resolve(spec) for spec in specs]
            for field, specs in schema.items()
        }

    # ------------------------------------------------------------------
    # Single values
    # ------------------------------------------------------------------

    def _run_rule(self, value: Any, spec: RuleSpec, field: str) -> Optional[FieldError]:
        rule = self._resolve(spec)
        label = self._rule_label(spec, rule)
        try:
            passed = bool(rule.test(value))
        except Exception as exc:
            logger.warning(
                "Validation rule raised; treating as failure",
                field=field,
                rule=label,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            passed = False
        if passed:
            return None
        return FieldError(field=field, rule=label, message=rule.message)

    def validate_rule(self, value: Any, rule: RuleSpec, field: str = 'field') -> FieldResult:
        error = self._run_rule(value, rule, field)
        return FieldResult(field=field, errors=[error] if error else [])

    def validate_field(self, value: Any, rules: Sequence[RuleSpec], field: str = 'field') -> FieldResult:
        """Evaluate ``rules`` in order; stop at the first failure."""
        for spec in rules:
            error = self._run_rule(value, spec, field)
            if error is not None:
                return FieldResult(field=field, errors=[error])
        return FieldResult(field=field)

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def validate(
        self,
        data: Mapping[str, Any],
        schema: Schema,
        abort_early: bool = False,
        allow_unknown: Optional[bool] = None,
        strip_unknown: bool = False
    ) -> ValidationResult:
        """
        Validate ``data`` against ``schema``.

        Args:
            data: Record to validate; missing fields are validated as None
            schema: Field name -> ordered rule identifiers
            abort_early: Stop after the first field that fails
            allow_unknown: When False, report keys absent from the schema
            strip_unknown: Keep only schema-declared keys in ``result.data``

        Returns:
            ValidationResult whose ``data`` is a shallow copy of the input
        """
        if allow_unknown is None:
            allow_unknown = self.allow_unknown

        data = data or {}
        result = ValidationResult(data=dict(data))
        aborted = False

        for field, rules in schema.items():
            field_result = self.validate_field(data.get(field), rules, field)
            if field_result.is_valid:
                result.valid_fields.append(field)
                continue
            result.errors[field] = list(field_result.errors)
            if abort_early:
                aborted = True
                break

        if not allow_unknown and not aborted:
            for field in data:
                if field not in schema:
                    result.add_error(
                        field,
                        FieldError(field=field, rule=UNKNOWN_FIELD_RULE, message=UNKNOWN_FIELD_MESSAGE)
                    )

        if strip_unknown:
            result.data = self.strip_unknown_fields(data, schema)

        logger.debug(
            "Validation completed",
            field_count=len(schema),
            valid_field_count=len(result.valid_fields),
            error_field_count=len(result.errors),
        )
        return result

    def validate_cross_field(
        self,
        data: Mapping[str, Any],
        rules: Iterable[CrossFieldRule]
    ) -> CrossFieldResult:
        """Evaluate every invariant and report every failure."""
        result = CrossFieldResult()
        for rule in rules:
            try:
                passed = bool(rule.test(data))
            except Exception as exc:
                logger.warning(
                    "Cross-field rule raised; treating as failure",
                    fields=list(rule.fields),
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                passed = False
            if not passed:
                result.errors.append(CrossFieldError(fields=tuple(rule.fields), message=rule.message))
        return result

    async def validate_async(
        self,
        data: Mapping[str, Any],
        schema: Schema,
        async_validators: Optional[Mapping[str, AsyncFieldCheck]] = None,
        **options
    ) -> ValidationResult:
        """
        Synchronous validation followed by async per-field checks.

        Each check receives ``(value, data)`` and returns an error message or
        None. Checks run in order, only for fields that passed their
        synchronous rules. A check that raises is reported under ``_general``.
        """
        result = self.validate(data, schema, **options)

        for field, check in (async_validators or {}).items():
            if field in result.errors:
                continue
            try:
                message = await check((data or {}).get(field), data)
            except Exception as exc:
                logger.warning(
                    "Async validation check failed",
                    field=field,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                result.add_error(
                    GENERAL_ERROR_KEY,
                    FieldError(field=GENERAL_ERROR_KEY, rule=ASYNC_RULE, message=f"Validation error: {exc}")
                )
                continue
            if message:
                result.add_error(field, FieldError(field=field, rule=ASYNC_RULE, message=message))
                if field in result.valid_fields:
                    result.valid_fields.remove(field)

        return result

    def validate_batch(
        self,
        items: Iterable[Mapping[str, Any]],
        schema: Schema,
        **options
    ) -> BatchValidationResult:
        batch = BatchValidationResult()
        for index, item in enumerate(items):
            batch.results.append(BatchItemResult(index=index, result=self.validate(item, schema, **options)))

        logger.info(
            "Batch validation completed",
            total_items=len(batch.results),
            valid_count=batch.valid_count,
            invalid_count=batch.invalid_count,
        )
        return batch

    def create_validator(self, schema: Schema, **options) -> Callable[[Mapping[str, Any]], ValidationResult]:
        """Bind ``schema`` and options into a one-argument validator."""
        self.check_schema(schema)

        def validator(data: Mapping[str, Any]) -> ValidationResult:
            return self.validate(data, schema, **options)

        return validator

    # ------------------------------------------------------------------
    # Data transformation
    # ------------------------------------------------------------------

    @staticmethod
    def strip_unknown_fields(data: Mapping[str, Any], schema: Schema) -> Dict[str, Any]:
        return {field: value for field, value in (data or {}).items() if field in schema}

    @staticmethod
    def _transform_strings(
        data: Mapping[str, Any],
        fields: Optional[Iterable[str]],
        transform: Callable[[str], str]
    ) -> Dict[str, Any]:
        output = dict(data or {})
        targets = output.keys() if fields is None else [field for field in fields if field in output]
        for field in list(targets):
            if isinstance(output[field], str):
                output[field] = transform(output[field])
        return output

    def sanitize(self, data: Mapping[str, Any], fields: Optional[Iterable[str]] = None) -> Dict[str, Any]:
        """
        HTML-escape string values (all of them, or only ``fields``).

        Call exactly once, after validation: sanitizing twice double-escapes.
        """
        return self._transform_strings(data, fields, escape_html)

    def trim(self, data: Mapping[str, Any], fields: Optional[Iterable[str]] = None) -> Dict[str, Any]:
        """Strip surrounding whitespace from string values. Idempotent."""
        return self._transform_strings(data, fields, str.strip)

    def validate_and_sanitize(
        self,
        data: Mapping[str, Any],
        schema: Schema,
        sanitize_fields: Optional[Iterable[str]] = None,
        **options
    ) -> ValidationResult:
        """Trim, validate, and on success replace ``result.data`` with the sanitized record."""
        trimmed = self.trim(data)
        result = self.validate(trimmed, schema, **options)
        if result.is_valid:
            result.data = self.sanitize(result.data, sanitize_fields)
        return result

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    @staticmethod
    def format_errors(errors: Mapping[str, Sequence[Any]]) -> List[str]:
        return format_error_messages(errors)

    @staticmethod
    def first_error(errors: Mapping[str, Sequence[Any]]) -> Optional[str]:
        for field_errors in errors.values():
            for error in field_errors:
                return getattr(error, 'message', error)
        return None


default_engine = ValidationEngine()


__all__ = [
    'ValidationEngine',
    'default_engine',
    'escape_html',
    'UNKNOWN_FIELD_RULE',
    'UNKNOWN_FIELD_MESSAGE',
    'GENERAL_ERROR_KEY',
]
