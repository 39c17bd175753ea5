"""
Record schemas for the workflow domain.

Schemas are plain tables (field -> ordered rule identifiers) so they can be
reviewed, serialized or swapped like configuration. :class:`WorkflowValidator`
applies them through the validation engine in three short-circuiting stages:
required fields, then optional fields, then cross-field invariants.
"""

from typing import Any, Dict, List, Mapping, Optional, Type

import structlog

from src.config.settings import BaseConfig, get_config
from src.utils.datetime_utils import add_years, now_local, parse_date_value
from src.validation.engine import ValidationEngine, default_engine
from src.validation.results import (
    CrossFieldError, CrossFieldRule, FieldError, FieldResult, ValidationResult
)

logger = structlog.get_logger("workflow.schemas")

CROSS_FIELD_KEY = '_cross_field'
DATE_RANGE_KEY = '_date_range'
BULK_FIELD = 'workflow_ids'
HIRE_DATE_MAX_YEARS = 2

WORKFLOW_STATUSES = 'Open,In Progress,Complete,Overdue'
TASK_STATUSES = 'Open,In Progress,Complete'

WORKFLOW_SCHEMA: Dict[str, List[str]] = {
    'employee': ['required', 'minLength:2', 'maxLength:100'],
    'email': ['required', 'email'],
    'position': ['required', 'minLength:2', 'maxLength:100'],
    'hire_date': ['required', 'date', 'futureDate'],
    'site_name': ['required', 'minLength:2'],
    'supervisor_name': ['required', 'minLength:2'],
    'supervisor_email': ['required', 'email'],
    'employment_type': ['required', 'enum:Hourly,Salary'],
}

OPTIONAL_WORKFLOW_SCHEMA: Dict[str, List[str]] = {
    'phone': ['phone'],
    'workflow_id': ['minLength:5'],
    'status': [f'enum:{WORKFLOW_STATUSES}'],
    'notes': ['maxLength:1000'],
}

TASK_SCHEMA: Dict[str, List[str]] = {
    'id': ['required'],
    'name': ['required', 'minLength:2'],
    'status': ['required', f'enum:{TASK_STATUSES}'],
}

TASK_UPDATE_SCHEMA: Dict[str, List[str]] = {
    'status': ['required', f'enum:{TASK_STATUSES}'],
}

UPDATE_WORKFLOW_SCHEMA: Dict[str, List[str]] = {
    'status': [f'enum:{WORKFLOW_STATUSES}'],
    'tasks_complete': ['numeric', 'min:0'],
    'tasks_total': ['numeric', 'min:0'],
    'notes': ['maxLength:1000'],
}

FILTER_SCHEMA: Dict[str, List[str]] = {
    'search': ['maxLength:100'],
    'status': [f'enum:{WORKFLOW_STATUSES}'],
    'date_from': ['date'],
    'date_to': ['date'],
}

SANITIZED_WORKFLOW_FIELDS = ('employee', 'position', 'site_name', 'supervisor_name', 'notes')


def _folded(record: Mapping[str, Any], field: str) -> str:
    return str(record.get(field) or '').strip().casefold()


def _names_differ(record: Mapping[str, Any]) -> bool:
    employee, supervisor = _folded(record, 'employee'), _folded(record, 'supervisor_name')
    return not employee or not supervisor or employee != supervisor


def _emails_differ(record: Mapping[str, Any]) -> bool:
    employee, supervisor = _folded(record, 'email'), _folded(record, 'supervisor_email')
    return not employee or not supervisor or employee != supervisor


def _hire_date_within_limit(record: Mapping[str, Any]) -> bool:
    hire_date = parse_date_value(record.get('hire_date'))
    if hire_date is None:
        return True
    return hire_date <= add_years(now_local(), HIRE_DATE_MAX_YEARS)


WORKFLOW_CROSS_FIELD_RULES = (
    CrossFieldRule(
        fields=('employee', 'supervisor_name'),
        test=_names_differ,
        message='Employee and supervisor cannot be the same person',
    ),
    CrossFieldRule(
        fields=('email', 'supervisor_email'),
        test=_emails_differ,
        message='Employee and supervisor emails must be different',
    ),
    CrossFieldRule(
        fields=('hire_date',),
        test=_hire_date_within_limit,
        message=f'Hire date cannot be more than {HIRE_DATE_MAX_YEARS} years in the future',
    ),
)


class WorkflowValidator:
    """
    Workflow-specific validation on top of a :class:`ValidationEngine`.

    Every schema table is resolved on construction, so a misspelled rule
    raises ``UnknownRuleError`` here rather than on the first request.
    """

    def __init__(
        self,
        engine: Optional[ValidationEngine] = None,
        settings: Optional[Type[BaseConfig]] = None
    ):
        self.engine = engine or default_engine
        self.settings = settings or get_config()
        for schema in (
            WORKFLOW_SCHEMA, OPTIONAL_WORKFLOW_SCHEMA, TASK_SCHEMA,
            TASK_UPDATE_SCHEMA, UPDATE_WORKFLOW_SCHEMA, FILTER_SCHEMA,
        ):
            self.engine.check_schema(schema)

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def validate_workflow(self, data: Mapping[str, Any]) -> ValidationResult:
        """Required fields, then optional fields, then cross-field invariants."""
        data = data or {}
        required = self.engine.validate(data, WORKFLOW_SCHEMA)
        if not required.is_valid:
            return required

        optional = self.engine.validate(data, OPTIONAL_WORKFLOW_SCHEMA)
        result = ValidationResult(
            errors=dict(optional.errors),
            valid_fields=required.valid_fields + optional.valid_fields,
            data=dict(data),
        )
        if not result.is_valid:
            return result

        cross_field = self.engine.validate_cross_field(data, WORKFLOW_CROSS_FIELD_RULES)
        for error in cross_field.errors:
            result.add_error(CROSS_FIELD_KEY, error)

        if not result.is_valid:
            logger.info(
                "Workflow failed cross-field validation",
                messages=[error.message for error in cross_field.errors],
            )
        return result

    def validate_workflow_update(self, data: Mapping[str, Any]) -> ValidationResult:
        return self.engine.validate(data, UPDATE_WORKFLOW_SCHEMA)

    def validate_task(self, task: Mapping[str, Any]) -> ValidationResult:
        return self.engine.validate(task, TASK_SCHEMA)

    def validate_task_update(self, data: Mapping[str, Any]) -> ValidationResult:
        return self.engine.validate(data, TASK_UPDATE_SCHEMA)

    # ------------------------------------------------------------------
    # Reminders and bulk input
    # ------------------------------------------------------------------

    def validate_reminder_email(self, email: Any) -> FieldResult:
        return self.engine.validate_field(email, ['required', 'email'], 'email')

    def validate_reminder_message(self, message: Optional[str]) -> FieldResult:
        """A missing or blank message is fine; otherwise it must fit the length limit."""
        if message is None or not str(message).strip():
            return FieldResult(field='message')
        limit = self.settings.REMINDER_MESSAGE_MAX_LENGTH
        return self.engine.validate_field(message, [f'maxLength:{limit}'], 'message')

    def validate_bulk_operation(self, workflow_ids: Any) -> ValidationResult:
        limit = self.settings.MAX_BULK_WORKFLOWS
        result = ValidationResult(data={BULK_FIELD: workflow_ids})

        if not isinstance(workflow_ids, (list, tuple)):
            result.add_error(BULK_FIELD, FieldError(BULK_FIELD, 'type', 'Workflow IDs must be a list'))
        elif not workflow_ids:
            result.add_error(
                BULK_FIELD, FieldError(BULK_FIELD, 'required', 'At least one workflow ID is required')
            )
        elif len(workflow_ids) > limit:
            result.add_error(
                BULK_FIELD,
                FieldError(BULK_FIELD, 'max', f'Cannot process more than {limit} workflows at once')
            )
        else:
            result.valid_fields.append(BULK_FIELD)
        return result

    def validate_filter_params(self, params: Mapping[str, Any]) -> ValidationResult:
        params = params or {}
        result = self.engine.validate(params, FILTER_SCHEMA, allow_unknown=True)
        if not result.is_valid:
            return result

        date_from = parse_date_value(params.get('date_from'))
        date_to = parse_date_value(params.get('date_to'))
        if date_from is not None and date_to is not None and date_from > date_to:
            result.add_error(
                DATE_RANGE_KEY,
                CrossFieldError(fields=('date_from', 'date_to'), message='Start date must be before end date')
            )
        return result

    # ------------------------------------------------------------------
    # Sanitization
    # ------------------------------------------------------------------

    def sanitize_workflow(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        return self.engine.sanitize(data, SANITIZED_WORKFLOW_FIELDS)

    def validate_and_sanitize_workflow(self, data: Mapping[str, Any]) -> ValidationResult:
        """Trim every string, validate, and sanitize free-text fields on success."""
        trimmed = self.engine.trim(data or {})
        result = self.validate_workflow(trimmed)
        if result.is_valid:
            result.data = self.sanitize_workflow(result.data)
        return result

    # ------------------------------------------------------------------
    # Quick checks and reporting
    # ------------------------------------------------------------------

    def is_valid_email(self, email: Any) -> bool:
        return self.engine.validate_field(email, ['email'], 'email').is_valid

    def is_future_date(self, value: Any) -> bool:
        return self.engine.validate_field(value, ['futureDate'], 'date').is_valid

    def is_required(self, value: Any) -> bool:
        return self.engine.validate_field(value, ['required'], 'field').is_valid

    def meets_length(self, value: Any, minimum: Optional[int] = None, maximum: Optional[int] = None) -> bool:
        rules = []
        if minimum:
            rules.append(f'minLength:{minimum}')
        if maximum:
            rules.append(f'maxLength:{maximum}')
        return self.engine.validate_field(value, rules, 'field').is_valid

    def get_error_messages(self, result: ValidationResult) -> List[str]:
        if result.is_valid:
            return []
        return self.engine.format_errors(result.errors)

    def get_first_error(self, result: ValidationResult) -> Optional[str]:
        return self.engine.first_error(result.errors)


def schema_tables() -> Dict[str, Dict[str, List[str]]]:
    """All schema tables by name, e.g. for documentation or export."""
    return {
        'workflow': WORKFLOW_SCHEMA,
        'optional_workflow': OPTIONAL_WORKFLOW_SCHEMA,
        'task': TASK_SCHEMA,
        'task_update': TASK_UPDATE_SCHEMA,
        'update_workflow': UPDATE_WORKFLOW_SCHEMA,
        'filter': FILTER_SCHEMA,
    }


__all__ = [
    'WorkflowValidator',
    'WORKFLOW_SCHEMA',
    'OPTIONAL_WORKFLOW_SCHEMA',
    'TASK_SCHEMA',
    'TASK_UPDATE_SCHEMA',
    'UPDATE_WORKFLOW_SCHEMA',
    'FILTER_SCHEMA',
    'WORKFLOW_CROSS_FIELD_RULES',
    'CROSS_FIELD_KEY',
    'DATE_RANGE_KEY',
    'SANITIZED_WORKFLOW_FIELDS',
    'schema_tables',
]
