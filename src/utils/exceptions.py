"""
Error taxonomy for the validation engine and the workflow lifecycle manager.

Every error raised by the core derives from :class:`BaseApplicationError`, which
carries a category, a severity and a details mapping, logs itself through
structlog on construction and is counted in Prometheus. Validation *failures*
are not raised here; the engine returns structured results for those. The
classes below cover the cases that calling code has to catch:

- ValidationError: input rejected by a schema or cross-field rule (recoverable)
- UnknownRuleError: a schema references a rule the registry cannot build (fatal)
- ConfigurationError: settings failed validation at load time (fatal)
- WorkflowNotFoundError / TaskNotFoundError: lookup misses (recoverable)
- ReminderDeliveryError: the notification port rejected a reminder (recoverable)
- PersistenceError: the repository failed to record a change (recoverable)

`get_user_message` resolves any exception to a message that is safe to show to
an end user.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union
from uuid import uuid4

import structlog
from prometheus_client import Counter

logger = structlog.get_logger("utils.exceptions")

error_counter = Counter(
    'workflow_core_errors_total',
    'Total number of typed errors raised by the workflow core',
    ['error_type', 'error_category']
)


class ErrorCategory(Enum):
    """Error categories for hierarchical classification."""

    VALIDATION = "validation"
    CONFIGURATION = "configuration"
    NOT_FOUND = "not_found"
    EXTERNAL_SERVICE = "external_service"
    SYSTEM = "system"
    UNKNOWN = "unknown"


class ErrorSeverity(Enum):
    """Error severity levels for monitoring and alerting."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class BaseApplicationError(Exception):
    """
    Base exception class for all workflow core errors.

    Attributes:
        message: Human-readable error message
        code: Application-specific error code
        category: Error category for classification
        severity: Error severity level
        details: Additional error context
        correlation_id: Unique identifier for error tracking
        recoverable: Whether the caller can reasonably retry or correct the input
        user_friendly: Whether the message is safe to display to users
    """

    default_user_message = "An unexpected error occurred. Please try again."

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        details: Optional[Dict[str, Any]] = None,
        correlation_id: Optional[str] = None,
        recoverable: bool = False,
        user_friendly: bool = True,
        cause: Optional[BaseException] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.category = category
        self.severity = severity
        self.details = details or {}
        self.correlation_id = correlation_id or str(uuid4())
        self.recoverable = recoverable
        self.user_friendly = user_friendly
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc).isoformat()

        if cause is not None:
            self.__cause__ = cause
            self.details.setdefault('cause', f"{type(cause).__name__}: {cause}")

        self._log_error()
        error_counter.labels(
            error_type=self.code,
            error_category=self.category.value
        ).inc()

    def _log_error(self) -> None:
        log_data = {
            'error_code': self.code,
            'error_category': self.category.value,
            'error_severity': self.severity.value,
            'correlation_id': self.correlation_id,
            'recoverable': self.recoverable,
            'details': self.details,
        }

        if self.severity in (ErrorSeverity.HIGH, ErrorSeverity.CRITICAL):
            logger.error(self.message, **log_data)
        elif self.severity == ErrorSeverity.MEDIUM:
            logger.warning(self.message, **log_data)
        else:
            logger.info(self.message, **log_data)

    @property
    def user_message(self) -> str:
        """Message suitable for display to an end user."""
        if self.user_friendly and self.message:
            return self.message
        return self.default_user_message

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert exception to dictionary format for callers that serialize errors.

        Returns:
            Dictionary representation of the error
        """
        return {
            'error': True,
            'message': self.user_message,
            'code': self.code,
            'category': self.category.value,
            'severity': self.severity.value,
            'correlation_id': self.correlation_id,
            'timestamp': self.timestamp,
            'recoverable': self.recoverable,
            'details': self.details if self.user_friendly else {},
        }


class ValidationError(BaseApplicationError):
    """
    Input failed schema or cross-field validation.

    ``field_errors`` maps field names to the messages reported for them, so the
    caller can render field-level detail.
    """

    default_user_message = "Please check your input and try again."

    def __init__(
        self,
        message: str = "Validation failed",
        field_errors: Optional[Mapping[str, List[str]]] = None,
        **kwargs
    ):
        kwargs.setdefault('category', ErrorCategory.VALIDATION)
        kwargs.setdefault('severity', ErrorSeverity.LOW)
        kwargs.setdefault('recoverable', True)
        self.field_errors = {
            field: list(messages) for field, messages in (field_errors or {}).items()
        }
        details = kwargs.pop('details', None) or {}
        if self.field_errors:
            details['field_errors'] = self.field_errors
        super().__init__(message=message, details=details, **kwargs)


class UnknownRuleError(BaseApplicationError):
    """A rule identifier could not be resolved to a rule."""

    def __init__(self, rule_id: str, reason: Optional[str] = None, **kwargs):
        self.rule_id = rule_id
        self.reason = reason or "unknown rule"
        kwargs.setdefault('category', ErrorCategory.CONFIGURATION)
        kwargs.setdefault('severity', ErrorSeverity.HIGH)
        kwargs.setdefault('user_friendly', False)
        super().__init__(
            message=f"Cannot resolve validation rule '{rule_id}': {self.reason}",
            details={'rule_id': rule_id, 'reason': self.reason},
            **kwargs
        )


class ConfigurationError(BaseApplicationError):
    """Settings failed validation."""

    def __init__(
        self,
        message: str = "Invalid configuration",
        issues: Optional[List[str]] = None,
        **kwargs
    ):
        self.issues = list(issues or [])
        kwargs.setdefault('category', ErrorCategory.CONFIGURATION)
        kwargs.setdefault('severity', ErrorSeverity.CRITICAL)
        kwargs.setdefault('user_friendly', False)
        super().__init__(message=message, details={'issues': self.issues}, **kwargs)


class WorkflowNotFoundError(BaseApplicationError):
    """No workflow exists with the requested identifier."""

    default_user_message = "Workflow not found."

    def __init__(self, workflow_id: str, **kwargs):
        self.workflow_id = workflow_id
        kwargs.setdefault('category', ErrorCategory.NOT_FOUND)
        kwargs.setdefault('severity', ErrorSeverity.LOW)
        kwargs.setdefault('recoverable', True)
        super().__init__(
            message=f"Workflow {workflow_id} not found",
            details={'workflow_id': workflow_id},
            **kwargs
        )


class TaskNotFoundError(BaseApplicationError):
    """The workflow exists but holds no task with the requested identifier."""

    default_user_message = "Task not found."

    def __init__(self, workflow_id: str, task_id: str, **kwargs):
        self.workflow_id = workflow_id
        self.task_id = task_id
        kwargs.setdefault('category', ErrorCategory.NOT_FOUND)
        kwargs.setdefault('severity', ErrorSeverity.LOW)
        kwargs.setdefault('recoverable', True)
        super().__init__(
            message=f"Task {task_id} not found in workflow {workflow_id}",
            details={'workflow_id': workflow_id, 'task_id': task_id},
            **kwargs
        )


class ReminderDeliveryError(BaseApplicationError):
    """The notification port failed to deliver a reminder."""

    default_user_message = "Failed to send reminder. Please try again."

    def __init__(
        self,
        message: str = "Reminder delivery failed",
        workflow_id: Optional[str] = None,
        recipient: Optional[str] = None,
        **kwargs
    ):
        self.workflow_id = workflow_id
        self.recipient = recipient
        kwargs.setdefault('category', ErrorCategory.EXTERNAL_SERVICE)
        kwargs.setdefault('severity', ErrorSeverity.MEDIUM)
        kwargs.setdefault('recoverable', True)
        details = kwargs.pop('details', None) or {}
        if workflow_id:
            details['workflow_id'] = workflow_id
        if recipient:
            details['recipient'] = recipient
        super().__init__(message=message, details=details, **kwargs)


class PersistenceError(BaseApplicationError):
    """The repository failed to store a change."""

    default_user_message = "Failed to save changes. Please try again."

    def __init__(self, message: str = "Failed to save workflow", workflow_id: Optional[str] = None, **kwargs):
        self.workflow_id = workflow_id
        kwargs.setdefault('category', ErrorCategory.SYSTEM)
        kwargs.setdefault('severity', ErrorSeverity.HIGH)
        kwargs.setdefault('recoverable', True)
        details = kwargs.pop('details', None) or {}
        if workflow_id:
            details['workflow_id'] = workflow_id
        super().__init__(message=message, details=details, **kwargs)


# ============================================================================
# USER-FACING MESSAGES
# ============================================================================

def _field_label(field: str) -> str:
    """``site_name`` -> ``Site name``; ``_cross_field`` -> ``Cross field``."""
    words = field.strip('_').replace('_', ' ').strip()
    return words[:1].upper() + words[1:] if words else field


def get_user_message(error: BaseException, context: Optional[str] = None) -> str:
    """
    Resolve any exception to a human-readable message.

    Args:
        error: Exception raised by the core or by a port
        context: Optional prefix describing what the user was doing

    Returns:
        Message safe to display, prefixed with ``context`` when given
    """
    if isinstance(error, BaseApplicationError):
        message = error.user_message
    else:
        message = BaseApplicationError.default_user_message

    if context:
        return f"{context}: {message}"
    return message


def format_error_messages(
    errors: Mapping[str, Iterable[Union[str, Any]]]
) -> List[str]:
    """
    Flatten a field -> errors mapping into ``"Field label: message"`` strings.

    Entries may be plain strings or objects exposing a ``message`` attribute.
    Keys starting with an underscore (cross-field and general errors) are
    reported without a label.
    """
    messages = []
    for field, field_errors in errors.items():
        for item in field_errors:
            text = getattr(item, 'message', item)
            if field.startswith('_'):
                messages.append(str(text))
            else:
                messages.append(f"{_field_label(field)}: {text}")
    return messages


def format_error_response(error: BaseException) -> Dict[str, Any]:
    """
    Format any exception as a serializable error dictionary.

    Unexpected exceptions are logged and reported with a generic message.
    """
    if isinstance(error, BaseApplicationError):
        return error.to_dict()

    correlation_id = str(uuid4())
    logger.error(
        str(error),
        error_code=error.__class__.__name__,
        error_category=ErrorCategory.UNKNOWN.value,
        correlation_id=correlation_id,
    )
    error_counter.labels(
        error_type=error.__class__.__name__,
        error_category=ErrorCategory.UNKNOWN.value
    ).inc()
    return {
        'error': True,
        'message': get_user_message(error),
        'code': error.__class__.__name__,
        'category': ErrorCategory.UNKNOWN.value,
        'severity': ErrorSeverity.HIGH.value,
        'correlation_id': correlation_id,
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'recoverable': False,
        'details': {},
    }


__all__ = [
    'ErrorCategory',
    'ErrorSeverity',
    'BaseApplicationError',
    'ValidationError',
    'UnknownRuleError',
    'ConfigurationError',
    'WorkflowNotFoundError',
    'TaskNotFoundError',
    'ReminderDeliveryError',
    'PersistenceError',
    'get_user_message',
    'format_error_messages',
    'format_error_response',
]
