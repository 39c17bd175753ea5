"""
Shared utilities: the error taxonomy and date/time helpers used by every layer.
"""

from .datetime_utils import (
    add_days,
    add_years,
    date_token,
    days_until,
    hours_since,
    now_local,
    parse_date_value,
    start_of_day,
    to_naive_local,
)
from .exceptions import (
    BaseApplicationError,
    ConfigurationError,
    ErrorCategory,
    ErrorSeverity,
    ReminderDeliveryError,
    TaskNotFoundError,
    UnknownRuleError,
    ValidationError,
    WorkflowNotFoundError,
    format_error_messages,
    format_error_response,
    get_user_message,
)

__all__ = [
    'add_days',
    'add_years',
    'date_token',
    'days_until',
    'hours_since',
    'now_local',
    'parse_date_value',
    'start_of_day',
    'to_naive_local',
    'BaseApplicationError',
    'ConfigurationError',
    'ErrorCategory',
    'ErrorSeverity',
    'ReminderDeliveryError',
    'TaskNotFoundError',
    'UnknownRuleError',
    'ValidationError',
    'WorkflowNotFoundError',
    'format_error_messages',
    'format_error_response',
    'get_user_message',
]
