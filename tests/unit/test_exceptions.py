"""
Unit Tests for the Error Taxonomy

Validates categories, severities, user-facing messages and serialization of
the typed errors raised by the workflow core, plus the message helpers used
to render validation failures.

Dependencies:
- pytest 7.4+
"""

import pytest
import structlog

from src.utils.exceptions import (
    BaseApplicationError, ConfigurationError, ErrorCategory, ErrorSeverity, PersistenceError,
    ReminderDeliveryError, TaskNotFoundError, UnknownRuleError, ValidationError,
    WorkflowNotFoundError, format_error_messages, format_error_response,
    get_user_message
)

pytestmark = pytest.mark.unit

logger = structlog.get_logger("tests.unit.test_exceptions")


class TestErrorClasses:

    def test_validation_error_carries_field_errors(self):
        error = ValidationError("Invalid input", field_errors={'email': ['Please enter a valid email address']})

        assert error.category is ErrorCategory.VALIDATION
        assert error.severity is ErrorSeverity.LOW
        assert error.recoverable
        assert error.details['field_errors'] == {'email': ['Please enter a valid email address']}
        assert error.user_message == "Invalid input"

    def test_unknown_rule_error_is_not_user_facing(self):
        error = UnknownRuleError('minLength:abc', "expected an integer parameter, got 'abc'")

        assert error.message == "Cannot resolve validation rule 'minLength:abc': expected an integer parameter, got 'abc'"
        assert error.category is ErrorCategory.CONFIGURATION
        assert error.user_message == BaseApplicationError.default_user_message
        assert error.details == {'rule_id': 'minLength:abc', 'reason': "expected an integer parameter, got 'abc'"}

    def test_unknown_rule_default_reason(self):
        assert UnknownRuleError('bogus').message == "Cannot resolve validation rule 'bogus': unknown rule"

    def test_not_found_errors(self):
        workflow_error = WorkflowNotFoundError('WF-1')
        task_error = TaskNotFoundError('WF-1', '7')

        assert workflow_error.message == 'Workflow WF-1 not found'
        assert workflow_error.user_message == 'Workflow WF-1 not found'
        assert task_error.user_message == 'Task 7 not found in workflow WF-1'
        assert task_error.details == {'workflow_id': 'WF-1', 'task_id': '7'}

    def test_delivery_error_records_cause(self):
        cause = ConnectionError('refused')
        error = ReminderDeliveryError('refused', workflow_id='WF-1', recipient='a@example.com', cause=cause)

        assert error.__cause__ is cause
        assert error.details['cause'] == 'ConnectionError: refused'
        assert error.details['recipient'] == 'a@example.com'
        assert error.category is ErrorCategory.EXTERNAL_SERVICE

    def test_persistence_error_records_cause(self):
        cause = ConnectionError('timed out')
        error = PersistenceError('Write failed', workflow_id='WF-1', cause=cause)

        assert error.__cause__ is cause
        assert error.category is ErrorCategory.SYSTEM
        assert error.recoverable
        assert error.details == {'workflow_id': 'WF-1', 'cause': 'ConnectionError: timed out'}

    def test_configuration_error_issues(self):
        error = ConfigurationError("Configuration validation failed", issues=['MAX_BULK_WORKFLOWS must be at least 1'])
        assert error.issues == ['MAX_BULK_WORKFLOWS must be at least 1']
        assert error.severity is ErrorSeverity.CRITICAL

    def test_to_dict(self):
        payload = WorkflowNotFoundError('WF-1', correlation_id='corr-1').to_dict()

        assert payload['error'] is True
        assert payload['message'] == 'Workflow WF-1 not found'
        assert payload['code'] == 'WorkflowNotFoundError'
        assert payload['category'] == 'not_found'
        assert payload['correlation_id'] == 'corr-1'
        assert payload['details'] == {'workflow_id': 'WF-1'}


class TestMessageHelpers:

    def test_user_message_with_context(self):
        error = ReminderDeliveryError('Mailbox full')
        assert get_user_message(error, 'Sending reminder') == 'Sending reminder: Mailbox full'

    def test_user_message_for_unexpected_errors(self):
        assert get_user_message(KeyError('x')) == 'An unexpected error occurred. Please try again.'

    def test_format_error_messages(self):
        messages = format_error_messages({
            'supervisor_email': ['Please enter a valid email address'],
            '_cross_field': ['Employee and supervisor cannot be the same person'],
        })
        assert messages == [
            'Supervisor email: Please enter a valid email address',
            'Employee and supervisor cannot be the same person',
        ]

    def test_format_error_response_for_unexpected_error(self):
        payload = format_error_response(RuntimeError('boom'))

        assert payload['code'] == 'RuntimeError'
        assert payload['category'] == 'unknown'
        assert payload['recoverable'] is False
        assert 'boom' not in payload['message']

    def test_format_error_response_for_typed_error(self):
        error = ValidationError('Bad', field_errors={'email': ['x']})
        assert format_error_response(error) == error.to_dict()
        logger.info("Error helpers verified")
