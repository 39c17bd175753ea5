"""
Unit Tests for Workflow Domain Models

Covers coercion of dates and identifiers, derived properties, conversion of
pydantic failures into ``ValidationError`` and the bulk result summaries.
"""

from datetime import date, datetime

import pytest
import structlog

from src.utils.exceptions import ValidationError
from src.workflow.models import (
    BulkOutcome, BulkReminderResult, ReminderResult, Task, TaskStatus, Workflow
)

pytestmark = pytest.mark.unit

logger = structlog.get_logger("tests.unit.test_workflow_models")


class TestWorkflowModel:

    def test_dates_coerced(self):
        workflow = Workflow.from_dict({
            'workflow_id': 'WF-1',
            'hire_date': '2026-04-01',
            'created_at': '2026-03-01T08:30:00',
        })

        assert workflow.hire_date == date(2026, 4, 1)
        assert workflow.created_at == datetime(2026, 3, 1, 8, 30)
        assert workflow.due_date == date(2026, 4, 1)

    def test_task_ids_coerced_to_strings(self):
        task = Task.from_dict({'id': 7, 'name': 'Badge'})
        assert task.id == '7'
        assert task.status == TaskStatus.OPEN
        assert not task.is_complete

    def test_progress(self, make_workflow):
        assert make_workflow(tasks_total=4, tasks_complete=1).progress == 25.0
        assert make_workflow(tasks_total=0).progress == 0.0

    def test_find_task(self, make_workflow):
        workflow = make_workflow(tasks_total=3)
        assert workflow.find_task(2).name == 'Task 2'
        assert workflow.find_task('9') is None

    def test_invalid_record_raises_validation_error(self):
        with pytest.raises(ValidationError) as exc_info:
            Workflow.from_dict({'workflow_id': 'WF-1', 'tasks_complete': -1})

        assert 'tasks_complete' in exc_info.value.field_errors
        assert exc_info.value.message == 'Invalid Workflow record'

    def test_to_dict_is_json_compatible(self, make_workflow):
        payload = make_workflow().to_dict()

        assert payload['status'] == 'Open'
        assert payload['hire_date'] == '2026-03-20'
        assert payload['tasks'][0] == {'id': '1', 'name': 'Task 1', 'status': 'Open', 'updated_at': None}


class TestBulkReminderResult:

    @pytest.mark.parametrize('outcomes, expected, message', [
        ([True, True], BulkOutcome.ALL_SUCCEEDED, 'Successfully sent 2 reminders!'),
        ([True], BulkOutcome.ALL_SUCCEEDED, 'Successfully sent 1 reminder!'),
        ([False, False, False], BulkOutcome.ALL_FAILED, 'Failed to send all 3 reminders'),
        ([True, False, True], BulkOutcome.MIXED, 'Sent 2 reminders, 1 failed'),
    ])
    def test_summary(self, outcomes, expected, message):
        result = BulkReminderResult(results=[
            ReminderResult(workflow_id=f"WF-{index}", success=success)
            for index, success in enumerate(outcomes)
        ])

        assert result.outcome is expected
        assert result.summary_message == message
        assert result.success_count + result.failure_count == len(outcomes)
        logger.debug("Bulk summary checked", outcome=expected.value)
