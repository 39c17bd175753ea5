"""
Unit Tests for Workflow Lifecycle Rules

Status derivation, reminder eligibility, identifier generation and the
listing helpers are pure functions of a workflow and an explicit ``now``; the
tests pin ``now`` to 2026-03-02 09:00 local time.

Key Testing Coverage:
- Status precedence: Complete, Overdue, In Progress, Open
- Status derivation is total over task counts and due dates
- Reminder escalation schedule with the last interval repeating
- First-reminder window before the due date
- Workflow identifier shape
- Search, status, type, date and predicate filters; sorting

Dependencies:
- pytest 7.4+ for fixtures and parametrization
"""

import re
from datetime import date, datetime, timedelta

import pytest
import structlog

from src.workflow import lifecycle
from src.workflow.models import WorkflowStatus

pytestmark = pytest.mark.unit

logger = structlog.get_logger("tests.unit.test_workflow_lifecycle")

NOW = datetime(2026, 3, 2, 9, 0)
INTERVALS = (24, 48, 168)


# ============================================================================
# STATUS DERIVATION
# ============================================================================

class TestStatusDerivation:

    def test_complete_takes_precedence_over_overdue(self, make_workflow):
        workflow = make_workflow(tasks_total=3, tasks_complete=3, hire_date=date(2026, 1, 1))
        assert lifecycle.derive_status(workflow, NOW) == WorkflowStatus.COMPLETE

    def test_workflow_without_tasks_is_not_complete(self, make_workflow):
        assert lifecycle.derive_status(make_workflow(tasks_total=0), NOW) == WorkflowStatus.OPEN
        overdue = make_workflow(tasks_total=0, hire_date=date(2026, 3, 1))
        assert lifecycle.derive_status(overdue, NOW) == WorkflowStatus.OVERDUE

    def test_workflow_without_tasks_needs_first_reminder(self, make_workflow):
        workflow = make_workflow(tasks_total=0, hire_date=date(2026, 3, 5))
        assert lifecycle.needs_reminder(workflow, NOW, INTERVALS)

    def test_past_due_date_is_overdue(self, make_workflow):
        workflow = make_workflow(tasks_total=4, tasks_complete=2, hire_date=date(2026, 3, 1))
        assert lifecycle.derive_status(workflow, NOW) == WorkflowStatus.OVERDUE

    def test_partial_progress_is_in_progress(self, make_workflow):
        workflow = make_workflow(tasks_total=4, tasks_complete=1)
        assert lifecycle.derive_status(workflow, NOW) == WorkflowStatus.IN_PROGRESS

    def test_no_progress_is_open(self, make_workflow):
        assert lifecycle.derive_status(make_workflow(), NOW) == WorkflowStatus.OPEN

    def test_target_date_used_without_hire_date(self, make_workflow):
        workflow = make_workflow(hire_date=None, target_date=date(2026, 2, 1))
        assert lifecycle.derive_status(workflow, NOW) == WorkflowStatus.OVERDUE

    def test_missing_due_date_is_never_overdue(self, make_workflow):
        workflow = make_workflow(hire_date=None)
        assert lifecycle.derive_status(workflow, NOW) == WorkflowStatus.OPEN

    def test_threshold_widens_overdue_window(self, make_workflow):
        workflow = make_workflow(hire_date=date(2026, 3, 5))
        assert lifecycle.derive_status(workflow, NOW, overdue_threshold=0) == WorkflowStatus.OPEN
        assert lifecycle.derive_status(workflow, NOW, overdue_threshold=5) == WorkflowStatus.OVERDUE

    @pytest.mark.parametrize('hire_date', [date(2026, 1, 1), date(2026, 3, 20), None])
    def test_derivation_is_total(self, make_workflow, hire_date):
        for total in range(0, 4):
            for complete in range(0, total + 1):
                workflow = make_workflow(tasks_total=total, tasks_complete=complete, hire_date=hire_date)
                status = lifecycle.derive_status(workflow, NOW)

                assert status in set(WorkflowStatus)
                if total and complete == total:
                    assert status == WorkflowStatus.COMPLETE
                else:
                    assert status != WorkflowStatus.COMPLETE

    def test_with_derived_status_returns_copy(self, make_workflow):
        workflow = make_workflow(tasks_complete=1, status=WorkflowStatus.COMPLETE)
        derived = lifecycle.with_derived_status(workflow, NOW)

        assert derived.status == WorkflowStatus.IN_PROGRESS
        assert workflow.status == WorkflowStatus.COMPLETE

    def test_count_completed(self, make_workflow):
        assert lifecycle.count_completed(make_workflow(tasks_total=5, tasks_complete=2).tasks) == 2


# ============================================================================
# REMINDERS
# ============================================================================

class TestReminderSchedule:

    @pytest.mark.parametrize('count, hours', [(0, 24), (1, 48), (2, 168), (3, 168), (10, 168)])
    def test_interval_escalates_then_repeats(self, count, hours):
        assert lifecycle.reminder_interval_hours(count, INTERVALS) == hours

    def test_empty_schedule_rejected(self):
        with pytest.raises(ValueError):
            lifecycle.reminder_interval_hours(0, ())

    def test_complete_never_needs_reminder(self, make_workflow):
        workflow = make_workflow(tasks_total=2, tasks_complete=2, hire_date=date(2026, 1, 1))
        assert not lifecycle.needs_reminder(workflow, NOW, INTERVALS)

    def test_overdue_always_needs_reminder(self, make_workflow):
        workflow = make_workflow(
            hire_date=date(2026, 2, 20),
            last_reminder=NOW - timedelta(hours=1),
            reminder_count=5,
        )
        assert lifecycle.needs_reminder(workflow, NOW, INTERVALS)

    @pytest.mark.parametrize('hire_date, expected', [
        (date(2026, 3, 9), True),
        (date(2026, 3, 4), True),
        (date(2026, 3, 12), False),
    ])
    def test_first_reminder_window(self, make_workflow, hire_date, expected):
        workflow = make_workflow(hire_date=hire_date)
        assert lifecycle.needs_reminder(workflow, NOW, INTERVALS, first_reminder_window_days=7) is expected

    def test_first_reminder_needs_due_date(self, make_workflow):
        assert not lifecycle.needs_reminder(make_workflow(hire_date=None), NOW, INTERVALS)

    @pytest.mark.parametrize('count, hours_ago, expected', [
        (0, 25, True),
        (0, 23, False),
        (1, 47, False),
        (1, 48, True),
        (2, 100, False),
        (2, 170, True),
        (4, 167, False),
    ])
    def test_gap_since_last_reminder(self, make_workflow, count, hours_ago, expected):
        workflow = make_workflow(
            hire_date=date(2026, 3, 6),
            last_reminder=NOW - timedelta(hours=hours_ago),
            reminder_count=count,
        )
        assert lifecycle.needs_reminder(workflow, NOW, INTERVALS) is expected


# ============================================================================
# IDENTIFIERS
# ============================================================================

class TestWorkflowIdentifiers:

    def test_generated_id_shape(self):
        workflow_id = lifecycle.generate_workflow_id('WF-REQ', NOW)
        assert re.fullmatch(r'WF-REQ-20260302-[0-9A-Z]{4}', workflow_id)

    def test_explicit_token(self):
        assert lifecycle.generate_workflow_id('HR', NOW, token='AB12') == 'HR-20260302-AB12'


# ============================================================================
# FILTERING AND SORTING
# ============================================================================

class TestListingHelpers:

    @pytest.fixture
    def workflows(self, make_workflow):
        return [
            make_workflow(
                workflow_id='WF-REQ-20260301-AAAA',
                employee='Jane Doe',
                email='jane@example.com',
                tasks_complete=1,
                status=WorkflowStatus.IN_PROGRESS,
                created_at=datetime(2026, 2, 1, 10, 0),
            ),
            make_workflow(
                workflow_id='WF-REQ-20260301-BBBB',
                employee='bob Stone',
                email='bob@example.com',
                position='Electrician',
                employment_type='Salary',
                created_at=datetime(2026, 2, 15, 10, 0),
            ),
            make_workflow(
                workflow_id='WF-REQ-20260301-CCCC',
                employee='Alice Grey',
                email='alice@example.com',
                tasks_total=2,
                tasks_complete=2,
                status=WorkflowStatus.COMPLETE,
                created_at=datetime(2026, 2, 25, 10, 0),
            ),
        ]

    def test_no_filters_returns_everything(self, workflows):
        assert lifecycle.filter_workflows(workflows) == workflows

    def test_search_is_case_insensitive(self, workflows):
        assert [w.workflow_id for w in lifecycle.filter_workflows(workflows, {'search': 'JANE'})] == [
            'WF-REQ-20260301-AAAA'
        ]
        assert len(lifecycle.filter_workflows(workflows, {'search': 'electric'})) == 1
        assert len(lifecycle.filter_workflows(workflows, {'search': 'bbbb'})) == 1

    def test_status_and_type_filters(self, workflows):
        assert len(lifecycle.filter_workflows(workflows, {'status': 'Complete'})) == 1
        assert len(lifecycle.filter_workflows(workflows, {'employment_type': 'Salary'})) == 1

    def test_date_range_filter(self, workflows):
        selected = lifecycle.filter_workflows(
            workflows, {'date_from': '2026-02-10', 'date_to': '2026-02-20'}
        )
        assert [w.employee for w in selected] == ['bob Stone']

    def test_custom_filter(self, workflows):
        selected = lifecycle.filter_workflows(workflows, {'custom_filter': lambda w: w.progress > 0})
        assert len(selected) == 2

    def test_sort_by_progress_descending(self, workflows):
        ordered = lifecycle.sort_workflows(workflows, 'progress', 'desc')
        assert [w.progress for w in ordered] == [100.0, 25.0, 0.0]

    def test_sort_strings_case_insensitively(self, workflows):
        ordered = lifecycle.sort_workflows(workflows, 'employee')
        assert [w.employee for w in ordered] == ['Alice Grey', 'bob Stone', 'Jane Doe']

    def test_sort_leaves_input_untouched(self, workflows):
        original = list(workflows)
        lifecycle.sort_workflows(workflows, 'employee', 'desc')
        assert workflows == original

    def test_invalid_direction(self, workflows):
        with pytest.raises(ValueError):
            lifecycle.sort_workflows(workflows, 'employee', 'sideways')
        logger.info("Listing helpers verified", count=len(workflows))
