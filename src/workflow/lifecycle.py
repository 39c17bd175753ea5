"""
Pure lifecycle rules for workflows.

Nothing here touches storage: every function takes the workflow and the
current time explicitly, so status and reminder eligibility can be recomputed
on each read and tested without a clock.
"""

import secrets
import string
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Iterable, List, Mapping, Optional, Sequence

from src.utils.datetime_utils import date_token, days_until, hours_since, parse_date_value
from src.workflow.models import Task, TaskStatus, Workflow, WorkflowStatus

ID_ALPHABET = string.digits + string.ascii_uppercase
ID_TOKEN_LENGTH = 4

SORT_ASCENDING = 'asc'
SORT_DESCENDING = 'desc'


def count_completed(tasks: Iterable[Task]) -> int:
    return sum(1 for task in tasks if task.status == TaskStatus.COMPLETE)


def is_overdue(workflow: Workflow, now: datetime, overdue_threshold: int = 0) -> bool:
    """Fewer than ``overdue_threshold`` whole days remain until the due date."""
    remaining = days_until(workflow.due_date, now)
    return remaining is not None and remaining < overdue_threshold


def derive_status(workflow: Workflow, now: datetime, overdue_threshold: int = 0) -> WorkflowStatus:
    """
    Status as a function of task counts, due date and ``now``.

    Precedence: Complete, then Overdue, then In Progress, then Open. A
    workflow with no tasks to do is never Complete.
    """
    if workflow.tasks_total > 0 and workflow.tasks_complete == workflow.tasks_total:
        return WorkflowStatus.COMPLETE
    if is_overdue(workflow, now, overdue_threshold):
        return WorkflowStatus.OVERDUE
    if workflow.tasks_complete > 0:
        return WorkflowStatus.IN_PROGRESS
    return WorkflowStatus.OPEN


def with_derived_status(workflow: Workflow, now: datetime, overdue_threshold: int = 0) -> Workflow:
    """Copy of ``workflow`` whose status reflects ``now``."""
    return workflow.model_copy(update={'status': derive_status(workflow, now, overdue_threshold)})


def reminder_interval_hours(reminder_count: int, intervals: Sequence[int]) -> int:
    """Escalation step for the next reminder; the last interval repeats."""
    if not intervals:
        raise ValueError("At least one reminder interval is required")
    index = min(max(reminder_count, 0), len(intervals) - 1)
    return intervals[index]


def needs_reminder(
    workflow: Workflow,
    now: datetime,
    intervals: Sequence[int] = (24, 48, 168),
    overdue_threshold: int = 0,
    first_reminder_window_days: int = 7
) -> bool:
    """
    Whether a reminder is due for ``workflow`` at ``now``.

    Complete workflows never need one and overdue ones always do. Before the
    first reminder, eligibility starts ``first_reminder_window_days`` ahead of
    the due date; afterwards the gap since the last reminder must reach the
    current escalation interval.
    """
    if derive_status(workflow, now, overdue_threshold) == WorkflowStatus.COMPLETE:
        return False

    remaining = days_until(workflow.due_date, now)
    if remaining is not None and remaining < overdue_threshold:
        return True

    if workflow.last_reminder is None:
        return remaining is not None and remaining <= first_reminder_window_days

    elapsed = hours_since(workflow.last_reminder, now)
    if elapsed is None:
        return False
    return elapsed >= reminder_interval_hours(workflow.reminder_count, intervals)


def generate_workflow_id(prefix: str, now: datetime, token: Optional[str] = None) -> str:
    """
    ``{prefix}-{YYYYMMDD}-{token}`` with a random 4-character base36 token.

    Uniqueness is probabilistic; callers do not check for collisions.
    """
    if token is None:
        token = ''.join(secrets.choice(ID_ALPHABET) for _ in range(ID_TOKEN_LENGTH))
    return f"{prefix}-{date_token(now)}-{token}"


# ============================================================================
# LISTING HELPERS
# ============================================================================

def _search_text(workflow: Workflow) -> str:
    parts = [workflow.employee, workflow.workflow_id, workflow.email, workflow.position]
    return ' '.join(part for part in parts if part).casefold()


def filter_workflows(workflows: Iterable[Workflow], filters: Optional[Mapping[str, Any]] = None) -> List[Workflow]:
    """
    Filter workflows by the keys present in ``filters``.

    Supported keys: ``search`` (employee, id, email, position), ``status``,
    ``employment_type``, ``date_from``/``date_to`` (on ``created_at``) and
    ``custom_filter`` (a predicate).
    """
    filters = filters or {}
    search = str(filters.get('search') or '').strip().casefold()
    status = filters.get('status')
    employment_type = filters.get('employment_type')
    date_from = parse_date_value(filters.get('date_from'))
    date_to = parse_date_value(filters.get('date_to'))
    custom_filter: Optional[Callable[[Workflow], bool]] = filters.get('custom_filter')

    selected = []
    for workflow in workflows:
        if search and search not in _search_text(workflow):
            continue
        if status and workflow.status != status:
            continue
        if employment_type and workflow.employment_type != employment_type:
            continue
        if date_from is not None and (workflow.created_at is None or workflow.created_at < date_from):
            continue
        if date_to is not None and (workflow.created_at is None or workflow.created_at > date_to):
            continue
        if custom_filter is not None and not custom_filter(workflow):
            continue
        selected.append(workflow)
    return selected


def _sort_key(column: str) -> Callable[[Workflow], Any]:
    if column == 'progress':
        return lambda workflow: workflow.progress

    def key(workflow: Workflow) -> Any:
        value = getattr(workflow, column, None)
        if isinstance(value, Enum):
            value = value.value
        if isinstance(value, str):
            value = value.casefold()
        # None sorts first
        return (value is not None, value)

    return key


def sort_workflows(workflows: Iterable[Workflow], column: str, direction: str = SORT_ASCENDING) -> List[Workflow]:
    """New list sorted by a workflow attribute or by ``progress``."""
    if direction not in (SORT_ASCENDING, SORT_DESCENDING):
        raise ValueError(f"Sort direction must be '{SORT_ASCENDING}' or '{SORT_DESCENDING}'")
    return sorted(workflows, key=_sort_key(column), reverse=direction == SORT_DESCENDING)


__all__ = [
    'count_completed',
    'is_overdue',
    'derive_status',
    'with_derived_status',
    'reminder_interval_hours',
    'needs_reminder',
    'generate_workflow_id',
    'filter_workflows',
    'sort_workflows',
]
