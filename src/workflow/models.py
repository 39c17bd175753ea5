"""
Workflow domain models built on pydantic v2.

A :class:`Workflow` owns an ordered list of :class:`Task` entries. Its
``status`` field is a snapshot only: the lifecycle manager re-derives it from
task counts and the target date on every read, so nothing should trust a
stored value. Date inputs accept anything python-dateutil can parse; datetimes
are kept naive in local time.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from src.utils.datetime_utils import parse_date_value
from src.utils.exceptions import ValidationError


class WorkflowStatus(str, Enum):
    OPEN = "Open"
    IN_PROGRESS = "In Progress"
    COMPLETE = "Complete"
    OVERDUE = "Overdue"


class TaskStatus(str, Enum):
    OPEN = "Open"
    IN_PROGRESS = "In Progress"
    COMPLETE = "Complete"


class EmploymentType(str, Enum):
    HOURLY = "Hourly"
    SALARY = "Salary"


class BulkOutcome(str, Enum):
    """Classification of a bulk reminder run, one user-facing signal each."""

    ALL_SUCCEEDED = "all_succeeded"
    ALL_FAILED = "all_failed"
    MIXED = "mixed"


def _coerce_date(value: Any) -> Any:
    if value is None or value == '':
        return None
    if isinstance(value, (date, datetime, str, int, float)) and not isinstance(value, bool):
        parsed = parse_date_value(value)
        if parsed is not None:
            return parsed.date()
    return value


def _coerce_datetime(value: Any) -> Any:
    if value is None or value == '':
        return None
    parsed = parse_date_value(value)
    return parsed if parsed is not None else value


class BaseWorkflowModel(BaseModel):
    """
    Base class for workflow records.

    Extra keys are kept so records round-trip through the persistence port
    without losing fields this package does not know about.
    """

    model_config = ConfigDict(
        validate_assignment=True,
        extra='allow',
        populate_by_name=True,
        hide_input_in_errors=True,
    )

    def to_dict(self) -> Dict[str, Any]:
        """JSON-compatible dictionary (enums as values, dates as ISO strings)."""
        return self.model_dump(mode='json')

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        """
        Build a model, converting pydantic errors to :class:`ValidationError`.

        Raises:
            ValidationError: with one message list per offending field
        """
        try:
            return cls.model_validate(data)
        except PydanticValidationError as exc:
            field_errors: Dict[str, List[str]] = {}
            for error in exc.errors():
                location = '.'.join(str(part) for part in error['loc']) or '_general'
                field_errors.setdefault(location, []).append(error['msg'])
            raise ValidationError(
                f"Invalid {cls.__name__} record",
                field_errors=field_errors,
                cause=exc
            )


class Task(BaseWorkflowModel):
    """A step within a workflow; ``id`` is unique only within its parent."""

    id: str
    name: str = ''
    status: TaskStatus = TaskStatus.OPEN
    updated_at: Optional[datetime] = None

    @field_validator('id', mode='before')
    @classmethod
    def coerce_id(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator('updated_at', mode='before')
    @classmethod
    def coerce_timestamp(cls, value: Any) -> Any:
        return _coerce_datetime(value)

    @property
    def is_complete(self) -> bool:
        return self.status == TaskStatus.COMPLETE


class Workflow(BaseWorkflowModel):
    """An onboarding request tracked from creation until every task is complete."""

    workflow_id: str
    employee: str = ''
    email: str = ''
    position: Optional[str] = None
    site_name: Optional[str] = None
    supervisor_name: Optional[str] = None
    supervisor_email: Optional[str] = None
    employment_type: Optional[str] = None
    phone: Optional[str] = None
    notes: Optional[str] = None

    hire_date: Optional[date] = None
    target_date: Optional[date] = None

    status: WorkflowStatus = WorkflowStatus.OPEN
    tasks: List[Task] = Field(default_factory=list)
    tasks_complete: int = Field(default=0, ge=0)
    tasks_total: int = Field(default=0, ge=0)

    last_reminder: Optional[datetime] = None
    reminder_count: int = Field(default=0, ge=0)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator('hire_date', 'target_date', mode='before')
    @classmethod
    def coerce_dates(cls, value: Any) -> Any:
        return _coerce_date(value)

    @field_validator('last_reminder', 'created_at', 'updated_at', mode='before')
    @classmethod
    def coerce_timestamps(cls, value: Any) -> Any:
        return _coerce_datetime(value)

    @property
    def due_date(self) -> Optional[date]:
        """Date that drives overdue and reminder decisions."""
        return self.hire_date or self.target_date

    @property
    def progress(self) -> float:
        """Completed share of tasks in percent; 0 when there are no tasks."""
        if not self.tasks_total:
            return 0.0
        return round(self.tasks_complete / self.tasks_total * 100, 2)

    def find_task(self, task_id: Any) -> Optional[Task]:
        task_id = str(task_id)
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None


class ReminderPayload(BaseModel):
    """What the notification port receives for one reminder."""

    workflow_id: str
    recipient: str
    recipient_name: Optional[str] = None
    custom_message: Optional[str] = None
    workflow: Workflow


class DeliveryReceipt(BaseModel):
    """Acknowledgment returned by the notification port."""

    success: bool
    message: str = ''
    workflow_id: Optional[str] = None
    sent_at: Optional[datetime] = None


class ReminderResult(BaseModel):
    """Per-id outcome inside a bulk run."""

    workflow_id: str
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None


class BulkReminderResult(BaseModel):
    results: List[ReminderResult] = Field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for item in self.results if item.success)

    @property
    def failure_count(self) -> int:
        return len(self.results) - self.success_count

    @property
    def outcome(self) -> BulkOutcome:
        if self.failure_count == 0:
            return BulkOutcome.ALL_SUCCEEDED
        if self.success_count == 0:
            return BulkOutcome.ALL_FAILED
        return BulkOutcome.MIXED

    @property
    def summary_message(self) -> str:
        if self.outcome is BulkOutcome.ALL_SUCCEEDED:
            noun = "reminder" if self.success_count == 1 else "reminders"
            return f"Successfully sent {self.success_count} {noun}!"
        if self.outcome is BulkOutcome.ALL_FAILED:
            return f"Failed to send all {self.failure_count} reminders"
        return f"Sent {self.success_count} reminders, {self.failure_count} failed"


class WorkflowStatistics(BaseModel):
    total: int = 0
    open: int = 0
    in_progress: int = 0
    complete: int = 0
    overdue: int = 0
    needing_reminders: int = 0


__all__ = [
    'WorkflowStatus',
    'TaskStatus',
    'EmploymentType',
    'BulkOutcome',
    'BaseWorkflowModel',
    'Task',
    'Workflow',
    'ReminderPayload',
    'DeliveryReceipt',
    'ReminderResult',
    'BulkReminderResult',
    'WorkflowStatistics',
]
