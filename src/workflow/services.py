"""
Workflow Lifecycle Manager.

:class:`WorkflowService` coordinates validation, status derivation and reminder
dispatch over three ports: a persistence repository (required), a notification
port (defaults to :class:`LoggingNotificationPort`) and an optional
presentation port for progress and outcome signals.

Operations are awaited one at a time. Statuses are recomputed from task counts
and due dates on every read; the stored value is never trusted. Bulk reminder
dispatch walks the ids in order and records each outcome, so one failure never
undoes or blocks the others.
"""

import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Type

import structlog
from prometheus_client import Counter, Histogram

from src.config.settings import BaseConfig, get_config
from src.utils.datetime_utils import now_local
from src.utils.exceptions import (
    BaseApplicationError, PersistenceError, ReminderDeliveryError,
    TaskNotFoundError, ValidationError, WorkflowNotFoundError
)
from src.validation.engine import ValidationEngine
from src.validation.results import ValidationResult
from src.workflow import lifecycle
from src.workflow.models import (
    BulkOutcome, BulkReminderResult, DeliveryReceipt, ReminderPayload,
    ReminderResult, Task, TaskStatus, Workflow, WorkflowStatistics, WorkflowStatus
)
from src.workflow.ports import (
    InMemoryWorkflowRepository, LoggingNotificationPort, NotificationPort,
    PresentationPort, WorkflowRepository
)
from src.workflow.schemas import WorkflowValidator

logger = structlog.get_logger("workflow.service")

operation_counter = Counter(
    'workflow_service_operations_total',
    'Workflow service operations by outcome',
    ['operation', 'status']
)

operation_duration = Histogram(
    'workflow_service_operation_duration_seconds',
    'Workflow service operation duration',
    ['operation']
)

reminder_counter = Counter(
    'workflow_reminders_total',
    'Reminder dispatch attempts by outcome',
    ['outcome']
)

# Fields a caller may not set through update_workflow.
PROTECTED_FIELDS = ('workflow_id', 'status', 'created_at')

# Derived from the task list when the workflow has tasks.
TASK_COUNTER_FIELDS = ('tasks_complete', 'tasks_total')

INVALID_RECIPIENT_MESSAGE = 'Invalid email address for recipient'


def _raise_for_result(result: ValidationResult, fallback: str = "Validation failed") -> None:
    if not result.is_valid:
        raise ValidationError(result.first_error() or fallback, field_errors=result.messages())


class WorkflowService:
    """
    Workflow lifecycle operations.

    Args:
        repository: Persistence port
        notifier: Notification port; reminders are only logged when omitted
        presenter: Optional UI feedback hooks (any subset of PresentationPort)
        validator: Workflow validator; built from ``settings`` when omitted
        settings: Configuration class; ``get_config()`` when omitted
        clock: Callable returning the current naive local datetime
    """

    def __init__(
        self,
        repository: WorkflowRepository,
        notifier: Optional[NotificationPort] = None,
        presenter: Optional[PresentationPort] = None,
        validator: Optional[WorkflowValidator] = None,
        settings: Optional[Type[BaseConfig]] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.settings = settings or get_config()
        self.repository = repository
        self.notifier = notifier if notifier is not None else LoggingNotificationPort()
        self.presenter = presenter
        self.validator = validator or WorkflowValidator(
            ValidationEngine(allow_unknown=self.settings.DEFAULT_ALLOW_UNKNOWN),
            self.settings
        )
        self.clock = clock or now_local

    # ------------------------------------------------------------------
    # Infrastructure
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def service_operation(self, operation_name: str, **context):
        """Time, count and log one service operation; errors are re-raised."""
        started = time.perf_counter()
        try:
            yield
        except BaseApplicationError as exc:
            operation_counter.labels(operation=operation_name, status='failed').inc()
            logger.info(
                "Service operation failed",
                operation=operation_name,
                error_code=exc.code,
                error=exc.message,
                **context
            )
            raise
        except Exception as exc:
            operation_counter.labels(operation=operation_name, status='error').inc()
            logger.error(
                "Service operation raised unexpected error",
                operation=operation_name,
                error=str(exc),
                error_type=type(exc).__name__,
                **context
            )
            raise
        else:
            operation_counter.labels(operation=operation_name, status='success').inc()
            logger.debug("Service operation completed", operation=operation_name, **context)
        finally:
            operation_duration.labels(operation=operation_name).observe(time.perf_counter() - started)

    def _signal(self, hook_name: str, *args) -> None:
        hook = getattr(self.presenter, hook_name, None)
        if callable(hook):
            hook(*args)

    def _derive(self, workflow: Workflow, now: datetime) -> Workflow:
        return lifecycle.with_derived_status(workflow, now, self.settings.OVERDUE_THRESHOLD_DAYS)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_workflows(self) -> List[Workflow]:
        """Every stored workflow with its status recomputed for now."""
        now = self.clock()
        return [self._derive(workflow, now) for workflow in await self.repository.list_workflows()]

    async def get_workflow(self, workflow_id: str) -> Workflow:
        """
        Raises:
            WorkflowNotFoundError: if no workflow has ``workflow_id``
        """
        for workflow in await self.list_workflows():
            if workflow.workflow_id == workflow_id:
                return workflow
        raise WorkflowNotFoundError(workflow_id)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _build_tasks(self, tasks_data: Iterable[Any], now: datetime) -> List[Task]:
        tasks = []
        field_errors: Dict[str, List[str]] = {}
        for index, item in enumerate(tasks_data):
            raw = item.model_dump() if isinstance(item, Task) else dict(item)
            raw.setdefault('status', TaskStatus.OPEN.value)
            if isinstance(raw['status'], TaskStatus):
                raw['status'] = raw['status'].value
            result = self.validator.validate_task(raw)
            if not result.is_valid:
                for field, messages in result.messages().items():
                    field_errors[f"tasks.{index}.{field}"] = messages
                continue
            # New workflows start with every task open.
            tasks.append(Task.from_dict({**raw, 'status': TaskStatus.OPEN, 'updated_at': now}))

        if field_errors:
            raise ValidationError("Invalid task definition", field_errors=field_errors)
        return tasks

    async def create_workflow(self, data: Mapping[str, Any]) -> Workflow:
        """
        Validate, sanitize and store a new workflow.

        Status is forced to Open and counters start at zero. A ``workflow_id``
        supplied in ``data`` is kept; otherwise one is generated.

        Raises:
            ValidationError: if the record or any task fails validation
        """
        async with self.service_operation('create_workflow'):
            data = dict(data or {})
            tasks_data = data.pop('tasks', None) or []

            result = self.validator.validate_and_sanitize_workflow(data)
            _raise_for_result(result)

            now = self.clock()
            tasks = self._build_tasks(tasks_data, now)
            record = dict(result.data)
            record.update({
                'workflow_id': record.get('workflow_id') or lifecycle.generate_workflow_id(
                    self.settings.WORKFLOW_ID_PREFIX, now
                ),
                'status': WorkflowStatus.OPEN,
                'tasks': tasks,
                'tasks_complete': 0,
                'tasks_total': len(tasks) if tasks else record.get('tasks_total', 0),
                'last_reminder': None,
                'reminder_count': 0,
                'created_at': now,
                'updated_at': now,
            })
            workflow = await self.repository.save_workflow(Workflow.from_dict(record))

        logger.info(
            "Workflow created",
            workflow_id=workflow.workflow_id,
            tasks_total=workflow.tasks_total,
        )
        self._signal('show_success', 'Workflow created successfully!')
        return workflow

    async def update_workflow(self, workflow_id: str, updates: Mapping[str, Any]) -> Workflow:
        """
        Merge validated ``updates`` into a stored workflow.

        ``workflow_id``, ``status`` and ``created_at`` are not caller-editable.
        When the workflow has tasks, ``tasks_complete`` and ``tasks_total`` are
        recomputed from them; status is re-derived from the merged record.

        Raises:
            ValidationError: if ``updates`` fail the update schema
            WorkflowNotFoundError: if the workflow does not exist
        """
        async with self.service_operation('update_workflow', workflow_id=workflow_id):
            updates = dict(updates or {})
            _raise_for_result(self.validator.validate_workflow_update(updates))

            ignored = [field for field in PROTECTED_FIELDS if field in updates]
            if ignored:
                logger.debug("Ignoring protected fields in update", workflow_id=workflow_id, fields=ignored)

            current = await self.get_workflow(workflow_id)
            now = self.clock()
            changes = {key: value for key, value in updates.items() if key not in PROTECTED_FIELDS}
            changes['updated_at'] = now

            if current.tasks:
                overridden = [field for field in TASK_COUNTER_FIELDS if field in changes]
                if overridden:
                    logger.debug("Ignoring task counters in update", workflow_id=workflow_id, fields=overridden)
                changes['tasks_complete'] = lifecycle.count_completed(current.tasks)
                changes['tasks_total'] = len(current.tasks)

            candidate = Workflow.from_dict({**current.model_dump(), **changes})
            changes['status'] = lifecycle.derive_status(
                candidate, now, self.settings.OVERDUE_THRESHOLD_DAYS
            )
            updated = await self.repository.update_workflow(workflow_id, changes)

        logger.info("Workflow updated", workflow_id=workflow_id, fields=sorted(changes))
        return self._derive(updated, now)

    async def update_task_status(self, workflow_id: str, task_id: str, status: str) -> Workflow:
        """
        Set one task's status and persist the recomputed counters in one update.

        Raises:
            ValidationError: if ``status`` is not a task status
            WorkflowNotFoundError: if the workflow does not exist
            TaskNotFoundError: if the workflow has no task ``task_id``
        """
        async with self.service_operation('update_task_status', workflow_id=workflow_id, task_id=task_id):
            status_value = status.value if isinstance(status, TaskStatus) else status
            _raise_for_result(self.validator.validate_task_update({'status': status_value}))

            workflow = await self.get_workflow(workflow_id)
            if workflow.find_task(task_id) is None:
                raise TaskNotFoundError(workflow_id, str(task_id))

            now = self.clock()
            new_status = TaskStatus(status_value)
            tasks = [
                task.model_copy(update={'status': new_status, 'updated_at': now})
                if task.id == str(task_id) else task
                for task in workflow.tasks
            ]
            tasks_complete = lifecycle.count_completed(tasks)
            candidate = workflow.model_copy(update={'tasks': tasks, 'tasks_complete': tasks_complete})
            workflow_status = lifecycle.derive_status(candidate, now, self.settings.OVERDUE_THRESHOLD_DAYS)

            updated = await self.repository.update_workflow(workflow_id, {
                'tasks': tasks,
                'tasks_complete': tasks_complete,
                'status': workflow_status,
                'updated_at': now,
            })

        logger.info(
            "Task status updated",
            workflow_id=workflow_id,
            task_id=str(task_id),
            task_status=new_status.value,
            tasks_complete=tasks_complete,
            workflow_status=workflow_status.value,
        )
        return updated

    # ------------------------------------------------------------------
    # Reminders
    # ------------------------------------------------------------------

    def needs_reminder(self, workflow: Workflow, now: Optional[datetime] = None) -> bool:
        return lifecycle.needs_reminder(
            workflow,
            now or self.clock(),
            intervals=self.settings.REMINDER_INTERVALS_HOURS,
            overdue_threshold=self.settings.OVERDUE_THRESHOLD_DAYS,
            first_reminder_window_days=self.settings.FIRST_REMINDER_WINDOW_DAYS,
        )

    async def _deliver(self, workflow: Workflow, message: Optional[str]) -> DeliveryReceipt:
        payload = ReminderPayload(
            workflow_id=workflow.workflow_id,
            recipient=workflow.email,
            recipient_name=workflow.employee or None,
            custom_message=message or None,
            workflow=workflow,
        )
        try:
            receipt = await self.notifier.deliver(payload)
        except ReminderDeliveryError:
            raise
        except Exception as exc:
            raise ReminderDeliveryError(
                str(exc) or "Failed to send reminder",
                workflow_id=workflow.workflow_id,
                recipient=workflow.email,
                cause=exc
            )

        if not receipt.success:
            raise ReminderDeliveryError(
                receipt.message or "Failed to send reminder",
                workflow_id=workflow.workflow_id,
                recipient=workflow.email
            )
        if not receipt.message:
            receipt = receipt.model_copy(update={'message': f"Reminder sent to {workflow.email}"})
        return receipt

    async def _send_reminder(self, workflow_id: str, message: Optional[str]) -> DeliveryReceipt:
        async with self.service_operation('send_reminder', workflow_id=workflow_id):
            workflow = await self.get_workflow(workflow_id)

            if not self.validator.validate_reminder_email(workflow.email).is_valid:
                raise ValidationError(
                    INVALID_RECIPIENT_MESSAGE,
                    field_errors={'email': [INVALID_RECIPIENT_MESSAGE]}
                )
            if not self.validator.validate_reminder_message(message).is_valid:
                limit = self.settings.REMINDER_MESSAGE_MAX_LENGTH
                text = f"Custom message is too long (max {limit} characters)"
                raise ValidationError(text, field_errors={'message': [text]})

            try:
                receipt = await self._deliver(workflow, message)
            except ReminderDeliveryError:
                reminder_counter.labels(outcome='failed').inc()
                raise

            now = self.clock()
            try:
                await self.repository.update_workflow(workflow_id, {
                    'last_reminder': now,
                    'reminder_count': workflow.reminder_count + 1,
                    'updated_at': now,
                })
            except BaseApplicationError:
                reminder_counter.labels(outcome='unrecorded').inc()
                raise
            except Exception as exc:
                reminder_counter.labels(outcome='unrecorded').inc()
                raise PersistenceError(
                    f"Reminder sent to {workflow.email} but could not be recorded: {exc}",
                    workflow_id=workflow_id,
                    cause=exc
                )
            reminder_counter.labels(outcome='sent').inc()

        logger.info(
            "Reminder sent",
            workflow_id=workflow_id,
            recipient=workflow.email,
            reminder_count=workflow.reminder_count + 1,
        )
        return receipt

    async def send_reminder(self, workflow_id: str, message: Optional[str] = None) -> DeliveryReceipt:
        """
        Send one reminder and record it on the workflow.

        Raises:
            WorkflowNotFoundError: if the workflow does not exist
            ValidationError: if the recipient address or ``message`` is invalid
            ReminderDeliveryError: if the notification port fails
        """
        try:
            receipt = await self._send_reminder(workflow_id, message)
        except BaseApplicationError as exc:
            self._signal('show_error', exc.user_message)
            raise
        self._signal('show_success', receipt.message)
        return receipt

    async def send_bulk_reminders(
        self,
        workflow_ids: Sequence[str],
        message: Optional[str] = None
    ) -> BulkReminderResult:
        """
        Send reminders to ``workflow_ids`` one after another.

        Every per-id failure, including a reminder that was delivered but could
        not be recorded, becomes a failed entry. Only a failure to read the
        workflow list itself propagates.

        Raises:
            ValidationError: if ``workflow_ids`` is not a non-empty list within the bulk limit
        """
        _raise_for_result(self.validator.validate_bulk_operation(workflow_ids))

        total = len(workflow_ids)
        bulk = BulkReminderResult()
        for index, workflow_id in enumerate(workflow_ids, start=1):
            self._signal('show_progress', index, total, f"Sending reminder {index} of {total}...")
            try:
                receipt = await self._send_reminder(workflow_id, message)
            except BaseApplicationError as exc:
                bulk.results.append(ReminderResult(workflow_id=workflow_id, success=False, error=exc.message))
                continue
            bulk.results.append(ReminderResult(workflow_id=workflow_id, success=True, message=receipt.message))

        logger.info(
            "Bulk reminders completed",
            total=total,
            success_count=bulk.success_count,
            failure_count=bulk.failure_count,
            outcome=bulk.outcome.value,
        )
        if bulk.outcome is BulkOutcome.ALL_SUCCEEDED:
            self._signal('show_success', bulk.summary_message)
        elif bulk.outcome is BulkOutcome.ALL_FAILED:
            self._signal('show_error', bulk.summary_message)
        else:
            self._signal('show_warning', bulk.summary_message)
        return bulk

    async def get_workflows_needing_reminders(self) -> List[Workflow]:
        now = self.clock()
        return [workflow for workflow in await self.list_workflows() if self.needs_reminder(workflow, now)]

    async def check_and_send_reminders(self, message: Optional[str] = None) -> BulkReminderResult:
        """Send reminders to every eligible workflow, in bulk-limit sized batches."""
        due = await self.get_workflows_needing_reminders()
        if not due:
            logger.info("No workflows need reminders")
            return BulkReminderResult()

        limit = self.settings.MAX_BULK_WORKFLOWS
        ids = [workflow.workflow_id for workflow in due]
        combined = BulkReminderResult()
        for start in range(0, len(ids), limit):
            batch = await self.send_bulk_reminders(ids[start:start + limit], message)
            combined.results.extend(batch.results)
        return combined

    # ------------------------------------------------------------------
    # Listing and statistics
    # ------------------------------------------------------------------

    async def filter_workflows(self, filters: Optional[Mapping[str, Any]] = None) -> List[Workflow]:
        """
        Stored workflows matching ``filters``.

        Raises:
            ValidationError: if the filter values are malformed
        """
        filters = dict(filters or {})
        _raise_for_result(self.validator.validate_filter_params(filters))
        return lifecycle.filter_workflows(await self.list_workflows(), filters)

    async def sort_workflows(self, column: str, direction: str = lifecycle.SORT_ASCENDING) -> List[Workflow]:
        return lifecycle.sort_workflows(await self.list_workflows(), column, direction)

    async def get_statistics(self, workflows: Optional[Iterable[Workflow]] = None) -> WorkflowStatistics:
        """Counts by freshly derived status, plus how many workflows need a reminder."""
        now = self.clock()
        if workflows is None:
            source = await self.repository.list_workflows()
        else:
            source = list(workflows)

        stats = WorkflowStatistics(total=len(source))
        for workflow in source:
            status = lifecycle.derive_status(workflow, now, self.settings.OVERDUE_THRESHOLD_DAYS)
            if status == WorkflowStatus.OPEN:
                stats.open += 1
            elif status == WorkflowStatus.IN_PROGRESS:
                stats.in_progress += 1
            elif status == WorkflowStatus.COMPLETE:
                stats.complete += 1
            else:
                stats.overdue += 1
            if self.needs_reminder(workflow, now):
                stats.needing_reminders += 1
        return stats


def create_workflow_service(
    repository: Optional[WorkflowRepository] = None,
    **kwargs
) -> WorkflowService:
    """Service over ``repository`` (an empty in-memory store by default)."""
    return WorkflowService(repository or InMemoryWorkflowRepository(), **kwargs)


__all__ = ['WorkflowService', 'create_workflow_service', 'PROTECTED_FIELDS']
