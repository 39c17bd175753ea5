"""
Ports consumed by the workflow service, plus in-process adapters.

The service depends only on the protocols below. ``InMemoryWorkflowRepository``
and ``LoggingNotificationPort`` are complete adapters for tests, demos and
single-process use; network or database bindings implement the same methods.
"""

from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Protocol, runtime_checkable

import structlog

from src.utils.exceptions import WorkflowNotFoundError
from src.workflow.models import DeliveryReceipt, ReminderPayload, Workflow

logger = structlog.get_logger("workflow.ports")


@runtime_checkable
class WorkflowRepository(Protocol):
    """Persistence port. Implementations must not hand out shared mutable state."""

    async def list_workflows(self) -> List[Workflow]:
        ...

    async def save_workflow(self, workflow: Workflow) -> Workflow:
        ...

    async def update_workflow(self, workflow_id: str, changes: Mapping[str, Any]) -> Workflow:
        """Apply ``changes`` to the stored workflow; raise WorkflowNotFoundError if absent."""
        ...


@runtime_checkable
class NotificationPort(Protocol):
    async def deliver(self, payload: ReminderPayload) -> DeliveryReceipt:
        """Deliver a reminder; raise ReminderDeliveryError or return ``success=False`` on failure."""
        ...


class PresentationPort(Protocol):
    """
    UI feedback hooks.

    Every hook is optional: the service checks for each method before calling it.
    """

    def show_progress(self, current: int, total: int, message: str) -> None:
        ...

    def show_success(self, message: str) -> None:
        ...

    def show_warning(self, message: str) -> None:
        ...

    def show_error(self, message: str) -> None:
        ...


class InMemoryWorkflowRepository:
    """Workflow store backed by a dict; reads and writes go through deep copies."""

    def __init__(self, workflows: Optional[List[Workflow]] = None):
        self._workflows: Dict[str, Workflow] = {}
        for workflow in workflows or []:
            self._workflows[workflow.workflow_id] = workflow.model_copy(deep=True)

    async def list_workflows(self) -> List[Workflow]:
        return [workflow.model_copy(deep=True) for workflow in self._workflows.values()]

    async def save_workflow(self, workflow: Workflow) -> Workflow:
        self._workflows[workflow.workflow_id] = workflow.model_copy(deep=True)
        logger.debug("Workflow saved", workflow_id=workflow.workflow_id)
        return workflow.model_copy(deep=True)

    async def update_workflow(self, workflow_id: str, changes: Mapping[str, Any]) -> Workflow:
        current = self._workflows.get(workflow_id)
        if current is None:
            raise WorkflowNotFoundError(workflow_id)
        # Re-validate so dict-shaped tasks and date strings are coerced.
        merged = Workflow.model_validate({**current.model_dump(), **dict(changes)})
        self._workflows[workflow_id] = merged
        logger.debug("Workflow updated", workflow_id=workflow_id, fields=sorted(changes))
        return merged.model_copy(deep=True)


class LoggingNotificationPort:
    """Notification adapter that records reminders in the log instead of sending them."""

    def __init__(self):
        self.sent: List[ReminderPayload] = []

    async def deliver(self, payload: ReminderPayload) -> DeliveryReceipt:
        self.sent.append(payload)
        logger.info(
            "Reminder delivered",
            workflow_id=payload.workflow_id,
            recipient=payload.recipient,
            has_custom_message=bool(payload.custom_message),
        )
        return DeliveryReceipt(
            success=True,
            message=f"Reminder sent to {payload.recipient}",
            workflow_id=payload.workflow_id,
            sent_at=datetime.now(),
        )


__all__ = [
    'WorkflowRepository',
    'NotificationPort',
    'PresentationPort',
    'InMemoryWorkflowRepository',
    'LoggingNotificationPort',
]
