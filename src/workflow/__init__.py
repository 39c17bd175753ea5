"""
Workflow package: onboarding workflow records and their lifecycle.

- models: pydantic entities and result types
- schemas: declarative schema tables and WorkflowValidator
- lifecycle: status derivation, reminder eligibility, ids, filtering and sorting
- ports: repository / notification / presentation protocols and in-memory adapters
- services: WorkflowService, the lifecycle manager
"""

from .models import (
    BulkOutcome,
    BulkReminderResult,
    DeliveryReceipt,
    ReminderPayload,
    ReminderResult,
    Task,
    TaskStatus,
    Workflow,
    WorkflowStatistics,
    WorkflowStatus,
)
from .ports import InMemoryWorkflowRepository, LoggingNotificationPort
from .schemas import WorkflowValidator
from .services import WorkflowService, create_workflow_service

__all__ = [
    'BulkOutcome',
    'BulkReminderResult',
    'DeliveryReceipt',
    'ReminderPayload',
    'ReminderResult',
    'Task',
    'TaskStatus',
    'Workflow',
    'WorkflowStatistics',
    'WorkflowStatus',
    'InMemoryWorkflowRepository',
    'LoggingNotificationPort',
    'WorkflowValidator',
    'WorkflowService',
    'create_workflow_service',
]
