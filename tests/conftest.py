"""
Global pytest Configuration and Fixtures

Shared fixtures for the validation engine and workflow lifecycle manager test
suites. Everything here is in-process: workflows live in an
``InMemoryWorkflowRepository``, reminders go through recording notification
adapters and time is pinned with a fixed clock so status derivation and
reminder eligibility are deterministic.

Key Components:
- Testing configuration with fixed reminder schedule and limits
- Fixed clock (``FIXED_NOW``) for lifecycle decisions
- Workflow factory producing consistent task lists and counters
- Valid creation payload whose hire date is relative to the real current date
  (the ``futureDate`` rule and the hire-date horizon read the wall clock)
- Recording presenter built with pytest-mock

Dependencies:
- pytest 7.4+ for fixtures and markers
- pytest-asyncio for async service operations
- pytest-mock for presenter and notifier doubles
"""

from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

import pytest

from src.config.settings import TestingConfig
from src.validation.engine import ValidationEngine
from src.validation.rules import RuleRegistry
from src.workflow.models import DeliveryReceipt, ReminderPayload, Task, TaskStatus, Workflow
from src.workflow.ports import InMemoryWorkflowRepository, LoggingNotificationPort
from src.workflow.schemas import WorkflowValidator
from src.workflow.services import WorkflowService

FIXED_NOW = datetime(2026, 3, 2, 9, 0, 0)


# ============================================================================
# TEST DOUBLES
# ============================================================================

class FailingNotifier:
    """Notification adapter that fails for selected workflow ids."""

    def __init__(self, failing_ids: Optional[List[str]] = None, exception: Optional[Exception] = None):
        self.failing_ids = set(failing_ids or [])
        self.exception = exception or ConnectionError("SMTP relay unavailable")
        self.sent: List[ReminderPayload] = []

    async def deliver(self, payload: ReminderPayload) -> DeliveryReceipt:
        if not self.failing_ids or payload.workflow_id in self.failing_ids:
            raise self.exception
        self.sent.append(payload)
        return DeliveryReceipt(
            success=True,
            message=f"Reminder sent to {payload.recipient}",
            workflow_id=payload.workflow_id,
            sent_at=FIXED_NOW,
        )


@pytest.fixture
def failing_notifier() -> Callable[..., FailingNotifier]:
    return FailingNotifier


# ============================================================================
# CONFIGURATION AND TIME
# ============================================================================

@pytest.fixture
def settings():
    return TestingConfig


@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def clock() -> Callable[[], datetime]:
    return lambda: FIXED_NOW


# ============================================================================
# VALIDATION
# ============================================================================

@pytest.fixture
def registry() -> RuleRegistry:
    """Fresh registry so custom rule registrations never leak between tests."""
    return RuleRegistry()


@pytest.fixture
def engine(registry) -> ValidationEngine:
    return ValidationEngine(registry=registry)


@pytest.fixture
def validator(engine, settings) -> WorkflowValidator:
    return WorkflowValidator(engine=engine, settings=settings)


@pytest.fixture
def valid_workflow_data() -> Dict[str, Any]:
    """Creation payload that passes every workflow rule."""
    hire_date = date.today() + timedelta(days=30)
    return {
        'employee': 'Jane Doe',
        'email': 'jane.doe@example.com',
        'position': 'Site Engineer',
        'hire_date': hire_date.isoformat(),
        'site_name': 'North Plant',
        'supervisor_name': 'Sam Smith',
        'supervisor_email': 'sam.smith@example.com',
        'employment_type': 'Hourly',
    }


# ============================================================================
# WORKFLOWS
# ============================================================================

@pytest.fixture
def make_workflow() -> Callable[..., Workflow]:
    """
    Factory for stored workflows.

    ``tasks_total`` open tasks are generated and the first ``tasks_complete``
    of them are marked complete, so counters and task states agree.
    """

    def factory(
        workflow_id: str = 'WF-REQ-20260301-AAAA',
        tasks_total: int = 4,
        tasks_complete: int = 0,
        hire_date: Optional[date] = date(2026, 3, 20),
        **overrides
    ) -> Workflow:
        tasks = [
            Task(
                id=str(index + 1),
                name=f"Task {index + 1}",
                status=TaskStatus.COMPLETE if index < tasks_complete else TaskStatus.OPEN,
            )
            for index in range(tasks_total)
        ]
        record = {
            'workflow_id': workflow_id,
            'employee': 'Jane Doe',
            'email': 'jane.doe@example.com',
            'position': 'Site Engineer',
            'site_name': 'North Plant',
            'supervisor_name': 'Sam Smith',
            'supervisor_email': 'sam.smith@example.com',
            'employment_type': 'Hourly',
            'hire_date': hire_date,
            'tasks': tasks,
            'tasks_complete': tasks_complete,
            'tasks_total': tasks_total,
            'created_at': datetime(2026, 2, 20, 8, 0),
            'updated_at': datetime(2026, 2, 20, 8, 0),
        }
        record.update(overrides)
        return Workflow.model_validate(record)

    return factory


@pytest.fixture
def repository() -> InMemoryWorkflowRepository:
    return InMemoryWorkflowRepository()


@pytest.fixture
def notifier() -> LoggingNotificationPort:
    return LoggingNotificationPort()


@pytest.fixture
def presenter(mocker):
    """Mock exposing every presentation hook."""
    return mocker.Mock(spec=['show_progress', 'show_success', 'show_warning', 'show_error'])


@pytest.fixture
def service(repository, notifier, presenter, settings, clock) -> WorkflowService:
    return WorkflowService(
        repository,
        notifier=notifier,
        presenter=presenter,
        settings=settings,
        clock=clock,
    )
