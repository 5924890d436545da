"""
BatchTask protocol, TaskRunResult, and TaskRegistry.

Contract:
    ``BatchTask`` defines the interface every scheduled task must implement.
    ``TaskRegistry`` stores registered tasks keyed by ``task_type``.
    ``default_task_registry()`` returns a registry holding the inventory tasks.

Invariants enforced:
    - One task per ``task_type`` string.
    - The periodic scheduler and manual "run now" call the same ``run``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from sqlalchemy.orm import Session

from pharmacy_config import InventorySettings
from pharmacy_kernel.domain.clock import Clock
from pharmacy_kernel.exceptions import TaskNotRegisteredError


@dataclass(frozen=True)
class TaskRunResult:
    """Outcome of one task run, by the scheduler or a manual trigger."""

    task_type: str
    succeeded: bool
    started_at: datetime
    completed_at: datetime
    result_data: dict[str, Any] = field(default_factory=dict)
    error_code: str | None = None
    error_message: str | None = None


@runtime_checkable
class BatchTask(Protocol):
    """Protocol for scheduled task implementations.

    Contract:
        - ``task_type``: unique string key registered in TaskRegistry.
        - ``description``: human-readable label for job listings.
        - ``run()``: does the work and owns its commit; returns a JSON-able
          summary.  Must be idempotent and safe to call re-entrantly.
    """

    @property
    def task_type(self) -> str: ...

    @property
    def description(self) -> str: ...

    def run(
        self,
        session: Session,
        clock: Clock,
        settings: InventorySettings,
    ) -> dict[str, Any]: ...


class TaskRegistry:
    """Registry mapping task_type strings to BatchTask implementations.

    Contract:
        - ``register()`` adds a task; raises ValueError on duplicate.
        - ``get()`` retrieves by task_type; raises TaskNotRegisteredError.
        - ``list_tasks()`` returns all registered task_type strings.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, BatchTask] = {}

    def register(self, task: BatchTask) -> None:
        if task.task_type in self._tasks:
            raise ValueError(f"Task type '{task.task_type}' is already registered")
        self._tasks[task.task_type] = task

    def get(self, task_type: str) -> BatchTask:
        try:
            return self._tasks[task_type]
        except KeyError:
            raise TaskNotRegisteredError(task_type) from None

    def list_tasks(self) -> tuple[str, ...]:
        return tuple(sorted(self._tasks.keys()))

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_type: str) -> bool:
        return task_type in self._tasks


def default_task_registry() -> TaskRegistry:
    """Create a registry holding the inventory scan, auto-resolve and reconcile tasks."""
    from pharmacy_batch.tasks.inventory_tasks import (
        AutoResolveAlertsTask,
        InventoryScanTask,
        ReconcileCurrentStockTask,
    )

    registry = TaskRegistry()
    registry.register(InventoryScanTask())
    registry.register(AutoResolveAlertsTask())
    registry.register(ReconcileCurrentStockTask())
    return registry
