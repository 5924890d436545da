"""
pharmacy_batch.tasks -- Task protocol, registry, and inventory task implementations.
"""

from pharmacy_batch.tasks.base import (
    BatchTask,
    TaskRegistry,
    TaskRunResult,
    default_task_registry,
)

__all__ = [
    "BatchTask",
    "TaskRegistry",
    "TaskRunResult",
    "default_task_registry",
]
