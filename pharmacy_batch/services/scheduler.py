"""
InventoryScheduler -- In-process polling scheduler.

Contract:
    Polls the configured jobs on a fixed interval, fires each job whose
    cron schedule has come due, and exposes a manual ``run_now`` that
    executes the identical task code.

Architecture: pharmacy_batch/services.  Uses pharmacy_batch.domain.schedule
    for pure cron evaluation and the TaskRegistry for task lookup.

Invariants enforced:
    - All timestamps from the injected Clock.
    - Each task run gets its own session; a failing job never blocks others.
    - Graceful shutdown: ``stop()`` is honored between jobs.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from uuid import uuid4
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from pharmacy_batch.domain.schedule import CronSpec, next_cron_match, parse_cron
from pharmacy_batch.tasks.base import TaskRegistry, TaskRunResult, default_task_registry
from pharmacy_config import InventorySettings, JobDefinition
from pharmacy_kernel.domain.clock import Clock, SystemClock
from pharmacy_kernel.exceptions import PharmacyKernelError
from pharmacy_kernel.logging_config import LogContext, get_logger

logger = get_logger("batch.scheduler")


@dataclass(frozen=True)
class ScheduledJobInfo:
    name: str
    task_type: str
    cron: str
    description: str
    enabled: bool
    next_run_at: datetime | None
    last_run_at: datetime | None
    last_succeeded: bool | None


@dataclass
class _JobState:
    definition: JobDefinition
    spec: CronSpec
    next_run_at: datetime | None = None
    last_run_at: datetime | None = None
    last_succeeded: bool | None = None


class InventoryScheduler:
    """In-process polling scheduler for the configured inventory jobs.

    Contract:
        - ``tick()`` fires every enabled job whose next run time has passed.
        - ``run_now()`` runs one task immediately, outside the schedule.
        - ``start()`` / ``stop()`` for background thread operation.

    Non-goals:
        - NOT a distributed scheduler (no leader election).
        - Missed runs are not replayed; a late tick fires a job once.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        settings: InventorySettings | None = None,
        registry: TaskRegistry | None = None,
        clock: Clock | None = None,
        tick_interval_seconds: float | None = None,
    ):
        self._session_factory = session_factory
        self._settings = settings or InventorySettings()
        self._registry = registry or default_task_registry()
        self._clock = clock or SystemClock(self._settings.scheduler.timezone)
        self._tick_interval = (
            tick_interval_seconds
            if tick_interval_seconds is not None
            else self._settings.scheduler.tick_interval_seconds
        )
        self._timezone = ZoneInfo(self._settings.scheduler.timezone)
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

        self._jobs: dict[str, _JobState] = {}
        for definition in self._settings.scheduler.jobs:
            self._registry.get(definition.task_type)
            self._jobs[definition.name] = _JobState(
                definition=definition,
                spec=parse_cron(definition.cron),
            )
        self._schedule_all(self._local_now())

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def tick(self) -> int:
        """Fire due jobs (public for testing).  Returns the number fired."""
        now = self._local_now()
        fired = 0
        for state in self._jobs.values():
            if self._stop_event.is_set():
                break
            if not state.definition.enabled or state.next_run_at is None:
                continue
            if now < state.next_run_at:
                continue

            result = self._execute(state.definition.task_type, job_name=state.definition.name)
            state.last_run_at = now
            state.last_succeeded = result.succeeded
            state.next_run_at = next_cron_match(state.spec, now)
            fired += 1

            logger.info(
                "schedule_fired",
                extra={
                    "job_name": state.definition.name,
                    "task_type": state.definition.task_type,
                    "succeeded": result.succeeded,
                    "next_run_at": state.next_run_at.isoformat(),
                },
            )
        return fired

    def run_now(self, task_type: str) -> TaskRunResult:
        """Run a task immediately.  Errors propagate to the caller."""
        self._registry.get(task_type)
        return self._execute(task_type, job_name=f"manual:{task_type}", propagate=True)

    def list_jobs(self) -> list[ScheduledJobInfo]:
        return [
            ScheduledJobInfo(
                name=state.definition.name,
                task_type=state.definition.task_type,
                cron=state.definition.cron,
                description=self._registry.get(state.definition.task_type).description,
                enabled=state.definition.enabled,
                next_run_at=state.next_run_at,
                last_run_at=state.last_run_at,
                last_succeeded=state.last_succeeded,
            )
            for state in self._jobs.values()
        ]

    def start(self) -> None:
        """Start the scheduler in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="inventory-scheduler",
            daemon=True,
        )
        self._thread.start()
        logger.info(
            "scheduler_started",
            extra={"tick_interval": self._tick_interval, "job_count": len(self._jobs)},
        )

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for the current tick to finish."""
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("scheduler_stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _local_now(self) -> datetime:
        return self._clock.local_now(self._timezone)

    def _schedule_all(self, now: datetime) -> None:
        for state in self._jobs.values():
            if state.definition.enabled:
                state.next_run_at = next_cron_match(state.spec, now)

    def _run_loop(self) -> None:
        """Background polling loop.  Exits when stop_event is set."""
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("scheduler_tick_exception")
            self._stop_event.wait(timeout=self._tick_interval)

    def _execute(self, task_type: str, job_name: str, propagate: bool = False) -> TaskRunResult:
        task = self._registry.get(task_type)
        started_at = self._clock.now()
        session = self._session_factory()
        try:
            with LogContext.bind(job_name=job_name, correlation_id=str(uuid4())):
                data = task.run(session, self._clock, self._settings)
                logger.info("task_completed", extra={"task_type": task_type})
            return TaskRunResult(
                task_type=task_type,
                succeeded=True,
                started_at=started_at,
                completed_at=self._clock.now(),
                result_data=data,
            )
        except Exception as exc:
            session.rollback()
            logger.exception("task_failed", extra={"task_type": task_type, "job_name": job_name})
            if propagate:
                raise
            return TaskRunResult(
                task_type=task_type,
                succeeded=False,
                started_at=started_at,
                completed_at=self._clock.now(),
                error_code=exc.code if isinstance(exc, PharmacyKernelError) else "UNHANDLED_EXCEPTION",
                error_message=str(exc),
            )
        finally:
            session.close()
