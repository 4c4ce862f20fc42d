"""Outbox-backed task queue for fire-and-forget stage hand-off."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable

import pendulum
import structlog

from .schemas import OutboxTask, TaskStatus
from .store import EntityStore

TaskHandler = Callable[..., Any]

PRESCREEN = "prescreen"
ASSIGN_TESTS = "assign_tests"
ASSESS_SUBMISSION = "assess_submission"


@dataclass(slots=True)
class DrainReport:
    processed: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)


class TaskQueue:
    """Persist next-stage work in the store outbox; workers drain it later.

    Producers call :meth:`enqueue` after committing their own change and
    return immediately. :meth:`run_pending` claims tasks one at a time with a
    compare-and-set, so several workers may drain the same outbox. A task
    left running longer than ``lease_seconds`` belongs to a dead worker and
    is claimed again, up to ``max_attempts`` claims in total.
    """

    def __init__(
        self,
        store: EntityStore,
        *,
        lease_seconds: int = 300,
        max_attempts: int = 3,
        now_provider: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._lease = timedelta(seconds=lease_seconds)
        self._max_attempts = max_attempts
        self._now = now_provider or (lambda: pendulum.now("UTC"))
        self._handlers: dict[str, TaskHandler] = {}
        self._logger = structlog.get_logger(__name__)

    def register(self, kind: str, handler: TaskHandler) -> None:
        self._handlers[kind] = handler

    def enqueue(self, kind: str, **payload: Any) -> OutboxTask:
        task = OutboxTask(
            id=uuid.uuid4().hex,
            kind=kind,
            payload=payload,
            created_at=self._now(),
        )
        stored = self._store.enqueue_task(task)
        self._logger.debug("task.enqueued", kind=kind, task_id=task.id, **payload)
        return stored

    def pending(self) -> list[OutboxTask]:
        return self._store.list_tasks(statuses={TaskStatus.PENDING})

    def run_pending(self, *, max_tasks: int | None = None) -> DrainReport:
        """Run queued tasks until the outbox is empty or ``max_tasks`` ran.

        Tasks enqueued by a running task are picked up in the same drain.
        """
        report = DrainReport()
        while max_tasks is None or report.processed < max_tasks:
            task = self._store.claim_next_task(
                stale_before=self._now() - self._lease,
                max_attempts=self._max_attempts,
            )
            if task is None:
                break
            report.processed += 1
            handler = self._handlers.get(task.kind)
            try:
                if handler is None:
                    raise LookupError(f"No handler registered for task kind {task.kind!r}")
                handler(**task.payload)
            except Exception as exc:  # noqa: BLE001 - one task must not stall the outbox
                report.failed += 1
                report.errors.append(f"{task.kind}:{task.id}: {exc}")
                self._store.update_task(
                    task.id,
                    {"status": TaskStatus.FAILED, "error": str(exc), "finished_at": self._now()},
                )
                self._logger.error(
                    "task.failed",
                    kind=task.kind,
                    task_id=task.id,
                    error=str(exc),
                    exc_info=True,
                )
                continue
            self._store.update_task(
                task.id,
                {"status": TaskStatus.DONE, "finished_at": self._now()},
            )
        return report
