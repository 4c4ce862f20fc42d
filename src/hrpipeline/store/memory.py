"""Thread-safe in-memory entity store."""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Any, Callable, Collection, Iterable, TypeVar

import pendulum
from pydantic import BaseModel

from ..schemas import (
    Application,
    ApplicationStatus,
    CombinationStatus,
    OutboxTask,
    ServiceType,
    SubmissionStatus,
    TaskStatus,
    TestCombination,
    TestLibraryEntry,
    TestSubmission,
)

ModelT = TypeVar("ModelT", bound=BaseModel)


class InMemoryStore:
    """Dictionary-backed store with per-row compare-and-set updates.

    A single re-entrant lock guards all tables so that each public call is
    atomic. Rows are copied on the way in and out; callers never hold a
    reference to stored state.
    """

    def __init__(self, *, now_provider: Callable[[], datetime] | None = None) -> None:
        self._lock = threading.RLock()
        self._now = now_provider or (lambda: pendulum.now("UTC"))
        self._applications: dict[str, Application] = {}
        self._combinations: dict[str, TestCombination] = {}
        self._submissions: dict[str, TestSubmission] = {}
        self._library: dict[str, TestLibraryEntry] = {}
        self._tasks: dict[str, OutboxTask] = {}

    # Applications

    def insert_application(self, application: Application) -> Application:
        with self._lock:
            self._insert(self._applications, application)
            self._commit()
            return application.model_copy(deep=True)

    def get_application(self, application_id: str) -> Application | None:
        with self._lock:
            return _copy(self._applications.get(application_id))

    def update_application(
        self,
        application_id: str,
        changes: dict[str, Any],
        *,
        expected_status: Collection[ApplicationStatus] | None = None,
        where: dict[str, Any] | None = None,
    ) -> Application | None:
        with self._lock:
            row = self._applications.get(application_id)
            if row is None or not _matches(row, where or {}):
                return None
            return self._update(self._applications, application_id, changes, expected_status)

    def list_applications(
        self,
        *,
        email: str | None = None,
        statuses: Collection[ApplicationStatus] | None = None,
    ) -> list[Application]:
        with self._lock:
            rows = [
                row
                for row in self._applications.values()
                if (email is None or row.email == email.lower())
                and (statuses is None or row.status in statuses)
            ]
            rows.sort(key=lambda row: row.created_at)
            return [row.model_copy(deep=True) for row in rows]

    def count_applications(self) -> int:
        with self._lock:
            return len(self._applications)

    # Combinations

    def insert_combinations(self, combinations: Iterable[TestCombination]) -> list[TestCombination]:
        with self._lock:
            inserted = []
            for combination in combinations:
                self._insert(self._combinations, combination)
                inserted.append(combination.model_copy(deep=True))
            self._commit()
            return inserted

    def get_combination(self, combination_id: str) -> TestCombination | None:
        with self._lock:
            return _copy(self._combinations.get(combination_id))

    def update_combination(
        self,
        combination_id: str,
        changes: dict[str, Any],
        *,
        expected_status: Collection[CombinationStatus] | None = None,
    ) -> TestCombination | None:
        with self._lock:
            return self._update(self._combinations, combination_id, changes, expected_status)

    def list_combinations(
        self,
        application_id: str,
        *,
        statuses: Collection[CombinationStatus] | None = None,
    ) -> list[TestCombination]:
        with self._lock:
            rows = [
                row
                for row in self._combinations.values()
                if row.application_id == application_id
                and (statuses is None or row.status in statuses)
            ]
            rows.sort(key=lambda row: row.created_at)
            return [row.model_copy(deep=True) for row in rows]

    # Submissions

    def insert_submission(self, submission: TestSubmission) -> TestSubmission:
        with self._lock:
            if any(row.token == submission.token for row in self._submissions.values()):
                raise ValueError("Duplicate submission token")
            self._insert(self._submissions, submission)
            self._commit()
            return submission.model_copy(deep=True)

    def get_submission(self, submission_id: str) -> TestSubmission | None:
        with self._lock:
            return _copy(self._submissions.get(submission_id))

    def find_submission_by_token(self, token: str) -> TestSubmission | None:
        with self._lock:
            for row in self._submissions.values():
                if row.token == token:
                    return row.model_copy(deep=True)
            return None

    def update_submission(
        self,
        submission_id: str,
        changes: dict[str, Any],
        *,
        expected_status: Collection[SubmissionStatus] | None = None,
        require_null: Collection[str] = (),
    ) -> TestSubmission | None:
        if "token_expires_at" in changes or "token" in changes:
            raise ValueError("Submission tokens are immutable")
        with self._lock:
            row = self._submissions.get(submission_id)
            if row is None:
                return None
            if any(getattr(row, field) is not None for field in require_null):
                return None
            return self._update(self._submissions, submission_id, changes, expected_status)

    def list_submissions(
        self,
        *,
        application_id: str | None = None,
        statuses: Collection[SubmissionStatus] | None = None,
        created_before: datetime | None = None,
        expires_before: datetime | None = None,
        expires_after: datetime | None = None,
        null_fields: Collection[str] = (),
        set_fields: Collection[str] = (),
        limit: int | None = None,
    ) -> list[TestSubmission]:
        with self._lock:
            rows = []
            for row in self._submissions.values():
                if application_id is not None and row.application_id != application_id:
                    continue
                if statuses is not None and row.status not in statuses:
                    continue
                if created_before is not None and row.created_at > created_before:
                    continue
                if expires_before is not None and row.token_expires_at > expires_before:
                    continue
                if expires_after is not None and row.token_expires_at <= expires_after:
                    continue
                if any(getattr(row, field) is not None for field in null_fields):
                    continue
                if any(getattr(row, field) is None for field in set_fields):
                    continue
                rows.append(row)
            rows.sort(key=lambda row: row.created_at)
            if limit is not None:
                rows = rows[:limit]
            return [row.model_copy(deep=True) for row in rows]

    # Test library

    def insert_library_entry(self, entry: TestLibraryEntry) -> TestLibraryEntry:
        with self._lock:
            self._insert(self._library, entry)
            self._commit()
            return entry.model_copy(deep=True)

    def get_library_entry(self, entry_id: str) -> TestLibraryEntry | None:
        with self._lock:
            return _copy(self._library.get(entry_id))

    def list_library_entries(
        self,
        *,
        source_language: str,
        target_language: str,
        domain: str,
        service_type: ServiceType,
        active_only: bool = True,
    ) -> list[TestLibraryEntry]:
        with self._lock:
            return [
                entry.model_copy(deep=True)
                for entry in self._library.values()
                if entry.source_language == source_language
                and entry.target_language == target_language
                and entry.domain == domain
                and entry.service_type == service_type
                and (entry.is_active or not active_only)
            ]

    def increment_library_usage(self, entry_id: str, used_at: datetime) -> TestLibraryEntry | None:
        with self._lock:
            entry = self._library.get(entry_id)
            if entry is None:
                return None
            changes = {"times_used": entry.times_used + 1, "last_used_at": used_at}
            return self._update(self._library, entry_id, changes, None)

    def increment_library_outcome(self, entry_id: str, *, passed: bool) -> TestLibraryEntry | None:
        with self._lock:
            entry = self._library.get(entry_id)
            if entry is None:
                return None
            if passed:
                changes = {"pass_count": entry.pass_count + 1}
            else:
                changes = {"fail_count": entry.fail_count + 1}
            return self._update(self._library, entry_id, changes, None)

    # Outbox

    def enqueue_task(self, task: OutboxTask) -> OutboxTask:
        with self._lock:
            self._insert(self._tasks, task)
            self._commit()
            return task.model_copy(deep=True)

    def claim_next_task(
        self,
        *,
        stale_before: datetime | None = None,
        max_attempts: int | None = None,
    ) -> OutboxTask | None:
        """Claim the oldest pending task, or a running one whose lease lapsed.

        A lapsed task that already used ``max_attempts`` claims is failed
        instead of being handed out again.
        """
        with self._lock:
            now = self._now()
            claimable = []
            for task in list(self._tasks.values()):
                if task.status == TaskStatus.PENDING:
                    claimable.append(task)
                    continue
                lapsed = (
                    stale_before is not None
                    and task.status == TaskStatus.RUNNING
                    and (task.claimed_at is None or task.claimed_at <= stale_before)
                )
                if not lapsed:
                    continue
                if max_attempts is not None and task.attempts >= max_attempts:
                    self._update(
                        self._tasks,
                        task.id,
                        {
                            "status": TaskStatus.FAILED,
                            "error": f"lease expired after {task.attempts} attempts",
                            "finished_at": now,
                        },
                        {TaskStatus.RUNNING},
                    )
                    continue
                claimable.append(task)
            if not claimable:
                return None
            task = min(claimable, key=lambda row: row.created_at)
            changes = {"status": TaskStatus.RUNNING, "attempts": task.attempts + 1, "claimed_at": now}
            return self._update(self._tasks, task.id, changes, {task.status})

    def update_task(self, task_id: str, changes: dict[str, Any]) -> OutboxTask | None:
        with self._lock:
            return self._update(self._tasks, task_id, changes, None)

    def list_tasks(self, *, statuses: Collection[TaskStatus] | None = None) -> list[OutboxTask]:
        with self._lock:
            rows = [
                task
                for task in self._tasks.values()
                if statuses is None or task.status in statuses
            ]
            rows.sort(key=lambda row: row.created_at)
            return [row.model_copy(deep=True) for row in rows]

    # Internals

    def _insert(self, table: dict[str, ModelT], row: ModelT) -> None:
        row_id = getattr(row, "id")
        if row_id in table:
            raise ValueError(f"Duplicate id {row_id!r}")
        table[row_id] = row.model_copy(deep=True)

    def _update(
        self,
        table: dict[str, ModelT],
        row_id: str,
        changes: dict[str, Any],
        expected_status: Collection[Any] | None,
    ) -> ModelT | None:
        row = table.get(row_id)
        if row is None:
            return None
        if expected_status is not None and getattr(row, "status") not in expected_status:
            return None
        update = dict(changes)
        if "updated_at" in type(row).model_fields and "updated_at" not in update:
            update["updated_at"] = self._now()
        updated = row.model_copy(update=update, deep=True)
        table[row_id] = updated
        self._commit()
        return updated.model_copy(deep=True)

    def _commit(self) -> None:
        """Hook invoked after every successful write."""


def _copy(row: ModelT | None) -> ModelT | None:
    return row.model_copy(deep=True) if row is not None else None


def _matches(row: BaseModel, where: dict[str, Any]) -> bool:
    """Check dotted attribute paths against expected values."""
    for path, expected in where.items():
        value: Any = row
        for part in path.split("."):
            value = getattr(value, part)
        if value != expected:
            return False
    return True
