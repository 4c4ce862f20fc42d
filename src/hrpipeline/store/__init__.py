"""Entity store contract and bundled adapters."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Collection, Iterable, Protocol, runtime_checkable

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
from .json_file import JsonFileStore
from .memory import InMemoryStore


@runtime_checkable
class EntityStore(Protocol):
    """Transactional persistence for pipeline entities.

    Every ``update_*`` call is a single atomic conditional write: when
    ``expected_status`` is given the row is only changed if its current
    status is one of the expected values, otherwise ``None`` is returned and
    nothing is written. Callers use this compare-and-set to serialise
    competing transitions on the same row without a lock manager.
    """

    def insert_application(self, application: Application) -> Application: ...

    def get_application(self, application_id: str) -> Application | None: ...

    def update_application(
        self,
        application_id: str,
        changes: dict[str, Any],
        *,
        expected_status: Collection[ApplicationStatus] | None = None,
        where: dict[str, Any] | None = None,
    ) -> Application | None: ...

    def list_applications(
        self,
        *,
        email: str | None = None,
        statuses: Collection[ApplicationStatus] | None = None,
    ) -> list[Application]: ...

    def count_applications(self) -> int: ...

    def insert_combinations(self, combinations: Iterable[TestCombination]) -> list[TestCombination]: ...

    def get_combination(self, combination_id: str) -> TestCombination | None: ...

    def update_combination(
        self,
        combination_id: str,
        changes: dict[str, Any],
        *,
        expected_status: Collection[CombinationStatus] | None = None,
    ) -> TestCombination | None: ...

    def list_combinations(
        self,
        application_id: str,
        *,
        statuses: Collection[CombinationStatus] | None = None,
    ) -> list[TestCombination]: ...

    def insert_submission(self, submission: TestSubmission) -> TestSubmission: ...

    def get_submission(self, submission_id: str) -> TestSubmission | None: ...

    def find_submission_by_token(self, token: str) -> TestSubmission | None: ...

    def update_submission(
        self,
        submission_id: str,
        changes: dict[str, Any],
        *,
        expected_status: Collection[SubmissionStatus] | None = None,
        require_null: Collection[str] = (),
    ) -> TestSubmission | None: ...

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
    ) -> list[TestSubmission]: ...

    def insert_library_entry(self, entry: TestLibraryEntry) -> TestLibraryEntry: ...

    def get_library_entry(self, entry_id: str) -> TestLibraryEntry | None: ...

    def list_library_entries(
        self,
        *,
        source_language: str,
        target_language: str,
        domain: str,
        service_type: ServiceType,
        active_only: bool = True,
    ) -> list[TestLibraryEntry]: ...

    def increment_library_usage(self, entry_id: str, used_at: datetime) -> TestLibraryEntry | None: ...

    def increment_library_outcome(self, entry_id: str, *, passed: bool) -> TestLibraryEntry | None: ...

    def enqueue_task(self, task: OutboxTask) -> OutboxTask: ...

    def claim_next_task(
        self,
        *,
        stale_before: datetime | None = None,
        max_attempts: int | None = None,
    ) -> OutboxTask | None: ...

    def update_task(self, task_id: str, changes: dict[str, Any]) -> OutboxTask | None: ...

    def list_tasks(self, *, statuses: Collection[TaskStatus] | None = None) -> list[OutboxTask]: ...


__all__ = ["EntityStore", "InMemoryStore", "JsonFileStore"]
