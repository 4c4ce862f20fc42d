"""Recruitment pipeline assembly and entry points."""

from __future__ import annotations

import json
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Callable

import pendulum
import structlog
from pydantic import ValidationError

from .core import (
    ApplicationLifecycle,
    FollowUpScheduler,
    StaffActions,
    SweepReport,
    TestMatchingEngine,
)
from .errors import CooldownActiveError, InputValidationError
from .notifications import NotificationSink, Template, notify
from .schemas import (
    Application,
    ApplicationIntake,
    TestLibraryEntry,
    TestSubmission,
    TestView,
)
from .store import EntityStore
from .tasks import DrainReport, TaskQueue


class LibraryLoadError(ValueError):
    """Raised when test library loading encounters invalid records."""

    def __init__(self, errors: list[str], partial: list[TestLibraryEntry]):
        super().__init__("Test library loading failed")
        self.errors = errors
        self.partial = partial

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"Test library loading failed: {self.errors}"


class LibraryLoader:
    """Load test library entries from JSONL."""

    def load(self, path: Path) -> list[TestLibraryEntry]:
        entries: list[TestLibraryEntry] = []
        errors: list[str] = []
        with path.open("r", encoding="utf-8") as handle:
            for idx, line in enumerate(handle, start=1):
                raw = line.strip()
                if not raw:
                    continue
                try:
                    record = json.loads(raw)
                except json.JSONDecodeError as exc:
                    errors.append(f"line {idx}: invalid JSON ({exc})")
                    continue
                if not isinstance(record, dict):
                    errors.append(f"line {idx}: expected an object")
                    continue
                record.setdefault("id", uuid.uuid4().hex)
                try:
                    entries.append(TestLibraryEntry.model_validate(record))
                except ValidationError as exc:
                    errors.append(f"line {idx}: {exc.error_count()} validation errors")
                    continue
        if errors:
            raise LibraryLoadError(errors, entries)
        return entries


def format_application_number(sequence: int, now: datetime) -> str:
    return f"APP-{now.year % 100:02d}-{sequence:04d}"


class RecruitmentPipeline:
    """Facade over the pipeline components used by callers and the CLI."""

    def __init__(
        self,
        *,
        store: EntityStore,
        tasks: TaskQueue,
        lifecycle: ApplicationLifecycle,
        matching: TestMatchingEngine,
        scheduler: FollowUpScheduler,
        staff: StaffActions,
        notifier: NotificationSink,
        now_provider: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._tasks = tasks
        self._lifecycle = lifecycle
        self._matching = matching
        self._scheduler = scheduler
        self._notifier = notifier
        self._now = now_provider or (lambda: pendulum.now("UTC"))
        self._logger = structlog.get_logger(__name__)
        self.staff = staff
        lifecycle.register_handlers()
        matching.register_handlers()

    @property
    def store(self) -> EntityStore:
        return self._store

    @property
    def lifecycle(self) -> ApplicationLifecycle:
        return self._lifecycle

    @property
    def matching(self) -> TestMatchingEngine:
        return self._matching

    def submit_application(self, payload: ApplicationIntake | dict[str, Any]) -> Application:
        """Validate an intake, persist it and hand it to prescreening.

        Prescreening runs later from the task queue; this returns as soon
        as the application is stored.
        """
        intake = self._validate_intake(payload)
        now = self._now()
        self._check_cooldown(intake.email, now)

        number = format_application_number(self._store.count_applications() + 1, now)
        application = self._store.insert_application(
            Application(
                id=uuid.uuid4().hex,
                application_number=number,
                full_name=intake.full_name,
                email=intake.email,
                country=intake.country,
                phone=intake.phone,
                city=intake.city,
                linkedin_url=intake.linkedin_url,
                referral_source=intake.referral_source,
                profile=intake.profile,
                created_at=now,
                updated_at=now,
            )
        )
        notify(self._notifier, Template.APPLICATION_RECEIVED, application)
        self._lifecycle.on_application_created(application)
        self._logger.info(
            "application.submitted",
            application_id=application.id,
            application_number=number,
        )
        return application

    def _validate_intake(self, payload: ApplicationIntake | dict[str, Any]) -> ApplicationIntake:
        if isinstance(payload, ApplicationIntake):
            return payload
        try:
            return ApplicationIntake.model_validate(payload)
        except ValidationError as exc:
            errors = [
                f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
                for error in exc.errors()
            ]
            raise InputValidationError("Application is invalid.", errors=errors) from exc

    def _check_cooldown(self, email: str, now: datetime) -> None:
        for previous in self._store.list_applications(email=email):
            until = previous.rejection.cooldown_until
            if until is not None and until > now:
                self._logger.info("application.cooldown_active", email=email, until=until.isoformat())
                raise CooldownActiveError(until.date().isoformat())

    def resolve_token(self, token: str) -> TestView:
        return self._matching.resolve_token(token)

    def save_draft(self, token: str, content: str) -> TestSubmission:
        return self._matching.save_draft(token, content)

    def submit_test(self, token: str, content: str, notes: str | None = None) -> TestSubmission:
        return self._matching.submit_test(token, content, notes)

    def run_pending_tasks(self, *, max_tasks: int | None = None) -> DrainReport:
        return self._tasks.run_pending(max_tasks=max_tasks)

    def run_followups(self) -> SweepReport:
        return self._scheduler.run_sweep()

    def import_library(self, path: Path) -> tuple[int, list[str]]:
        """Insert library entries from JSONL; invalid lines are reported, not fatal."""
        errors: list[str] = []
        try:
            entries = LibraryLoader().load(path)
        except LibraryLoadError as exc:
            entries = exc.partial
            errors.extend(exc.errors)
            self._logger.warning("library.partial_load", errors=exc.errors)
        imported = 0
        for entry in entries:
            try:
                self._store.insert_library_entry(entry)
            except ValueError as exc:
                errors.append(f"{entry.id}: {exc}")
                continue
            imported += 1
        self._logger.info("library.imported", count=imported, errors=len(errors))
        return imported, errors
