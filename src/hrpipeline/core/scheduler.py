"""Time-driven follow-ups on issued tests and queued rejections."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable

import pendulum
import structlog

from ..notifications import NotificationSink, Template, notify
from ..schemas import (
    ApplicationStatus,
    CombinationStatus,
    RejectionEmailStatus,
    SubmissionStatus,
    TestSubmission,
)
from ..schemas.status import COMPLETED_SUBMISSION_STATUSES, OPEN_SUBMISSION_STATUSES
from ..store import EntityStore
from .lifecycle import TEST_PHASE_STATUSES, ApplicationLifecycle


@dataclass
class SchedulerConfig:
    reminder_after_hours: int = 24
    final_chance_after_days: int = 7
    archive_after_days: int = 10
    rejection_hold_hours: int = 48
    batch_size: int = 50
    app_url: str = "http://localhost:8000"


@dataclass(slots=True)
class SweepReport:
    reminders_sent: int = 0
    expired: int = 0
    final_chance_sent: int = 0
    archived: int = 0
    rejections_sent: int = 0
    errors: int = 0
    error_details: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, int]:
        return {
            "reminders_sent": self.reminders_sent,
            "expired": self.expired,
            "final_chance_sent": self.final_chance_sent,
            "archived": self.archived,
            "rejections_sent": self.rejections_sent,
            "errors": self.errors,
        }


class FollowUpScheduler:
    """Periodic sweep over submissions and rejected applications.

    Each stage selects a bounded batch by a predicate that excludes rows the
    stage already handled, then claims every row with a conditional write
    on its status and stage marker before notifying anyone. A row claimed by
    a concurrent sweep, or closed by a concurrent submit, is skipped.
    """

    def __init__(
        self,
        store: EntityStore,
        lifecycle: ApplicationLifecycle,
        notifier: NotificationSink,
        *,
        config: SchedulerConfig | None = None,
        now_provider: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._lifecycle = lifecycle
        self._notifier = notifier
        self._config = config or SchedulerConfig()
        self._now = now_provider or (lambda: pendulum.now("UTC"))
        self._logger = structlog.get_logger(__name__)

    def run_sweep(self) -> SweepReport:
        now = self._now()
        report = SweepReport()
        report.reminders_sent = self._send_reminders(now, report)
        report.expired = self._expire_tokens(now, report)
        report.final_chance_sent = self._send_final_chance(now, report)
        report.archived = self._archive_abandoned(now, report)
        report.rejections_sent = self._dispatch_rejections(now, report)
        self._logger.info("sweep.completed", **report.as_dict())
        return report

    def _link(self, submission: TestSubmission) -> str:
        return f"{self._config.app_url.rstrip('/')}/test/{submission.token}"

    def _record_error(self, report: SweepReport, stage: str, row_id: str, exc: Exception) -> None:
        report.errors += 1
        report.error_details.append(f"{stage}:{row_id}: {exc}")
        self._logger.error("sweep.row_failed", stage=stage, row_id=row_id, error=str(exc), exc_info=True)

    def _send_reminders(self, now: datetime, report: SweepReport) -> int:
        rows = self._store.list_submissions(
            statuses=OPEN_SUBMISSION_STATUSES,
            created_before=now - timedelta(hours=self._config.reminder_after_hours),
            expires_after=now,
            null_fields=("reminder_day2_sent_at",),
            limit=self._config.batch_size,
        )
        sent = 0
        for row in rows:
            try:
                claimed = self._store.update_submission(
                    row.id,
                    {"reminder_day2_sent_at": now},
                    expected_status=OPEN_SUBMISSION_STATUSES,
                    require_null=("reminder_day2_sent_at",),
                )
                if claimed is None:
                    continue
                application = self._store.get_application(row.application_id)
                if application is not None:
                    hours_left = max(0, int((row.token_expires_at - now).total_seconds() // 3600))
                    notify(
                        self._notifier,
                        Template.TEST_REMINDER,
                        application,
                        testLink=self._link(row),
                        hoursRemaining=hours_left,
                    )
                sent += 1
            except Exception as exc:  # noqa: BLE001 - one row must not stop the sweep
                self._record_error(report, "reminder", row.id, exc)
        return sent

    def _expire_tokens(self, now: datetime, report: SweepReport) -> int:
        # Tokens already flipped to expired on redemption still get their notice.
        statuses = OPEN_SUBMISSION_STATUSES | {SubmissionStatus.EXPIRED}
        rows = self._store.list_submissions(
            statuses=statuses,
            expires_before=now,
            null_fields=("reminder_day3_sent_at",),
            limit=self._config.batch_size,
        )
        expired = 0
        for row in rows:
            try:
                claimed = self._store.update_submission(
                    row.id,
                    {"status": SubmissionStatus.EXPIRED, "reminder_day3_sent_at": now},
                    expected_status=statuses,
                    require_null=("reminder_day3_sent_at",),
                )
                if claimed is None:
                    continue
                self._store.update_combination(
                    row.combination_id,
                    {"token_expired_at": now},
                    expected_status={CombinationStatus.TEST_SENT},
                )
                application = self._store.get_application(row.application_id)
                if application is not None:
                    notify(self._notifier, Template.TEST_EXPIRED, application)
                expired += 1
            except Exception as exc:  # noqa: BLE001
                self._record_error(report, "expiry", row.id, exc)
        return expired

    def _send_final_chance(self, now: datetime, report: SweepReport) -> int:
        rows = self._store.list_submissions(
            statuses={SubmissionStatus.EXPIRED},
            created_before=now - timedelta(days=self._config.final_chance_after_days),
            set_fields=("reminder_day3_sent_at",),
            null_fields=("reminder_day7_sent_at",),
            limit=self._config.batch_size,
        )
        sent = 0
        for row in rows:
            try:
                claimed = self._store.update_submission(
                    row.id,
                    {"reminder_day7_sent_at": now},
                    expected_status={SubmissionStatus.EXPIRED},
                    require_null=("reminder_day7_sent_at",),
                )
                if claimed is None:
                    continue
                application = self._store.get_application(row.application_id)
                if application is not None:
                    notify(self._notifier, Template.FINAL_CHANCE, application)
                sent += 1
            except Exception as exc:  # noqa: BLE001
                self._record_error(report, "final_chance", row.id, exc)
        return sent

    def _archive_abandoned(self, now: datetime, report: SweepReport) -> int:
        rows = self._store.list_submissions(
            statuses={SubmissionStatus.EXPIRED},
            created_before=now - timedelta(days=self._config.archive_after_days),
            set_fields=("reminder_day7_sent_at",),
            null_fields=("archival_checked_at",),
            limit=self._config.batch_size,
        )
        archived = 0
        for row in rows:
            try:
                claimed = self._store.update_submission(
                    row.id,
                    {"archival_checked_at": now},
                    expected_status={SubmissionStatus.EXPIRED},
                    require_null=("archival_checked_at",),
                )
                if claimed is None:
                    continue
                application = self._store.get_application(row.application_id)
                if application is None or application.status not in TEST_PHASE_STATUSES:
                    continue
                siblings = self._store.list_submissions(application_id=row.application_id)
                if any(
                    sibling.status in COMPLETED_SUBMISSION_STATUSES
                    or sibling.status in OPEN_SUBMISSION_STATUSES
                    for sibling in siblings
                ):
                    continue
                moved = self._lifecycle.transition(
                    row.application_id,
                    ApplicationStatus.ARCHIVED,
                    reason="no test submitted",
                )
                if moved is not None:
                    archived += 1
            except Exception as exc:  # noqa: BLE001
                self._record_error(report, "archival", row.id, exc)
        return archived

    def _dispatch_rejections(self, now: datetime, report: SweepReport) -> int:
        cutoff = now - timedelta(hours=self._config.rejection_hold_hours)
        due = [
            application
            for application in self._store.list_applications(statuses={ApplicationStatus.REJECTED})
            if application.rejection.email_status == RejectionEmailStatus.QUEUED
            and application.rejection.queued_at is not None
            and application.rejection.queued_at <= cutoff
        ][: self._config.batch_size]
        sent = 0
        for application in due:
            try:
                rejection = application.rejection.model_copy(
                    update={"email_status": RejectionEmailStatus.SENT}
                )
                claimed = self._store.update_application(
                    application.id,
                    {"rejection": rejection},
                    expected_status={ApplicationStatus.REJECTED},
                    where={"rejection.email_status": RejectionEmailStatus.QUEUED},
                )
                if claimed is None:
                    continue
                params = {}
                if rejection.email_draft:
                    params["customMessage"] = rejection.email_draft
                notify(self._notifier, Template.REJECTED, claimed, **params)
                sent += 1
            except Exception as exc:  # noqa: BLE001
                self._record_error(report, "rejection_dispatch", application.id, exc)
        return sent
