"""Match combinations to library tests and manage test tokens."""

from __future__ import annotations

import secrets
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, NoReturn

import pendulum
import structlog

from ..errors import (
    AlreadySubmittedError,
    ConflictError,
    InputValidationError,
    NotFoundError,
    TokenExpiredError,
)
from ..notifications import NotificationSink, Template, notify
from ..schemas import (
    ApplicationStatus,
    CombinationStatus,
    Difficulty,
    ServiceType,
    SkillsProviderPrescreen,
    SubmissionStatus,
    TestCombination,
    TestLibraryEntry,
    TestSubmission,
    TestView,
)
from ..schemas.status import COMPLETED_SUBMISSION_STATUSES, OPEN_SUBMISSION_STATUSES
from ..store import EntityStore
from ..tasks import ASSESS_SUBMISSION, ASSIGN_TESTS, TaskQueue
from .lifecycle import ApplicationLifecycle
from .states import can_transition

ASSIGNABLE_STATUSES = frozenset({ApplicationStatus.PRESCREENED, ApplicationStatus.TEST_SENT})


@dataclass
class MatchingConfig:
    token_ttl_hours: int = 48
    default_difficulty: Difficulty = Difficulty.INTERMEDIATE
    app_url: str = "http://localhost:8000"


@dataclass(slots=True)
class IssuedTest:
    combination_id: str
    submission_id: str
    test_id: str
    label: str
    link: str


@dataclass(slots=True)
class AssignmentSummary:
    """Outcome of one assignment run; failures never abort the batch."""

    application_id: str
    issued: list[IssuedTest] = field(default_factory=list)
    no_test_available: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    invitation_sent: bool = False


def rank_entries(entries: list[TestLibraryEntry], difficulty: Difficulty) -> list[TestLibraryEntry]:
    """Order candidates: preferred difficulty first, then least and least recently used."""

    def key(entry: TestLibraryEntry) -> tuple[Any, ...]:
        last_used = entry.last_used_at
        return (
            entry.difficulty != difficulty,
            entry.times_used,
            last_used is not None,
            last_used.timestamp() if last_used is not None else 0.0,
        )

    return sorted(entries, key=key)


class TestMatchingEngine:
    """Issue test tokens for pending combinations and redeem them."""

    __test__ = False

    def __init__(
        self,
        store: EntityStore,
        lifecycle: ApplicationLifecycle,
        tasks: TaskQueue,
        notifier: NotificationSink,
        *,
        config: MatchingConfig | None = None,
        now_provider: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._lifecycle = lifecycle
        self._tasks = tasks
        self._notifier = notifier
        self._config = config or MatchingConfig()
        self._now = now_provider or (lambda: pendulum.now("UTC"))
        self._logger = structlog.get_logger(__name__)

    def register_handlers(self) -> None:
        self._tasks.register(ASSIGN_TESTS, self.assign_tests)

    def test_link(self, token: str) -> str:
        return f"{self._config.app_url.rstrip('/')}/test/{token}"

    # Assignment

    def assign_tests(self, application_id: str) -> AssignmentSummary:
        application = self._lifecycle.load(application_id)
        summary = AssignmentSummary(application_id=application_id)
        if application.status not in ASSIGNABLE_STATUSES:
            self._logger.info(
                "assignment.skipped",
                application_id=application_id,
                status=application.status.value,
            )
            return summary
        difficulty = self._preferred_difficulty(application.score_detail)

        for combination in self._store.list_combinations(
            application_id, statuses={CombinationStatus.PENDING}
        ):
            try:
                issued = self._assign_one(combination, difficulty)
            except Exception as exc:  # noqa: BLE001 - isolate per-combination failures
                summary.failed[combination.id] = str(exc)
                self._logger.error(
                    "assignment.failed",
                    application_id=application_id,
                    combination_id=combination.id,
                    error=str(exc),
                    exc_info=True,
                )
                continue
            if issued is None:
                continue
            if isinstance(issued, IssuedTest):
                summary.issued.append(issued)
            else:
                summary.no_test_available.append(combination.id)

        if summary.issued:
            self._mark_tests_sent(application_id)
            application = self._lifecycle.load(application_id)
            summary.invitation_sent = notify(
                self._notifier,
                Template.TEST_INVITATION,
                application,
                testCount=len(summary.issued),
                testLinks="\n".join(f"{test.label}: {test.link}" for test in summary.issued),
                expiryHours=self._config.token_ttl_hours,
            )

        self._logger.info(
            "assignment.completed",
            application_id=application_id,
            issued=len(summary.issued),
            no_test_available=len(summary.no_test_available),
            failed=len(summary.failed),
        )
        return summary

    def _assign_one(
        self,
        combination: TestCombination,
        difficulty: Difficulty,
    ) -> IssuedTest | str | None:
        """Returns the issued test, ``"no_test"``, or ``None`` if another worker claimed it."""
        candidates = self._store.list_library_entries(
            source_language=combination.source_language,
            target_language=combination.target_language,
            domain=combination.domain,
            service_type=combination.service_type,
        )
        ranked = rank_entries(candidates, difficulty)
        if not ranked:
            marked = self._store.update_combination(
                combination.id,
                {"status": CombinationStatus.NO_TEST_AVAILABLE},
                expected_status={CombinationStatus.PENDING},
            )
            if marked is None:
                return None
            self._logger.warning(
                "assignment.no_test_available",
                combination_id=combination.id,
                combination=combination.label,
            )
            return "no_test"

        entry = ranked[0]
        claimed = self._store.update_combination(
            combination.id,
            {"status": CombinationStatus.TEST_ASSIGNED, "test_id": entry.id},
            expected_status={CombinationStatus.PENDING},
        )
        if claimed is None:
            return None

        now = self._now()
        try:
            submission = self._store.insert_submission(
                TestSubmission(
                    id=uuid.uuid4().hex,
                    combination_id=combination.id,
                    application_id=combination.application_id,
                    test_id=entry.id,
                    token=secrets.token_urlsafe(32),
                    token_expires_at=now + timedelta(hours=self._config.token_ttl_hours),
                    created_at=now,
                    updated_at=now,
                )
            )
            sent = self._store.update_combination(
                combination.id,
                {"status": CombinationStatus.TEST_SENT, "submission_id": submission.id},
                expected_status={CombinationStatus.TEST_ASSIGNED},
            )
            if sent is None:
                raise ConflictError(f"Combination {combination.id!r} changed during assignment")
        except Exception:
            # Release the claim so a later run picks the combination up again.
            self._store.update_combination(
                combination.id,
                {"status": CombinationStatus.PENDING, "test_id": None},
                expected_status={CombinationStatus.TEST_ASSIGNED},
            )
            raise
        self._store.increment_library_usage(entry.id, now)
        return IssuedTest(
            combination_id=combination.id,
            submission_id=submission.id,
            test_id=entry.id,
            label=combination.label,
            link=self.test_link(submission.token),
        )

    def _preferred_difficulty(self, judgment: Any) -> Difficulty:
        if isinstance(judgment, SkillsProviderPrescreen):
            return Difficulty(judgment.suggested_test_difficulty)
        return self._config.default_difficulty

    def _mark_tests_sent(self, application_id: str) -> None:
        application = self._lifecycle.load(application_id)
        if application.status == ApplicationStatus.TEST_SENT:
            return
        if not can_transition(application.status, ApplicationStatus.TEST_SENT):
            self._logger.info(
                "assignment.status_kept",
                application_id=application_id,
                status=application.status.value,
            )
            return
        self._lifecycle.transition(application_id, ApplicationStatus.TEST_SENT, reason="tests issued")

    # Redemption

    def resolve_token(self, token: str) -> TestView:
        submission = self._open_submission(token)
        entry = self._store.get_library_entry(submission.test_id)
        if entry is None:
            raise NotFoundError("Test content not found.")

        now = self._now()
        changes: dict[str, Any] = {"view_count": submission.view_count + 1}
        if submission.first_viewed_at is None:
            changes["first_viewed_at"] = now
        if submission.status == SubmissionStatus.SENT:
            changes["status"] = SubmissionStatus.VIEWED
        updated = self._store.update_submission(
            submission.id,
            changes,
            expected_status=OPEN_SUBMISSION_STATUSES,
        )
        if updated is None:
            self._raise_closed(submission.id)

        application = self._store.get_application(submission.application_id)
        remaining = max(submission.token_expires_at - now, timedelta(0))
        total_minutes = int(remaining.total_seconds() // 60)
        is_lqa = entry.service_type == ServiceType.LQA_REVIEW
        self._logger.info("token.resolved", submission_id=submission.id, views=updated.view_count)
        return TestView(
            submission_id=updated.id,
            token=updated.token,
            title=entry.title,
            service_type=entry.service_type,
            domain=entry.domain,
            difficulty=entry.difficulty,
            source_language=entry.source_language,
            target_language=entry.target_language,
            source_text=entry.source_text,
            instructions=entry.instructions,
            applicant_name=application.full_name if application is not None else "",
            expires_at=updated.token_expires_at,
            remaining_hours=total_minutes // 60,
            remaining_minutes=total_minutes % 60,
            draft_content=updated.draft_content,
            draft_last_saved_at=updated.draft_last_saved_at,
            lqa_source_translation=entry.lqa_source_translation if is_lqa else None,
            mqm_dimensions=entry.mqm_dimensions if is_lqa else None,
        )

    def save_draft(self, token: str, content: str) -> TestSubmission:
        if not isinstance(content, str):
            raise InputValidationError("Draft content must be text.")
        submission = self._open_submission(token)
        changes: dict[str, Any] = {
            "draft_content": content,
            "draft_last_saved_at": self._now(),
        }
        if submission.status in (SubmissionStatus.SENT, SubmissionStatus.VIEWED):
            changes["status"] = SubmissionStatus.DRAFT_SAVED
        updated = self._store.update_submission(
            submission.id,
            changes,
            expected_status=OPEN_SUBMISSION_STATUSES,
        )
        if updated is None:
            self._raise_closed(submission.id)
        return updated

    def submit_test(self, token: str, content: str, notes: str | None = None) -> TestSubmission:
        if not isinstance(content, str) or not content.strip():
            raise InputValidationError("Submitted content is required.")
        submission = self._open_submission(token)
        now = self._now()
        updated = self._store.update_submission(
            submission.id,
            {
                "status": SubmissionStatus.SUBMITTED,
                "submitted_content": content,
                "submitted_notes": notes,
                "submitted_at": now,
                "draft_content": content,
            },
            expected_status=OPEN_SUBMISSION_STATUSES,
        )
        if updated is None:
            self._raise_closed(submission.id)

        self._store.update_combination(
            submission.combination_id,
            {"status": CombinationStatus.TEST_SUBMITTED},
            expected_status={CombinationStatus.TEST_SENT},
        )
        self._lifecycle.record_test_submitted(submission.application_id)
        application = self._store.get_application(submission.application_id)
        if application is not None:
            notify(self._notifier, Template.TEST_RECEIVED, application)
        self._tasks.enqueue(ASSESS_SUBMISSION, submission_id=submission.id)
        self._logger.info(
            "test.submitted",
            submission_id=submission.id,
            application_id=submission.application_id,
        )
        return updated

    def _open_submission(self, token: str) -> TestSubmission:
        if not token:
            raise InputValidationError("Token is required.")
        submission = self._store.find_submission_by_token(token)
        if submission is None:
            raise NotFoundError()
        self._check_open(submission)
        return submission

    def _check_open(self, submission: TestSubmission) -> None:
        if submission.status in COMPLETED_SUBMISSION_STATUSES:
            raise AlreadySubmittedError()
        if submission.status == SubmissionStatus.EXPIRED:
            raise TokenExpiredError()
        if self._now() > submission.token_expires_at:
            self._store.update_submission(
                submission.id,
                {"status": SubmissionStatus.EXPIRED},
                expected_status=OPEN_SUBMISSION_STATUSES,
            )
            self._logger.info("token.expired_lazily", submission_id=submission.id)
            raise TokenExpiredError()

    def _raise_closed(self, submission_id: str) -> NoReturn:
        """Re-check a submission whose conditional write just failed."""
        current = self._store.get_submission(submission_id)
        if current is None:
            raise NotFoundError()
        self._check_open(current)
        raise ConflictError("The test changed while the request was processed.")
