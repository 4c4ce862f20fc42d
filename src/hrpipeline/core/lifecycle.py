"""Application lifecycle: status transitions, prescreen routing and aggregation."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable

import pendulum
import structlog

from ..audit import AuditLogger
from ..errors import NotFoundError
from ..notifications import NotificationSink, Template, notify
from ..schemas import (
    ApplicantCategory,
    Application,
    ApplicationStatus,
    CombinationStatus,
    RejectionEmailStatus,
    RejectionWorkflow,
    SkillsProviderPrescreen,
    SkillsProviderProfile,
    TestCombination,
    Tier,
)
from ..store import EntityStore
from ..tasks import ASSESS_SUBMISSION, ASSIGN_TESTS, PRESCREEN, TaskQueue
from .assessment import AssessmentOrchestrator
from .states import aggregate_status, can_transition, ensure_transition

# Statuses in which automated test aggregation may still move the application.
TEST_PHASE_STATUSES: frozenset[ApplicationStatus] = frozenset(
    {
        ApplicationStatus.TEST_SENT,
        ApplicationStatus.TEST_IN_PROGRESS,
        ApplicationStatus.TEST_SUBMITTED,
    }
)

AWAITING_SUBMISSION: frozenset[CombinationStatus] = frozenset(
    {
        CombinationStatus.PENDING,
        CombinationStatus.TEST_ASSIGNED,
        CombinationStatus.TEST_SENT,
    }
)


@dataclass
class LifecycleConfig:
    """Prescreen thresholds and rejection cooldown."""

    prescreen_pass_threshold: float = 70.0
    prescreen_review_threshold: float = 50.0
    cooldown_days: int = 180


def queued_rejection(
    reason: str,
    now: datetime,
    cooldown_days: int,
    *,
    email_draft: str | None = None,
) -> RejectionWorkflow:
    """Rejection record with the email held in the intercept queue."""
    return RejectionWorkflow(
        reason=reason,
        email_status=RejectionEmailStatus.QUEUED,
        email_draft=email_draft,
        queued_at=now,
        cooldown_until=now + timedelta(days=cooldown_days),
    )


def expand_combinations(application: Application, now: datetime) -> list[TestCombination]:
    """One pending combination per (pair, domain, service) tuple.

    Duplicate tuples declared in the profile collapse into one combination.
    """
    profile = application.profile
    if not isinstance(profile, SkillsProviderProfile):
        return []
    seen: dict[tuple[str, str, str, str], TestCombination] = {}
    for pair in profile.language_pairs:
        for domain in pair.domains:
            for service in profile.services_offered:
                key = (pair.source_language, pair.target_language, domain, service.value)
                if key in seen:
                    continue
                seen[key] = TestCombination(
                    id=uuid.uuid4().hex,
                    application_id=application.id,
                    source_language=pair.source_language,
                    target_language=pair.target_language,
                    domain=domain,
                    service_type=service,
                    created_at=now,
                    updated_at=now,
                )
    return list(seen.values())


class ApplicationLifecycle:
    """Drive an application through its status table.

    Every status write is a compare-and-set against the status read just
    before it, so two writers racing on the same application cannot both
    succeed. Each committed transition is appended to the audit log.
    """

    def __init__(
        self,
        store: EntityStore,
        orchestrator: AssessmentOrchestrator,
        tasks: TaskQueue,
        notifier: NotificationSink,
        *,
        config: LifecycleConfig | None = None,
        audit_logger: AuditLogger | None = None,
        now_provider: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._orchestrator = orchestrator
        self._tasks = tasks
        self._notifier = notifier
        self._config = config or LifecycleConfig()
        self._audit = audit_logger
        self._now = now_provider or (lambda: pendulum.now("UTC"))
        self._logger = structlog.get_logger(__name__)

    @property
    def config(self) -> LifecycleConfig:
        return self._config

    def register_handlers(self) -> None:
        self._tasks.register(PRESCREEN, self.run_prescreen)
        self._tasks.register(ASSESS_SUBMISSION, self.assess_submission)

    def load(self, application_id: str) -> Application:
        application = self._store.get_application(application_id)
        if application is None:
            raise NotFoundError(f"Application {application_id!r} not found")
        return application

    def transition(
        self,
        application_id: str,
        target: ApplicationStatus,
        changes: dict[str, Any] | None = None,
        *,
        reason: str | None = None,
        actor: str = "system",
        where: dict[str, Any] | None = None,
    ) -> Application | None:
        """Move an application to ``target``.

        Raises :class:`InvalidTransitionError` when the table forbids the
        move from the current status. Returns ``None`` when another writer
        changed the status between the read and the write.
        """
        current = self.load(application_id)
        ensure_transition(current.status, target)
        update = dict(changes or {})
        update["status"] = target
        updated = self._store.update_application(
            application_id,
            update,
            expected_status={current.status},
            where=where,
        )
        if updated is None:
            self._logger.info(
                "application.transition_lost",
                application_id=application_id,
                source=current.status.value,
                target=target.value,
            )
            return None
        self._logger.info(
            "application.transition",
            application_id=application_id,
            source=current.status.value,
            target=target.value,
            actor=actor,
        )
        if self._audit is not None:
            self._audit.append(
                {
                    "event": "status_changed",
                    "application_id": application_id,
                    "application_number": updated.application_number,
                    "from": current.status.value,
                    "to": target.value,
                    "actor": actor,
                    "reason": reason,
                    "at": self._now().isoformat(),
                }
            )
        return updated

    def on_application_created(self, application: Application) -> list[TestCombination]:
        """Expand test combinations and hand the application to prescreen."""
        combinations = self._store.insert_combinations(
            expand_combinations(application, self._now())
        )
        self._logger.info(
            "application.created",
            application_id=application.id,
            application_number=application.application_number,
            category=application.category.value,
            combinations=len(combinations),
        )
        self._tasks.enqueue(PRESCREEN, application_id=application.id)
        return combinations

    def run_prescreen(self, application_id: str) -> Application:
        application = self.load(application_id)
        if application.status == ApplicationStatus.SUBMITTED:
            started = self.transition(application_id, ApplicationStatus.PRESCREENING)
            if started is None:
                return self.load(application_id)
            application = started
        elif application.status != ApplicationStatus.PRESCREENING:
            self._logger.info(
                "prescreen.skipped",
                application_id=application_id,
                status=application.status.value,
            )
            return application

        outcome = self._orchestrator.prescreen(application)
        now = self._now()
        target = self._route_prescreen(application, outcome.score, outcome.fell_back)
        changes: dict[str, Any] = {
            "score": outcome.score,
            "score_detail": outcome.judgment,
            "prescreened_at": now,
        }
        judgment = outcome.judgment
        if isinstance(judgment, SkillsProviderPrescreen) and judgment.suggested_tier:
            changes["assigned_tier"] = Tier(judgment.suggested_tier)
        if target == ApplicationStatus.REJECTED:
            changes["rejection"] = queued_rejection(
                f"Prescreen score: {outcome.score:g}/100",
                now,
                self._config.cooldown_days,
            )

        updated = self.transition(
            application_id,
            target,
            changes,
            reason="prescreen fallback" if outcome.fell_back else f"prescreen score {outcome.score}",
        )
        if updated is None:
            return self.load(application_id)

        self._logger.info(
            "prescreen.routed",
            application_id=application_id,
            score=outcome.score,
            status=target.value,
            fallback=outcome.fell_back,
        )
        if target == ApplicationStatus.PRESCREENED:
            notify(self._notifier, Template.PRESCREEN_PASSED, updated)
            self._tasks.enqueue(ASSIGN_TESTS, application_id=application_id)
        elif target == ApplicationStatus.STAFF_REVIEW:
            notify(self._notifier, Template.UNDER_REVIEW, updated)
        return updated

    def _route_prescreen(
        self,
        application: Application,
        score: float | None,
        fell_back: bool,
    ) -> ApplicationStatus:
        if fell_back or score is None:
            return ApplicationStatus.STAFF_REVIEW
        if application.category == ApplicantCategory.DOMAIN_CONSULTANT:
            return ApplicationStatus.STAFF_REVIEW
        if score >= self._config.prescreen_pass_threshold:
            return ApplicationStatus.PRESCREENED
        if score >= self._config.prescreen_review_threshold:
            return ApplicationStatus.STAFF_REVIEW
        return ApplicationStatus.REJECTED

    def record_test_submitted(self, application_id: str) -> Application | None:
        application = self.load(application_id)
        combinations = self._store.list_combinations(application_id)
        if any(combination.status in AWAITING_SUBMISSION for combination in combinations):
            target = ApplicationStatus.TEST_IN_PROGRESS
        else:
            target = ApplicationStatus.TEST_SUBMITTED
        if application.status == target:
            return application
        if application.status not in TEST_PHASE_STATUSES or not can_transition(
            application.status, target
        ):
            self._logger.info(
                "application.submit_not_tracked",
                application_id=application_id,
                status=application.status.value,
            )
            return application
        return self.transition(application_id, target, reason="test submitted")

    def assess_submission(self, submission_id: str) -> ApplicationStatus | None:
        """Assess one submission, then recompute its application."""
        result = self._orchestrator.assess_submission(submission_id)
        if result is None:
            return None
        return self.recompute_from_combinations(result.application_id)

    def recompute_from_combinations(self, application_id: str) -> ApplicationStatus | None:
        """Re-derive the application status from its combinations.

        Only applications still in the test phase are moved; staff decisions
        are never overwritten. Returns the new status, or ``None`` when
        nothing was written.
        """
        application = self.load(application_id)
        if application.status not in TEST_PHASE_STATUSES:
            return None
        combinations = self._store.list_combinations(application_id)
        target = aggregate_status(combination.status for combination in combinations)
        if target is None:
            if not combinations:
                return None
            target = ApplicationStatus.TEST_IN_PROGRESS
        if application.status == target or not can_transition(application.status, target):
            return None

        changes: dict[str, Any] = {}
        reason = "combinations aggregated"
        if target == ApplicationStatus.REJECTED:
            scores = [c.score for c in combinations if c.score is not None]
            highest = f"{max(scores):g}" if scores else "n/a"
            reason = (
                "All test combinations scored below threshold. "
                f"Highest score: {highest}"
            )
            changes["rejection"] = queued_rejection(reason, self._now(), self._config.cooldown_days)

        updated = self.transition(application_id, target, changes, reason=reason)
        if updated is None:
            return None
        if target == ApplicationStatus.STAFF_REVIEW:
            notify(self._notifier, Template.UNDER_REVIEW, updated)
        self._logger.info(
            "application.recomputed",
            application_id=application_id,
            status=target.value,
        )
        return target
