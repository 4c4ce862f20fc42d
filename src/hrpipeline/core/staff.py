"""Human review actions on applications and combinations."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Callable

import pendulum
import structlog

from ..errors import ConflictError, InputValidationError, NotFoundError
from ..notifications import NotificationSink, Template, notify
from ..schemas import (
    Application,
    ApplicationStatus,
    CombinationStatus,
    NegotiationEvent,
    RejectionEmailStatus,
    TestCombination,
    Tier,
)
from ..store import EntityStore
from .lifecycle import ApplicationLifecycle, queued_rejection
from .states import STAFF_DECISIONS

DECISION_TEMPLATES: dict[ApplicationStatus, Template] = {
    ApplicationStatus.APPROVED: Template.APPROVED,
    ApplicationStatus.WAITLISTED: Template.WAITLISTED,
    ApplicationStatus.INFO_REQUESTED: Template.INFO_REQUESTED,
}

SKIPPABLE: frozenset[CombinationStatus] = frozenset(
    {
        CombinationStatus.PENDING,
        CombinationStatus.NO_TEST_AVAILABLE,
        CombinationStatus.TEST_SENT,
        CombinationStatus.ASSESSED,
    }
)


class StaffActions:
    """Decisions and bookkeeping performed by reviewers.

    Rejection emails are queued rather than sent; the follow-up sweep
    delivers them once the intercept window has passed.
    """

    def __init__(
        self,
        store: EntityStore,
        lifecycle: ApplicationLifecycle,
        notifier: NotificationSink,
        *,
        rejection_hold_hours: int = 48,
        now_provider: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._lifecycle = lifecycle
        self._notifier = notifier
        self._rejection_hold = timedelta(hours=rejection_hold_hours)
        self._now = now_provider or (lambda: pendulum.now("UTC"))
        self._logger = structlog.get_logger(__name__)

    def decide(
        self,
        application_id: str,
        decision: ApplicationStatus,
        *,
        reason: str | None = None,
        notes: str | None = None,
        actor: str = "staff",
    ) -> Application:
        if decision not in STAFF_DECISIONS:
            raise InputValidationError(f"{decision.value!r} is not a staff decision.")
        application = self._lifecycle.load(application_id)
        if application.status == decision:
            raise ConflictError(f"Application is already {decision.value}.")

        now = self._now()
        changes: dict[str, Any] = {"staff_reviewed_at": now}
        where = None
        if decision == ApplicationStatus.REJECTED:
            changes["rejection"] = queued_rejection(
                reason or "Rejected after staff review",
                now,
                self._lifecycle.config.cooldown_days,
                email_draft=application.rejection.email_draft,
            )
        elif application.status == ApplicationStatus.REJECTED:
            # Reversing a rejection drops the cooldown and any unsent email.
            rejection = application.rejection
            email_status = rejection.email_status
            if email_status == RejectionEmailStatus.QUEUED:
                email_status = RejectionEmailStatus.INTERCEPTED
            changes["rejection"] = rejection.model_copy(
                update={"cooldown_until": None, "email_status": email_status}
            )
            where = {"rejection.email_status": rejection.email_status}
        if decision == ApplicationStatus.WAITLISTED and notes:
            changes["waitlist_notes"] = notes

        updated = self._lifecycle.transition(
            application_id,
            decision,
            changes,
            reason=reason,
            actor=actor,
            where=where,
        )
        if updated is None:
            raise ConflictError("Application changed while the decision was recorded.")
        template = DECISION_TEMPLATES.get(decision)
        if template is not None:
            params = {"message": notes} if notes and decision == ApplicationStatus.INFO_REQUESTED else {}
            notify(self._notifier, template, updated, **params)
        self._logger.info(
            "staff.decision",
            application_id=application_id,
            decision=decision.value,
            actor=actor,
        )
        return updated

    def approve(self, application_id: str, *, actor: str = "staff") -> Application:
        return self.decide(application_id, ApplicationStatus.APPROVED, actor=actor)

    def reject(self, application_id: str, reason: str, *, actor: str = "staff") -> Application:
        return self.decide(application_id, ApplicationStatus.REJECTED, reason=reason, actor=actor)

    def waitlist(self, application_id: str, notes: str | None = None, *, actor: str = "staff") -> Application:
        return self.decide(application_id, ApplicationStatus.WAITLISTED, notes=notes, actor=actor)

    def request_info(self, application_id: str, message: str | None = None, *, actor: str = "staff") -> Application:
        return self.decide(application_id, ApplicationStatus.INFO_REQUESTED, notes=message, actor=actor)

    def archive(self, application_id: str, *, actor: str = "staff") -> Application:
        return self.decide(application_id, ApplicationStatus.ARCHIVED, actor=actor)

    def override_tier(self, application_id: str, tier: Tier) -> Application:
        return self._update(
            application_id,
            {"assigned_tier": Tier(tier), "tier_override_at": self._now()},
        )

    def add_note(self, application_id: str, note: str) -> Application:
        if not note.strip():
            raise InputValidationError("Note must not be empty.")
        application = self._lifecycle.load(application_id)
        stamped = f"[{self._now().isoformat()}] {note.strip()}"
        notes = f"{application.staff_notes}\n{stamped}" if application.staff_notes else stamped
        return self._update(application_id, {"staff_notes": notes})

    def save_rejection_draft(self, application_id: str, draft: str) -> Application:
        application = self._lifecycle.load(application_id)
        if application.rejection.email_status == RejectionEmailStatus.SENT:
            raise ConflictError("Rejection email has already been sent.")
        rejection = application.rejection.model_copy(update={"email_draft": draft})
        updated = self._store.update_application(
            application_id,
            {"rejection": rejection},
            where={"rejection.email_status": application.rejection.email_status},
        )
        if updated is None:
            raise ConflictError("Rejection email changed while the draft was saved.")
        return updated

    def intercept_rejection(self, application_id: str) -> Application:
        """Stop a queued rejection email during its hold window."""
        application = self._lifecycle.load(application_id)
        rejection = application.rejection
        if rejection.email_status != RejectionEmailStatus.QUEUED or rejection.queued_at is None:
            raise ConflictError("No queued rejection email to intercept.")
        if self._now() > rejection.queued_at + self._rejection_hold:
            raise ConflictError("The rejection hold window has passed.")
        updated = self._store.update_application(
            application_id,
            {"rejection": rejection.model_copy(update={"email_status": RejectionEmailStatus.INTERCEPTED})},
            where={"rejection.email_status": RejectionEmailStatus.QUEUED},
        )
        if updated is None:
            raise ConflictError("Rejection email is no longer queued.")
        self._logger.info("staff.rejection_intercepted", application_id=application_id)
        return updated

    def log_negotiation_event(
        self,
        application_id: str,
        event: str,
        *,
        amount: float | None = None,
        final_amount: float | None = None,
        notes: str | None = None,
    ) -> Application:
        application = self._lifecycle.load(application_id)
        entry = NegotiationEvent(
            event=event,
            amount=amount,
            final_amount=final_amount,
            notes=notes,
            timestamp=self._now(),
        )
        return self._update(
            application_id,
            {"negotiation_log": [*application.negotiation_log, entry]},
        )

    def skip_combination(self, combination_id: str) -> TestCombination:
        combination = self._load_combination(combination_id)
        skipped = self._store.update_combination(
            combination_id,
            {"status": CombinationStatus.SKIPPED},
            expected_status=SKIPPABLE,
        )
        if skipped is None:
            raise ConflictError(f"Combination cannot be skipped from {combination.status.value!r}.")
        self._lifecycle.recompute_from_combinations(combination.application_id)
        return skipped

    def decide_combination(self, combination_id: str, *, approved: bool) -> TestCombination:
        """Resolve a borderline combination left in ``assessed``."""
        self._load_combination(combination_id)
        changes: dict[str, Any] = {
            "status": CombinationStatus.APPROVED if approved else CombinationStatus.REJECTED
        }
        if approved:
            changes["approved_at"] = self._now()
        updated = self._store.update_combination(
            combination_id,
            changes,
            expected_status={CombinationStatus.ASSESSED},
        )
        if updated is None:
            raise ConflictError("Only assessed combinations can be decided.")
        self._lifecycle.recompute_from_combinations(updated.application_id)
        return updated

    def _load_combination(self, combination_id: str) -> TestCombination:
        combination = self._store.get_combination(combination_id)
        if combination is None:
            raise NotFoundError(f"Combination {combination_id!r} not found")
        return combination

    def _update(self, application_id: str, changes: dict[str, Any]) -> Application:
        updated = self._store.update_application(application_id, changes)
        if updated is None:
            raise NotFoundError(f"Application {application_id!r} not found")
        return updated
