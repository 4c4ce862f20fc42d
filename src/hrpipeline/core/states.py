"""Application status transition table."""

from __future__ import annotations

from typing import Iterable

from ..errors import InvalidTransitionError
from ..schemas import ApplicationStatus, CombinationStatus
from ..schemas.status import TERMINAL_COMBINATION_STATUSES

S = ApplicationStatus

STAFF_DECISIONS: frozenset[ApplicationStatus] = frozenset(
    {S.APPROVED, S.REJECTED, S.WAITLISTED, S.INFO_REQUESTED, S.ARCHIVED}
)

_AUTOMATED: dict[ApplicationStatus, frozenset[ApplicationStatus]] = {
    S.SUBMITTED: frozenset({S.PRESCREENING}),
    S.PRESCREENING: frozenset({S.PRESCREENED, S.STAFF_REVIEW, S.REJECTED}),
    S.PRESCREENED: frozenset({S.TEST_SENT}),
    S.TEST_SENT: frozenset(
        {
            S.TEST_IN_PROGRESS,
            S.TEST_SUBMITTED,
            S.TEST_ASSESSED,
            S.STAFF_REVIEW,
            S.REJECTED,
            S.ARCHIVED,
        }
    ),
    S.TEST_IN_PROGRESS: frozenset(
        {S.TEST_SUBMITTED, S.TEST_ASSESSED, S.STAFF_REVIEW, S.REJECTED, S.ARCHIVED}
    ),
    S.TEST_SUBMITTED: frozenset(
        {S.TEST_IN_PROGRESS, S.TEST_ASSESSED, S.STAFF_REVIEW, S.REJECTED}
    ),
}

# Staff decisions may be taken from any state other than the decision itself.
APPLICATION_TRANSITIONS: dict[ApplicationStatus, frozenset[ApplicationStatus]] = {
    status: _AUTOMATED.get(status, frozenset()) | (STAFF_DECISIONS - {status})
    for status in ApplicationStatus
}


def can_transition(current: ApplicationStatus, target: ApplicationStatus) -> bool:
    return target in APPLICATION_TRANSITIONS[current]


def sources_for(target: ApplicationStatus) -> frozenset[ApplicationStatus]:
    """Statuses from which ``target`` may be entered."""
    return frozenset(
        status for status, targets in APPLICATION_TRANSITIONS.items() if target in targets
    )


def ensure_transition(current: ApplicationStatus, target: ApplicationStatus) -> None:
    if not can_transition(current, target):
        raise InvalidTransitionError(current.value, target.value)


def aggregate_status(statuses: Iterable[CombinationStatus]) -> ApplicationStatus | None:
    """Aggregate application status from its combinations' statuses.

    Returns ``None`` while any combination is still open, which leaves the
    application where it is (normally ``test_in_progress``).
    """
    statuses = list(statuses)
    if not statuses or any(status not in TERMINAL_COMBINATION_STATUSES for status in statuses):
        return None
    if any(status == CombinationStatus.ASSESSED for status in statuses):
        return S.STAFF_REVIEW
    counted = [
        status
        for status in statuses
        if status not in (CombinationStatus.SKIPPED, CombinationStatus.NO_TEST_AVAILABLE)
    ]
    if not counted:
        # Nothing was actually tested. Going to staff review here departs from
        # the literal all-rejected rule, which is vacuously true for an empty set.
        return S.STAFF_REVIEW
    if all(status == CombinationStatus.REJECTED for status in counted):
        return S.REJECTED
    return S.TEST_ASSESSED
