"""Status enumerations for pipeline entities."""

from __future__ import annotations

from enum import Enum


class ApplicantCategory(str, Enum):
    SKILLS_PROVIDER = "skills_provider"
    DOMAIN_CONSULTANT = "domain_consultant"


class ApplicationStatus(str, Enum):
    SUBMITTED = "submitted"
    PRESCREENING = "prescreening"
    PRESCREENED = "prescreened"
    TEST_SENT = "test_sent"
    TEST_IN_PROGRESS = "test_in_progress"
    TEST_SUBMITTED = "test_submitted"
    TEST_ASSESSED = "test_assessed"
    STAFF_REVIEW = "staff_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    WAITLISTED = "waitlisted"
    INFO_REQUESTED = "info_requested"
    ARCHIVED = "archived"


class CombinationStatus(str, Enum):
    PENDING = "pending"
    TEST_ASSIGNED = "test_assigned"
    NO_TEST_AVAILABLE = "no_test_available"
    TEST_SENT = "test_sent"
    TEST_SUBMITTED = "test_submitted"
    ASSESSED = "assessed"
    APPROVED = "approved"
    REJECTED = "rejected"
    SKIPPED = "skipped"


class SubmissionStatus(str, Enum):
    SENT = "sent"
    VIEWED = "viewed"
    DRAFT_SAVED = "draft_saved"
    SUBMITTED = "submitted"
    ASSESSED = "assessed"
    EXPIRED = "expired"


class ServiceType(str, Enum):
    TRANSLATION = "translation"
    TRANSLATION_REVIEW = "translation_review"
    LQA_REVIEW = "lqa_review"


class Difficulty(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class Tier(str, Enum):
    STANDARD = "standard"
    SENIOR = "senior"
    EXPERT = "expert"


class RejectionEmailStatus(str, Enum):
    QUEUED = "queued"
    INTERCEPTED = "intercepted"
    SENT = "sent"


# Submission states in which the token window is still open.
OPEN_SUBMISSION_STATUSES: frozenset[SubmissionStatus] = frozenset(
    {SubmissionStatus.SENT, SubmissionStatus.VIEWED, SubmissionStatus.DRAFT_SAVED}
)

COMPLETED_SUBMISSION_STATUSES: frozenset[SubmissionStatus] = frozenset(
    {SubmissionStatus.SUBMITTED, SubmissionStatus.ASSESSED}
)

TERMINAL_COMBINATION_STATUSES: frozenset[CombinationStatus] = frozenset(
    {
        CombinationStatus.APPROVED,
        CombinationStatus.REJECTED,
        CombinationStatus.ASSESSED,
        CombinationStatus.SKIPPED,
        CombinationStatus.NO_TEST_AVAILABLE,
    }
)
