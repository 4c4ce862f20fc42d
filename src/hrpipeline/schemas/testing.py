"""Skills-test entities: combinations, submissions and the test library."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .judgment import Judgment
from .status import CombinationStatus, Difficulty, ServiceType, SubmissionStatus


class TestCombination(BaseModel):
    """One (source, target, domain, service) unit owned by an application."""

    __test__ = False

    id: str
    application_id: str
    source_language: str
    target_language: str
    domain: str
    service_type: ServiceType
    status: CombinationStatus = CombinationStatus.PENDING
    test_id: str | None = None
    submission_id: str | None = None
    score: float | None = None
    score_detail: Judgment | None = None
    approved_at: datetime | None = None
    token_expired_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(extra="forbid")

    @property
    def label(self) -> str:
        return (
            f"{self.source_language} → {self.target_language} "
            f"({self.domain}, {self.service_type.value})"
        )


class TestSubmission(BaseModel):
    """Issued test token and everything the applicant did with it."""

    __test__ = False

    id: str
    combination_id: str
    application_id: str
    test_id: str
    token: str
    token_expires_at: datetime
    status: SubmissionStatus = SubmissionStatus.SENT
    draft_content: str | None = None
    draft_last_saved_at: datetime | None = None
    first_viewed_at: datetime | None = None
    view_count: int = 0
    submitted_content: str | None = None
    submitted_notes: str | None = None
    submitted_at: datetime | None = None
    score: float | None = None
    score_detail: Judgment | None = None
    assessed_at: datetime | None = None
    reminder_day2_sent_at: datetime | None = None
    reminder_day3_sent_at: datetime | None = None
    reminder_day7_sent_at: datetime | None = None
    archival_checked_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(extra="forbid")


class TestLibraryEntry(BaseModel):
    """Reusable test definition."""

    __test__ = False

    id: str
    title: str
    source_language: str
    target_language: str
    domain: str
    service_type: ServiceType
    difficulty: Difficulty = Difficulty.INTERMEDIATE
    source_text: str | None = None
    instructions: str | None = None
    reference_translation: str | None = None
    lqa_source_translation: str | None = None
    lqa_answer_key: list[dict[str, Any]] = Field(default_factory=list)
    mqm_dimensions: list[str] = Field(default_factory=list)
    rubric: str | None = None
    is_active: bool = True
    times_used: int = 0
    last_used_at: datetime | None = None
    pass_count: int = 0
    fail_count: int = 0

    model_config = ConfigDict(extra="forbid")

    def matches(self, combination: TestCombination) -> bool:
        return (
            self.is_active
            and self.source_language == combination.source_language
            and self.target_language == combination.target_language
            and self.domain == combination.domain
            and self.service_type == combination.service_type
        )


class TestView(BaseModel):
    """Applicant-facing test content; never carries reference material."""

    __test__ = False

    submission_id: str
    token: str
    title: str
    service_type: ServiceType
    domain: str
    difficulty: Difficulty
    source_language: str
    target_language: str
    source_text: str | None = None
    instructions: str | None = None
    applicant_name: str = ""
    expires_at: datetime
    remaining_hours: int
    remaining_minutes: int
    draft_content: str | None = None
    draft_last_saved_at: datetime | None = None
    lqa_source_translation: str | None = None
    mqm_dimensions: list[str] | None = None
