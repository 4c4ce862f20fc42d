"""Pydantic schema definitions for pipeline entities."""

from __future__ import annotations

from .application import (
    ApplicantProfile,
    Application,
    ApplicationIntake,
    Certification,
    DomainConsultantProfile,
    LanguagePair,
    NegotiationEvent,
    RejectionWorkflow,
    SkillsProviderProfile,
)
from .judgment import (
    ConsultantPrescreen,
    FallbackJudgment,
    Judgment,
    LqaAssessment,
    SkillsProviderPrescreen,
    TranslationAssessment,
)
from .outbox import OutboxTask, TaskStatus
from .status import (
    ApplicantCategory,
    ApplicationStatus,
    CombinationStatus,
    Difficulty,
    RejectionEmailStatus,
    ServiceType,
    SubmissionStatus,
    Tier,
)
from .testing import TestCombination, TestLibraryEntry, TestSubmission, TestView

__all__ = [
    "ApplicantCategory",
    "ApplicantProfile",
    "Application",
    "ApplicationIntake",
    "ApplicationStatus",
    "Certification",
    "CombinationStatus",
    "ConsultantPrescreen",
    "Difficulty",
    "DomainConsultantProfile",
    "FallbackJudgment",
    "Judgment",
    "LanguagePair",
    "LqaAssessment",
    "NegotiationEvent",
    "OutboxTask",
    "RejectionEmailStatus",
    "RejectionWorkflow",
    "ServiceType",
    "SkillsProviderPrescreen",
    "SkillsProviderProfile",
    "SubmissionStatus",
    "TaskStatus",
    "TestCombination",
    "TestLibraryEntry",
    "TestSubmission",
    "TestView",
    "Tier",
    "TranslationAssessment",
]
