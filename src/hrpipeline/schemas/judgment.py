"""Structured judgments returned by the scoring oracle.

Each oracle response is validated against one of the shapes below. The
``kind`` field is the explicit discriminant; it is stamped by the caller
that knows which prompt was issued, never inferred from the payload keys.
"""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

Rating = Literal["high", "medium", "low"]
Strength = Literal["strong", "partial", "weak"]
Confidence = Literal["high", "medium", "low"]


class SkillsProviderPrescreen(BaseModel):
    """Prescreen judgment for a skills-provider profile."""

    kind: Literal["skills_provider_prescreen"] = "skills_provider_prescreen"
    overall_score: float = Field(ge=0, le=100)
    recommendation: Literal["proceed", "staff_review", "reject"]
    demand_match: Rating
    certification_quality: Literal["high", "medium", "low", "none"]
    experience_consistency: Rating
    sample_quality: Literal["high", "medium", "low", "not_provided"] = "not_provided"
    rate_expectation_assessment: Literal[
        "within_band", "above_band", "below_band", "not_provided"
    ] = "not_provided"
    red_flags: list[str] = Field(default_factory=list)
    notes: str = ""
    suggested_test_difficulty: Literal["beginner", "intermediate", "advanced"] = "intermediate"
    suggested_test_types: list[str] = Field(default_factory=list)
    suggested_tier: Literal["standard", "senior", "expert"] | None = None

    model_config = ConfigDict(extra="ignore")


class ConsultantPrescreen(BaseModel):
    """Prescreen judgment for a domain consultant; always advisory."""

    kind: Literal["consultant_prescreen"] = "consultant_prescreen"
    overall_score: float = Field(ge=0, le=100)
    recommendation: Literal["staff_review"] = "staff_review"
    coa_instrument_experience: Strength
    guideline_familiarity: Strength
    interviewing_skills: Strength
    language_fluency: Strength
    report_writing_experience: Strength
    red_flags: list[str] = Field(default_factory=list)
    notes: str = ""

    model_config = ConfigDict(extra="ignore")


class DimensionScores(BaseModel):
    accuracy: float = Field(ge=0, le=100)
    fluency: float = Field(ge=0, le=100)
    terminology: float = Field(ge=0, le=100)
    formatting: float = Field(ge=0, le=100)
    certification_readiness: float = Field(ge=0, le=100)


class AnnotatedError(BaseModel):
    category: str
    severity: Literal["minor", "major", "critical"]
    location: str = ""
    note: str = ""


class TranslationAssessment(BaseModel):
    """Assessment of a translation or translation+review submission."""

    kind: Literal["translation_assessment"] = "translation_assessment"
    overall_score: float = Field(ge=0, le=100)
    passed: bool = Field(default=False, alias="pass")
    dimension_scores: DimensionScores
    errors: list[AnnotatedError] = Field(default_factory=list)
    strengths: list[str] = Field(default_factory=list)
    feedback_draft: str = ""
    suggested_tier: Literal["standard", "senior", "expert"] | None = None
    confidence: Confidence = "medium"

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class LqaAssessment(BaseModel):
    """Assessment of an LQA review submission against the answer key."""

    kind: Literal["lqa_assessment"] = "lqa_assessment"
    overall_score: float = Field(ge=0, le=100)
    passed: bool = Field(default=False, alias="pass")
    errors_identified_correctly: int = Field(ge=0)
    errors_missed: int = Field(ge=0)
    false_positives: int = Field(ge=0)
    category_accuracy: float = Field(ge=0, le=100)
    severity_accuracy: float = Field(ge=0, le=100)
    comment_quality: float = Field(ge=0, le=100)
    detailed_feedback: str = ""
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
    confidence: Confidence = "medium"

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class FallbackJudgment(BaseModel):
    """Marker stored when the oracle could not produce a usable judgment."""

    kind: Literal["fallback"] = "fallback"
    error: Literal["ai_fallback"] = "ai_fallback"
    reason: str
    attempts: int = 2


Judgment = Annotated[
    Union[
        SkillsProviderPrescreen,
        ConsultantPrescreen,
        TranslationAssessment,
        LqaAssessment,
        FallbackJudgment,
    ],
    Field(discriminator="kind"),
]

JUDGMENT_ADAPTER: TypeAdapter[Judgment] = TypeAdapter(Judgment)


def is_fallback(judgment: object) -> bool:
    return isinstance(judgment, FallbackJudgment)


__all__ = [
    "AnnotatedError",
    "ConsultantPrescreen",
    "DimensionScores",
    "FallbackJudgment",
    "JUDGMENT_ADAPTER",
    "Judgment",
    "LqaAssessment",
    "SkillsProviderPrescreen",
    "TranslationAssessment",
    "is_fallback",
]
