from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .judgment import Judgment
from .status import (
    ApplicantCategory,
    ApplicationStatus,
    RejectionEmailStatus,
    ServiceType,
    Tier,
)


class Certification(BaseModel):
    """Professional certification declared by the applicant."""

    name: str
    custom_name: str | None = None
    expiry_date: str | None = None

    model_config = ConfigDict(extra="forbid")


class LanguagePair(BaseModel):
    """Source/target pair with the domains the applicant works in."""

    source_language: str = Field(min_length=1)
    target_language: str = Field(min_length=1)
    domains: list[str] = Field(min_length=1)

    model_config = ConfigDict(extra="forbid")


class SkillsProviderProfile(BaseModel):
    """Profile fields for the skills-provider category."""

    category: Literal["skills_provider"] = "skills_provider"
    years_experience: int | None = Field(default=None, ge=0)
    education_level: str | None = None
    certifications: list[Certification] = Field(default_factory=list)
    cat_tools: list[str] = Field(default_factory=list)
    language_pairs: list[LanguagePair] = Field(min_length=1)
    services_offered: list[ServiceType] = Field(min_length=1)
    rate_expectation: float | None = Field(default=None, ge=0)
    notes: str | None = None

    model_config = ConfigDict(extra="forbid")


class DomainConsultantProfile(BaseModel):
    """Profile fields for the domain-consultant category."""

    category: Literal["domain_consultant"] = "domain_consultant"
    years_experience: int | None = Field(default=None, ge=0)
    education_level: str | None = None
    degree_field: str | None = None
    credentials: str | None = None
    native_language: str | None = None
    additional_languages: list[str] = Field(default_factory=list)
    instrument_types: list[str] = Field(default_factory=list)
    therapy_areas: list[str] = Field(default_factory=list)
    pharma_clients: str | None = None
    ispor_familiarity: str | None = None
    fda_familiarity: str | None = None
    prior_debrief_reports: bool = False
    availability: str | None = None
    rate_expectation: float | None = Field(default=None, ge=0)
    notes: str | None = None

    model_config = ConfigDict(extra="forbid")


ApplicantProfile = Annotated[
    Union[SkillsProviderProfile, DomainConsultantProfile],
    Field(discriminator="category"),
]


class ApplicationIntake(BaseModel):
    """Submission payload accepted from the application form."""

    full_name: str = Field(min_length=1)
    email: str
    country: str = Field(min_length=1)
    phone: str | None = None
    city: str | None = None
    linkedin_url: str | None = None
    referral_source: str | None = None
    profile: ApplicantProfile

    model_config = ConfigDict(extra="forbid")

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: str) -> str:
        value = value.strip()
        local, _, domain = value.partition("@")
        if not local or "." not in domain:
            raise ValueError("email must look like name@example.com")
        return value.lower()

    @property
    def category(self) -> ApplicantCategory:
        return ApplicantCategory(self.profile.category)


class NegotiationEvent(BaseModel):
    """Entry in the append-only rate negotiation log."""

    event: str
    amount: float | None = None
    final_amount: float | None = None
    notes: str | None = None
    timestamp: datetime


class RejectionWorkflow(BaseModel):
    reason: str | None = None
    email_status: RejectionEmailStatus | None = None
    email_draft: str | None = None
    queued_at: datetime | None = None
    cooldown_until: datetime | None = None


class Application(BaseModel):
    """One applicant submission and its pipeline state."""

    id: str
    application_number: str
    full_name: str
    email: str
    country: str
    phone: str | None = None
    city: str | None = None
    linkedin_url: str | None = None
    referral_source: str | None = None
    profile: ApplicantProfile
    status: ApplicationStatus = ApplicationStatus.SUBMITTED
    score: float | None = None
    score_detail: Judgment | None = None
    prescreened_at: datetime | None = None
    assigned_tier: Tier | None = None
    tier_override_at: datetime | None = None
    negotiation_log: list[NegotiationEvent] = Field(default_factory=list)
    staff_notes: str | None = None
    staff_reviewed_at: datetime | None = None
    rejection: RejectionWorkflow = Field(default_factory=RejectionWorkflow)
    waitlist_notes: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(extra="forbid")

    @property
    def category(self) -> ApplicantCategory:
        return ApplicantCategory(self.profile.category)
