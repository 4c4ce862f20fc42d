"""Helpers for constructing scoring-oracle contexts and clients."""

from __future__ import annotations

import json
import re
from enum import Enum
from typing import Any, Protocol, Sequence, runtime_checkable
from urllib import error, request

import structlog

from .errors import UpstreamFailure
from .schemas import (
    Application,
    DomainConsultantProfile,
    ServiceType,
    SkillsProviderProfile,
    TestCombination,
    TestLibraryEntry,
    TestSubmission,
)

_FENCE = re.compile(r"```(?:json)?\s*")


class PromptKind(str, Enum):
    PRESCREEN = "prescreen"
    ASSESSMENT = "assessment"


OracleResult = dict[str, Any] | UpstreamFailure


@runtime_checkable
class ScoringOracle(Protocol):
    """External judgment service.

    Returns the raw structured judgment, or an ``UpstreamFailure`` value for
    transport and decoding failures. Implementations do not raise.
    """

    def score(self, kind: PromptKind, context: dict[str, Any]) -> OracleResult:
        """Score an application profile or a test submission."""


def build_prescreen_context(
    application: Application,
    combinations: Sequence[TestCombination] = (),
) -> dict[str, Any]:
    """Construct the prescreen context for an application profile."""

    profile = application.profile
    base: dict[str, Any] = {
        "rubric": profile.category,
        "applicant": {
            "full_name": application.full_name,
            "country": application.country,
        },
    }
    if isinstance(profile, SkillsProviderProfile):
        base["profile"] = {
            "years_experience": profile.years_experience,
            "education_level": profile.education_level,
            "certifications": [cert.model_dump() for cert in profile.certifications],
            "cat_tools": profile.cat_tools,
            "services_offered": [service.value for service in profile.services_offered],
            "rate_expectation": profile.rate_expectation,
            "notes": profile.notes,
        }
        base["combinations"] = [combination.label for combination in combinations]
    elif isinstance(profile, DomainConsultantProfile):
        base["profile"] = {
            "years_experience": profile.years_experience,
            "education_level": profile.education_level,
            "degree_field": profile.degree_field,
            "credentials": profile.credentials,
            "instrument_types": profile.instrument_types,
            "therapy_areas": profile.therapy_areas,
            # Client names stay confidential; only their presence is shared.
            "pharma_clients_provided": bool(profile.pharma_clients),
            "ispor_familiarity": profile.ispor_familiarity,
            "fda_familiarity": profile.fda_familiarity,
            "prior_debrief_reports": profile.prior_debrief_reports,
        }
    return base


def build_assessment_context(
    entry: TestLibraryEntry,
    submission: TestSubmission,
) -> dict[str, Any]:
    """Construct the assessment context, including reference material."""

    context: dict[str, Any] = {
        "rubric": "lqa_review" if entry.service_type == ServiceType.LQA_REVIEW else "translation",
        "language_pair": f"{entry.source_language}→{entry.target_language}",
        "domain": entry.domain,
        "service_type": entry.service_type.value,
        "difficulty": entry.difficulty.value,
        "source_text": entry.source_text,
        "submission": submission.submitted_content or submission.draft_content or "",
    }
    if entry.service_type == ServiceType.LQA_REVIEW:
        context["flawed_translation"] = entry.lqa_source_translation
        context["answer_key"] = entry.lqa_answer_key
        context["mqm_dimensions"] = entry.mqm_dimensions
    else:
        context["reference_translation"] = entry.reference_translation
        if submission.submitted_notes:
            context["applicant_notes"] = submission.submitted_notes
    if entry.rubric:
        context["additional_rubric"] = entry.rubric
    return context


def parse_oracle_body(raw: str) -> dict[str, Any]:
    """Decode an oracle response body, tolerating markdown code fences."""
    cleaned = _FENCE.sub("", raw).strip()
    data = json.loads(cleaned)
    if not isinstance(data, dict):
        raise ValueError("Oracle response must be a JSON object")
    return data


class HTTPScoringOracle:
    """Simple HTTP client for the scoring oracle."""

    service = "scoring_oracle"

    def __init__(self, endpoint: str, api_key: str | None = None, *, timeout: float = 30.0):
        self._endpoint = endpoint
        self._api_key = api_key
        self._timeout = timeout
        self._logger = structlog.get_logger(__name__)

    def score(self, kind: PromptKind, context: dict[str, Any]) -> OracleResult:
        payload = {"kind": kind.value, "context": context}
        data = json.dumps(payload, ensure_ascii=False, default=str).encode("utf-8")
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        req = request.Request(self._endpoint, data=data, headers=headers, method="POST")
        try:
            with request.urlopen(req, timeout=self._timeout) as resp:
                body = resp.read().decode("utf-8")
        except error.HTTPError as exc:
            return UpstreamFailure(self.service, f"HTTP {exc.code}")
        except (error.URLError, TimeoutError, OSError) as exc:
            return UpstreamFailure(self.service, f"transport error: {exc}")
        try:
            return parse_oracle_body(body)
        except ValueError as exc:
            return UpstreamFailure(self.service, f"malformed response: {exc}")


class UnconfiguredOracle:
    """Oracle stand-in when no endpoint is configured; every call fails."""

    service = "scoring_oracle"

    def score(self, kind: PromptKind, context: dict[str, Any]) -> OracleResult:
        return UpstreamFailure(self.service, "oracle endpoint not configured")


__all__ = [
    "HTTPScoringOracle",
    "OracleResult",
    "PromptKind",
    "ScoringOracle",
    "UnconfiguredOracle",
    "build_assessment_context",
    "build_prescreen_context",
    "parse_oracle_body",
]
