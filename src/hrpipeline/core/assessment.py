"""Assessment orchestration against the scoring oracle."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

import pendulum
import structlog
from pydantic import BaseModel, ValidationError

from ..errors import NotFoundError, UpstreamFailure
from ..oracle import (
    OracleResult,
    PromptKind,
    ScoringOracle,
    build_assessment_context,
    build_prescreen_context,
)
from ..schemas import (
    ApplicantCategory,
    Application,
    CombinationStatus,
    ConsultantPrescreen,
    FallbackJudgment,
    LqaAssessment,
    ServiceType,
    SkillsProviderPrescreen,
    SubmissionStatus,
    TranslationAssessment,
)
from ..schemas.judgment import Judgment
from ..store import EntityStore

MAX_ATTEMPTS = 2


@dataclass
class AssessmentConfig:
    """Routing thresholds for test assessment."""

    pass_threshold: float = 80.0
    borderline_threshold: float = 65.0


@dataclass(slots=True)
class JudgmentOutcome:
    """Result of the retry-then-fallback policy."""

    judgment: Judgment
    score: float | None
    attempts: int

    @property
    def fell_back(self) -> bool:
        return isinstance(self.judgment, FallbackJudgment)


@dataclass(slots=True)
class AssessmentResult:
    submission_id: str
    combination_id: str
    application_id: str
    score: float | None
    combination_status: CombinationStatus
    fell_back: bool


class AssessmentOrchestrator:
    """Score application profiles and test submissions via the oracle."""

    def __init__(
        self,
        store: EntityStore,
        oracle: ScoringOracle,
        *,
        config: AssessmentConfig | None = None,
        now_provider: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._oracle = oracle
        self._config = config or AssessmentConfig()
        self._now = now_provider or (lambda: pendulum.now("UTC"))
        self._logger = structlog.get_logger(__name__)

    def judge(
        self,
        kind: PromptKind,
        context: dict[str, Any],
        model: type[BaseModel],
    ) -> JudgmentOutcome:
        """Call the oracle once, retry once, then fall back.

        Transport failures and schema failures share the single retry.
        """
        discriminant = model.model_fields["kind"].default
        reason = "unknown failure"
        for attempt in range(1, MAX_ATTEMPTS + 1):
            raw = self._call(kind, context)
            if isinstance(raw, UpstreamFailure):
                reason = raw.reason
            else:
                try:
                    judgment = model.model_validate({**raw, "kind": discriminant})
                except ValidationError as exc:
                    reason = f"schema validation failed ({exc.error_count()} errors)"
                else:
                    return JudgmentOutcome(
                        judgment=judgment,
                        score=float(judgment.overall_score),
                        attempts=attempt,
                    )
            self._logger.warning(
                "oracle.attempt_failed",
                kind=kind.value,
                attempt=attempt,
                reason=reason,
            )
        self._logger.error("oracle.fallback", kind=kind.value, reason=reason)
        return JudgmentOutcome(
            judgment=FallbackJudgment(reason=reason, attempts=MAX_ATTEMPTS),
            score=None,
            attempts=MAX_ATTEMPTS,
        )

    def prescreen(self, application: Application) -> JudgmentOutcome:
        combinations = self._store.list_combinations(application.id)
        context = build_prescreen_context(application, combinations)
        if application.category == ApplicantCategory.DOMAIN_CONSULTANT:
            model: type[BaseModel] = ConsultantPrescreen
        else:
            model = SkillsProviderPrescreen
        return self.judge(PromptKind.PRESCREEN, context, model)

    def assess_submission(self, submission_id: str) -> AssessmentResult | None:
        """Score a submitted test and route its combination.

        Returns ``None`` when the submission is not awaiting assessment, so a
        duplicate task is a no-op.
        """
        submission = self._store.get_submission(submission_id)
        if submission is None:
            raise NotFoundError(f"Submission {submission_id!r} not found")
        if submission.status != SubmissionStatus.SUBMITTED:
            self._logger.info(
                "assessment.skipped",
                submission_id=submission_id,
                status=submission.status.value,
            )
            return None
        entry = self._store.get_library_entry(submission.test_id)
        if entry is None:
            raise NotFoundError(f"Test {submission.test_id!r} not found")

        model = LqaAssessment if entry.service_type == ServiceType.LQA_REVIEW else TranslationAssessment
        outcome = self.judge(
            PromptKind.ASSESSMENT,
            build_assessment_context(entry, submission),
            model,
        )
        status = self._route(outcome.score)
        now = self._now()

        claimed = self._store.update_submission(
            submission_id,
            {
                "status": SubmissionStatus.ASSESSED,
                "score": outcome.score,
                "score_detail": outcome.judgment,
                "assessed_at": now,
            },
            expected_status={SubmissionStatus.SUBMITTED},
        )
        if claimed is None:
            self._logger.info("assessment.lost_race", submission_id=submission_id)
            return None

        combination_changes: dict[str, Any] = {
            "status": status,
            "score": outcome.score,
            "score_detail": outcome.judgment,
        }
        if status == CombinationStatus.APPROVED:
            combination_changes["approved_at"] = now
        updated_combination = self._store.update_combination(
            submission.combination_id,
            combination_changes,
            expected_status={CombinationStatus.TEST_SENT, CombinationStatus.TEST_SUBMITTED},
        )
        if updated_combination is None:
            self._logger.info(
                "assessment.combination_closed",
                submission_id=submission_id,
                combination_id=submission.combination_id,
            )
            return None

        if status == CombinationStatus.APPROVED:
            self._store.increment_library_outcome(entry.id, passed=True)
        elif status == CombinationStatus.REJECTED:
            self._store.increment_library_outcome(entry.id, passed=False)

        self._logger.info(
            "assessment.routed",
            submission_id=submission_id,
            combination_id=submission.combination_id,
            score=outcome.score,
            status=status.value,
            fallback=outcome.fell_back,
        )
        return AssessmentResult(
            submission_id=submission_id,
            combination_id=submission.combination_id,
            application_id=submission.application_id,
            score=outcome.score,
            combination_status=status,
            fell_back=outcome.fell_back,
        )

    def _route(self, score: float | None) -> CombinationStatus:
        if score is None:
            return CombinationStatus.ASSESSED
        if score >= self._config.pass_threshold:
            return CombinationStatus.APPROVED
        if score >= self._config.borderline_threshold:
            return CombinationStatus.ASSESSED
        return CombinationStatus.REJECTED

    def _call(self, kind: PromptKind, context: dict[str, Any]) -> OracleResult:
        try:
            return self._oracle.score(kind, context)
        except Exception as exc:  # noqa: BLE001 - a misbehaving client is a failed call
            return UpstreamFailure("scoring_oracle", f"client raised: {exc}")
