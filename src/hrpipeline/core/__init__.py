"""Core pipeline components."""

from __future__ import annotations

# NOTE: keep imports explicit for export clarity.
from .assessment import AssessmentConfig, AssessmentOrchestrator, AssessmentResult, JudgmentOutcome
from .lifecycle import ApplicationLifecycle, LifecycleConfig
from .matching import AssignmentSummary, IssuedTest, MatchingConfig, TestMatchingEngine
from .scheduler import FollowUpScheduler, SchedulerConfig, SweepReport
from .staff import StaffActions
from .states import APPLICATION_TRANSITIONS, aggregate_status, can_transition

__all__ = [
    "APPLICATION_TRANSITIONS",
    "ApplicationLifecycle",
    "AssessmentConfig",
    "AssessmentOrchestrator",
    "AssessmentResult",
    "AssignmentSummary",
    "FollowUpScheduler",
    "IssuedTest",
    "JudgmentOutcome",
    "LifecycleConfig",
    "MatchingConfig",
    "SchedulerConfig",
    "StaffActions",
    "SweepReport",
    "TestMatchingEngine",
    "aggregate_status",
    "can_transition",
]
