"""Dependency injection container for the recruitment pipeline."""

from __future__ import annotations

from datetime import datetime
from typing import Callable

from dependency_injector import containers, providers

from .audit import AuditLogger
from .core import (
    ApplicationLifecycle,
    AssessmentConfig,
    AssessmentOrchestrator,
    FollowUpScheduler,
    LifecycleConfig,
    MatchingConfig,
    SchedulerConfig,
    StaffActions,
    TestMatchingEngine,
)
from .notifications import HTTPNotificationSink, LoggingNotificationSink, NotificationSink
from .oracle import HTTPScoringOracle, ScoringOracle, UnconfiguredOracle
from .pipeline import RecruitmentPipeline
from .schemas import Difficulty
from .schemas.config import load_config
from .store import EntityStore, InMemoryStore
from .tasks import TaskQueue


class PipelineContainer(containers.DeclarativeContainer):
    """Dependency-injector container definition."""

    config = providers.Configuration(
        default={
            "pipeline": {
                "rejection_hold_hours": 48,
                "task_lease_seconds": 300,
                "task_max_attempts": 3,
            }
        }
    )

    clock = providers.Object(None)
    audit_logger = providers.Object(None)

    store = providers.Singleton(InMemoryStore, now_provider=clock)
    oracle = providers.Singleton(UnconfiguredOracle)
    notifier = providers.Singleton(LoggingNotificationSink)

    assessment_config = providers.Singleton(AssessmentConfig)
    lifecycle_config = providers.Singleton(LifecycleConfig)
    matching_config = providers.Singleton(MatchingConfig)
    scheduler_config = providers.Singleton(SchedulerConfig)

    tasks = providers.Singleton(
        TaskQueue,
        store,
        lease_seconds=config.pipeline.task_lease_seconds,
        max_attempts=config.pipeline.task_max_attempts,
        now_provider=clock,
    )

    orchestrator = providers.Singleton(
        AssessmentOrchestrator,
        store,
        oracle,
        config=assessment_config,
        now_provider=clock,
    )

    lifecycle = providers.Singleton(
        ApplicationLifecycle,
        store,
        orchestrator,
        tasks,
        notifier,
        config=lifecycle_config,
        audit_logger=audit_logger,
        now_provider=clock,
    )

    matching = providers.Singleton(
        TestMatchingEngine,
        store,
        lifecycle,
        tasks,
        notifier,
        config=matching_config,
        now_provider=clock,
    )

    scheduler = providers.Singleton(
        FollowUpScheduler,
        store,
        lifecycle,
        notifier,
        config=scheduler_config,
        now_provider=clock,
    )

    staff = providers.Singleton(
        StaffActions,
        store,
        lifecycle,
        notifier,
        rejection_hold_hours=config.pipeline.rejection_hold_hours,
        now_provider=clock,
    )

    pipeline = providers.Singleton(
        RecruitmentPipeline,
        store=store,
        tasks=tasks,
        lifecycle=lifecycle,
        matching=matching,
        scheduler=scheduler,
        staff=staff,
        notifier=notifier,
        now_provider=clock,
    )


def create_container(
    *,
    settings: dict | None = None,
    store: EntityStore | None = None,
    now_provider: Callable[[], datetime] | None = None,
    audit_logger: AuditLogger | None = None,
    oracle: ScoringOracle | None = None,
    notifier: NotificationSink | None = None,
) -> PipelineContainer:
    """Instantiate container with optional overrides."""

    container = PipelineContainer()

    if now_provider is not None:
        container.clock.override(providers.Object(now_provider))
    if store is not None:
        container.store.override(providers.Object(store))
    if audit_logger is not None:
        container.audit_logger.override(providers.Object(audit_logger))

    app_config = load_config(settings or {})
    container.config.from_dict(app_config.model_dump(mode="json"))

    pipeline_settings = app_config.pipeline
    followups = app_config.followups
    notifications = app_config.notifications

    container.assessment_config.override(
        providers.Object(
            AssessmentConfig(
                pass_threshold=pipeline_settings.assessment_pass,
                borderline_threshold=pipeline_settings.assessment_borderline,
            )
        )
    )
    container.lifecycle_config.override(
        providers.Object(
            LifecycleConfig(
                prescreen_pass_threshold=pipeline_settings.prescreen_pass,
                prescreen_review_threshold=pipeline_settings.prescreen_review,
                cooldown_days=pipeline_settings.cooldown_days,
            )
        )
    )
    container.matching_config.override(
        providers.Object(
            MatchingConfig(
                token_ttl_hours=pipeline_settings.token_ttl_hours,
                default_difficulty=Difficulty(pipeline_settings.default_difficulty),
                app_url=notifications.app_url,
            )
        )
    )
    container.scheduler_config.override(
        providers.Object(
            SchedulerConfig(
                reminder_after_hours=followups.reminder_after_hours,
                final_chance_after_days=followups.final_chance_after_days,
                archive_after_days=followups.archive_after_days,
                rejection_hold_hours=pipeline_settings.rejection_hold_hours,
                batch_size=followups.batch_size,
                app_url=notifications.app_url,
            )
        )
    )

    oracle_settings = app_config.oracle
    if oracle_settings.endpoint:
        container.oracle.override(
            providers.Singleton(
                HTTPScoringOracle,
                oracle_settings.endpoint,
                oracle_settings.api_key,
                timeout=oracle_settings.timeout,
            )
        )

    if notifications.endpoint:
        container.notifier.override(
            providers.Singleton(
                HTTPNotificationSink,
                notifications.endpoint,
                notifications.api_key,
                timeout=notifications.timeout,
                template_ids=notifications.templates,
            )
        )

    if oracle is not None:
        container.oracle.override(providers.Object(oracle))
    if notifier is not None:
        container.notifier.override(providers.Object(notifier))

    return container
