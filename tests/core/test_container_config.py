from __future__ import annotations

import pytest
from pydantic import ValidationError

from hrpipeline.container import create_container
from hrpipeline.core import TestMatchingEngine
from hrpipeline.notifications import HTTPNotificationSink, LoggingNotificationSink
from hrpipeline.oracle import HTTPScoringOracle, UnconfiguredOracle
from hrpipeline.schemas import Difficulty
from hrpipeline.schemas.config import AppConfig, load_config


def test_create_container_with_overrides():
    container = create_container(
        settings={
            "pipeline": {
                "prescreen_pass": 75,
                "assessment_borderline": 60,
                "token_ttl_hours": 72,
                "default_difficulty": "advanced",
                "rejection_hold_hours": 24,
                "task_lease_seconds": 120,
                "task_max_attempts": 5,
            },
            "followups": {"batch_size": 10, "archive_after_days": 14},
            "notifications": {"app_url": "https://apply.example.com"},
        }
    )

    assert container.lifecycle_config().prescreen_pass_threshold == 75
    assert container.lifecycle_config().prescreen_review_threshold == 50
    assert container.assessment_config().borderline_threshold == 60
    matching = container.matching_config()
    assert matching.token_ttl_hours == 72
    assert matching.default_difficulty == Difficulty.ADVANCED
    assert matching.app_url == "https://apply.example.com"
    scheduler = container.scheduler_config()
    assert scheduler.batch_size == 10
    assert scheduler.archive_after_days == 14
    assert scheduler.rejection_hold_hours == 24
    assert container.staff()._rejection_hold.total_seconds() == 24 * 3600
    assert container.tasks()._lease.total_seconds() == 120
    assert container.tasks()._max_attempts == 5


def test_default_container_uses_offline_collaborators():
    container = create_container()

    assert isinstance(container.oracle(), UnconfiguredOracle)
    assert isinstance(container.notifier(), LoggingNotificationSink)
    assert isinstance(container.matching(), TestMatchingEngine)
    assert container.pipeline() is container.pipeline()


def test_endpoints_select_http_clients():
    container = create_container(
        settings={
            "oracle": {"endpoint": "https://oracle.example.com/score", "api_key": "k", "timeout": 5},
            "notifications": {"endpoint": "https://mail.example.com/send", "templates": {"approved": 42}},
        }
    )

    oracle = container.oracle()
    notifier = container.notifier()
    assert isinstance(oracle, HTTPScoringOracle)
    assert oracle._timeout == 5
    assert isinstance(notifier, HTTPNotificationSink)
    assert notifier._template_ids["approved"] == 42


def test_load_config_validation():
    app_config = load_config({"pipeline": {"cooldown_days": 90}, "followups": {"batch_size": 5}})

    assert isinstance(app_config, AppConfig)
    settings = app_config.to_settings()
    assert settings == {"pipeline": {"cooldown_days": 90}, "followups": {"batch_size": 5}}


def test_load_config_rejects_non_mapping_and_bad_values():
    with pytest.raises(ValidationError):
        load_config(["not", "a", "mapping"])
    with pytest.raises(ValidationError):
        load_config({"followups": {"batch_size": 0}})
