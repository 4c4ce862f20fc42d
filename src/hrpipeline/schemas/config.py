"""Pydantic configuration schema for CLI YAML input."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, ValidationError


class PipelineConfig(BaseModel):
    prescreen_pass: float = 70.0
    prescreen_review: float = 50.0
    assessment_pass: float = 80.0
    assessment_borderline: float = 65.0
    token_ttl_hours: int = 48
    cooldown_days: int = 180
    rejection_hold_hours: int = 48
    task_lease_seconds: int = Field(default=300, ge=1)
    task_max_attempts: int = Field(default=3, ge=1)
    default_difficulty: str = "intermediate"


class FollowupConfig(BaseModel):
    reminder_after_hours: int = 24
    final_chance_after_days: int = 7
    archive_after_days: int = 10
    batch_size: int = Field(default=50, ge=1)


class OracleConfig(BaseModel):
    endpoint: str | None = None
    api_key: str | None = None
    timeout: float = 30.0


class NotificationConfig(BaseModel):
    endpoint: str | None = None
    api_key: str | None = None
    timeout: float = 10.0
    app_url: str = "http://localhost:8000"
    templates: dict[str, int] = Field(default_factory=dict)


class AppConfig(BaseModel):
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    followups: FollowupConfig = Field(default_factory=FollowupConfig)
    oracle: OracleConfig = Field(default_factory=OracleConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)

    def to_settings(self) -> dict[str, Any]:
        settings: dict[str, Any] = {}
        for section in ("pipeline", "followups", "oracle", "notifications"):
            values = getattr(self, section).model_dump(exclude_defaults=True)
            if values:
                settings[section] = values
        return settings


def load_config(raw: Any) -> AppConfig:
    if not isinstance(raw, dict):
        raise ValidationError.from_exception_data(
            "AppConfig",
            [{"type": "dict_type", "loc": ("config",), "input": raw}],
        )
    return AppConfig.model_validate(raw)
