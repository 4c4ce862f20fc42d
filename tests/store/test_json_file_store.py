from __future__ import annotations

import json
from pathlib import Path

import pytest

from hrpipeline.container import create_container
from hrpipeline.schemas import ApplicationStatus, TestCombination, TranslationAssessment
from hrpipeline.store import JsonFileStore


def test_state_survives_reload(tmp_path: Path, clock, oracle, notifier, make_intake):
    state = tmp_path / "state.json"
    first = create_container(
        store=JsonFileStore(state, now_provider=clock),
        now_provider=clock,
        oracle=oracle,
        notifier=notifier,
    ).pipeline()
    application = first.submit_application(make_intake())
    first.run_pending_tasks()

    reloaded = JsonFileStore(state, now_provider=clock)

    stored = reloaded.get_application(application.id)
    assert stored.status == ApplicationStatus.PRESCREENED
    assert stored.score_detail.kind == "skills_provider_prescreen"
    assert len(reloaded.list_combinations(application.id)) == 1
    assert all(task.status.value == "done" for task in reloaded.list_tasks())


def test_assessment_alias_round_trips(tmp_path: Path, clock):
    state = tmp_path / "state.json"
    file_store = JsonFileStore(state, now_provider=clock)
    judgment = TranslationAssessment.model_validate(
        {
            "overall_score": 82,
            "pass": True,
            "dimension_scores": {
                "accuracy": 80,
                "fluency": 80,
                "terminology": 80,
                "formatting": 80,
                "certification_readiness": 80,
            },
        }
    )
    file_store.insert_combinations(
        [
            TestCombination(
                id="c1",
                application_id="a1",
                source_language="EN",
                target_language="DE",
                domain="legal",
                service_type="translation",
                score_detail=judgment,
                created_at=clock(),
                updated_at=clock(),
            )
        ]
    )

    raw = json.loads(state.read_text(encoding="utf-8"))
    assert raw["combinations"][0]["score_detail"]["pass"] is True
    assert JsonFileStore(state).get_combination("c1").score_detail.passed is True


def test_invalid_state_file_is_reported(tmp_path: Path):
    state = tmp_path / "state.json"
    state.write_text("{not json", encoding="utf-8")

    with pytest.raises(ValueError):
        JsonFileStore(state)
