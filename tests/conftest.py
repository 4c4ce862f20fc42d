from __future__ import annotations

import uuid
from typing import Any, Callable

import pendulum
import structlog
import pytest

from hrpipeline.container import create_container
from hrpipeline.errors import UpstreamFailure
from hrpipeline.notifications import Recipient, Template
from hrpipeline.oracle import PromptKind
from hrpipeline.schemas import TestLibraryEntry
from hrpipeline.store import InMemoryStore

START = pendulum.datetime(2026, 3, 2, 9, 0, tz="UTC")


class FixedClock:
    def __init__(self, start: pendulum.DateTime = START) -> None:
        self.current = start

    def __call__(self) -> pendulum.DateTime:
        return self.current

    def advance(self, **delta: float) -> pendulum.DateTime:
        self.current = self.current.add(**delta)
        return self.current


SKILLS_PRESCREEN = {
    "overall_score": 85,
    "recommendation": "proceed",
    "demand_match": "high",
    "certification_quality": "high",
    "experience_consistency": "high",
    "suggested_test_difficulty": "intermediate",
    "suggested_tier": "senior",
}

CONSULTANT_PRESCREEN = {
    "overall_score": 78,
    "coa_instrument_experience": "strong",
    "guideline_familiarity": "partial",
    "interviewing_skills": "strong",
    "language_fluency": "strong",
    "report_writing_experience": "partial",
}


def translation_assessment(score: float) -> dict[str, Any]:
    return {
        "overall_score": score,
        "pass": score >= 80,
        "dimension_scores": {
            "accuracy": score,
            "fluency": score,
            "terminology": score,
            "formatting": score,
            "certification_readiness": score,
        },
        "feedback_draft": "Thanks for your submission.",
    }


class ScriptedOracle:
    """Oracle stub returning queued responses, then a default per kind.

    Queued items may be dicts, ``UpstreamFailure`` values or exceptions.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[PromptKind, dict[str, Any]]] = []
        self.queued: dict[PromptKind, list[Any]] = {kind: [] for kind in PromptKind}
        self.defaults: dict[PromptKind, Any] = {
            PromptKind.PRESCREEN: SKILLS_PRESCREEN,
            PromptKind.ASSESSMENT: translation_assessment(85),
        }

    def queue(self, kind: PromptKind, *responses: Any) -> None:
        self.queued[kind].extend(responses)

    def calls_for(self, kind: PromptKind) -> int:
        return sum(1 for called, _ in self.calls if called == kind)

    def score(self, kind: PromptKind, context: dict[str, Any]) -> Any:
        self.calls.append((kind, context))
        response = self.queued[kind].pop(0) if self.queued[kind] else self.defaults[kind]
        if isinstance(response, Exception):
            raise response
        if isinstance(response, UpstreamFailure):
            return response
        return dict(response)


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent: list[tuple[Template, Recipient, dict[str, Any]]] = []
        self.fail = False

    def send(self, template: Template, recipient: Recipient, params: dict[str, Any]) -> bool:
        if self.fail:
            raise RuntimeError("smtp down")
        self.sent.append((template, recipient, params))
        return True

    def templates(self) -> list[Template]:
        return [template for template, _, _ in self.sent]

    def count(self, template: Template) -> int:
        return self.templates().count(template)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def oracle() -> ScriptedOracle:
    return ScriptedOracle()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def store(clock: FixedClock) -> InMemoryStore:
    return InMemoryStore(now_provider=clock)


@pytest.fixture
def container(store, clock, oracle, notifier):
    return create_container(store=store, now_provider=clock, oracle=oracle, notifier=notifier)


@pytest.fixture
def pipeline(container):
    return container.pipeline()


@pytest.fixture
def make_intake() -> Callable[..., dict[str, Any]]:
    def factory(**overrides: Any) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "full_name": "Ana Souza",
            "email": "Ana.Souza@example.com",
            "country": "Brazil",
            "profile": {
                "category": "skills_provider",
                "years_experience": 8,
                "certifications": [{"name": "ATA"}],
                "cat_tools": ["Trados"],
                "language_pairs": [
                    {
                        "source_language": "EN",
                        "target_language": "PT-BR",
                        "domains": ["medical"],
                    }
                ],
                "services_offered": ["translation"],
            },
        }
        payload.update(overrides)
        return payload

    return factory


@pytest.fixture
def make_consultant_intake() -> Callable[..., dict[str, Any]]:
    def factory(**overrides: Any) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "full_name": "Kenji Mori",
            "email": "kenji@example.com",
            "country": "Japan",
            "profile": {
                "category": "domain_consultant",
                "years_experience": 12,
                "native_language": "ja",
                "therapy_areas": ["oncology"],
                "prior_debrief_reports": True,
            },
        }
        payload.update(overrides)
        return payload

    return factory


@pytest.fixture
def add_library_entry(store: InMemoryStore) -> Callable[..., TestLibraryEntry]:
    def factory(**overrides: Any) -> TestLibraryEntry:
        fields: dict[str, Any] = {
            "id": uuid.uuid4().hex,
            "title": "Patient leaflet",
            "source_language": "EN",
            "target_language": "PT-BR",
            "domain": "medical",
            "service_type": "translation",
            "difficulty": "intermediate",
            "source_text": "Take one tablet daily.",
            "instructions": "Translate the leaflet.",
            "reference_translation": "Tome um comprimido por dia.",
            "rubric": "Terminology must follow ANVISA usage.",
        }
        fields.update(overrides)
        return store.insert_library_entry(TestLibraryEntry.model_validate(fields))

    return factory


@pytest.fixture(autouse=True)
def reset_structlog():
    yield
    structlog.reset_defaults()
