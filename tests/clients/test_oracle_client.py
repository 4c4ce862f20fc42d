from __future__ import annotations

import io
import json
from urllib import error

import pytest

from hrpipeline import oracle as oracle_module
from hrpipeline.errors import UpstreamFailure
from hrpipeline.oracle import (
    HTTPScoringOracle,
    PromptKind,
    ScoringOracle,
    UnconfiguredOracle,
    build_prescreen_context,
    parse_oracle_body,
)
from hrpipeline.schemas import Application, ApplicationIntake


class FakeResponse(io.BytesIO):
    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()
        return False


def test_parse_strips_code_fences():
    body = '```json\n{"overall_score": 81}\n```'

    assert parse_oracle_body(body) == {"overall_score": 81}


def test_parse_rejects_non_object():
    with pytest.raises(ValueError):
        parse_oracle_body("[1, 2]")
    with pytest.raises(ValueError):
        parse_oracle_body("not json")


def test_http_oracle_posts_bearer_request(monkeypatch):
    captured = {}

    def fake_urlopen(req, timeout):
        captured["url"] = req.full_url
        captured["auth"] = req.get_header("Authorization")
        captured["body"] = json.loads(req.data.decode("utf-8"))
        captured["timeout"] = timeout
        return FakeResponse(b'{"overall_score": 77}')

    monkeypatch.setattr(oracle_module.request, "urlopen", fake_urlopen)
    client = HTTPScoringOracle("https://oracle.example.com/score", "secret", timeout=3)

    result = client.score(PromptKind.ASSESSMENT, {"domain": "medical"})

    assert result == {"overall_score": 77}
    assert captured["auth"] == "Bearer secret"
    assert captured["body"] == {"kind": "assessment", "context": {"domain": "medical"}}
    assert captured["timeout"] == 3


def test_http_oracle_maps_errors_to_failures(monkeypatch):
    def http_error(req, timeout):
        raise error.HTTPError(req.full_url, 503, "unavailable", {}, None)

    monkeypatch.setattr(oracle_module.request, "urlopen", http_error)
    result = HTTPScoringOracle("https://oracle.example.com").score(PromptKind.PRESCREEN, {})
    assert result == UpstreamFailure("scoring_oracle", "HTTP 503")

    monkeypatch.setattr(oracle_module.request, "urlopen", lambda req, timeout: FakeResponse(b"<html>"))
    result = HTTPScoringOracle("https://oracle.example.com").score(PromptKind.PRESCREEN, {})
    assert isinstance(result, UpstreamFailure)
    assert result.reason.startswith("malformed response")

    def timeout(req, timeout):
        raise TimeoutError("timed out")

    monkeypatch.setattr(oracle_module.request, "urlopen", timeout)
    result = HTTPScoringOracle("https://oracle.example.com").score(PromptKind.PRESCREEN, {})
    assert result.reason.startswith("transport error")


def test_unconfigured_oracle_always_fails():
    client = UnconfiguredOracle()

    assert isinstance(client, ScoringOracle)
    assert isinstance(client.score(PromptKind.PRESCREEN, {}), UpstreamFailure)


def test_consultant_context_hides_client_names(make_consultant_intake):
    payload = make_consultant_intake()
    payload["profile"]["pharma_clients"] = "Acme Pharma"
    intake = ApplicationIntake.model_validate(payload)

    application = Application(
        id="a1",
        application_number="APP-26-0001",
        full_name=intake.full_name,
        email=intake.email,
        country=intake.country,
        profile=intake.profile,
        created_at="2026-03-02T09:00:00Z",
        updated_at="2026-03-02T09:00:00Z",
    )

    context = build_prescreen_context(application)

    assert context["rubric"] == "domain_consultant"
    assert context["profile"]["pharma_clients_provided"] is True
    assert "Acme Pharma" not in json.dumps(context)
