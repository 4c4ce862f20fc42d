from __future__ import annotations

import json
import re
from pathlib import Path

import pytest
from typer.testing import CliRunner

from hrpipeline.audit import AuditLogger
from hrpipeline.cli import app


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


def write_json(path: Path, payload: object) -> None:
    path.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")


@pytest.fixture
def payload_path(tmp_path: Path, make_intake) -> Path:
    path = tmp_path / "application.json"
    write_json(path, make_intake())
    return path


def test_cli_submits_works_and_decides(tmp_path: Path, runner: CliRunner, payload_path: Path) -> None:
    state = tmp_path / "state.json"
    audit_path = tmp_path / "audit.jsonl"
    common = ["--state", str(state), "--audit-log", str(audit_path)]

    result = runner.invoke(app, ["submit", "--payload", str(payload_path), *common])
    assert result.exit_code == 0, result.output
    number = re.search(r"Submitted (APP-\d{2}-\d{4})", result.output).group(1)

    # No oracle endpoint is configured, so prescreening falls back to staff review.
    result = runner.invoke(app, ["work", *common])
    assert result.exit_code == 0, result.output
    assert "Processed 1 tasks (0 failed)." in result.output

    result = runner.invoke(app, ["decide", "--application", number, "--decision", "approved", *common])
    assert result.exit_code == 0, result.output
    assert f"{number} is now approved." in result.output

    transitions = [(record["from"], record["to"]) for record in AuditLogger(audit_path).read()]
    assert transitions == [
        ("submitted", "prescreening"),
        ("prescreening", "staff_review"),
        ("staff_review", "approved"),
    ]

    result = runner.invoke(app, ["decide", "--application", number, "--decision", "approved", *common])
    assert result.exit_code == 1
    assert "Error [conflict]" in result.output


def test_cli_rejects_invalid_application(tmp_path: Path, runner: CliRunner, make_intake) -> None:
    payload = tmp_path / "bad.json"
    write_json(payload, make_intake(email="not-an-email"))

    result = runner.invoke(app, ["submit", "--payload", str(payload), "--state", str(tmp_path / "s.json")])

    assert result.exit_code == 1
    assert "Error [invalid_input]" in result.output
    assert "email:" in result.output


def test_cli_import_reports_bad_lines(tmp_path: Path, runner: CliRunner) -> None:
    library = tmp_path / "library.jsonl"
    entry = {
        "title": "Consent form",
        "source_language": "EN",
        "target_language": "JA",
        "domain": "clinical",
        "service_type": "translation",
    }
    library.write_text(json.dumps(entry) + "\n[1, 2]\n", encoding="utf-8")

    result = runner.invoke(app, ["import-tests", "--library", str(library), "--state", str(tmp_path / "s.json")])

    assert result.exit_code == 1
    assert "Imported 1 tests." in result.output
    assert "line 2: expected an object" in result.output


def test_cli_sweep_prints_report(tmp_path: Path, runner: CliRunner) -> None:
    result = runner.invoke(
        app,
        ["sweep", "--state", str(tmp_path / "s.json"), "--log-level", "WARNING"],
    )

    assert result.exit_code == 0, result.output
    report = json.loads(result.stdout)
    assert report["reminders_sent"] == 0
    assert report["errors"] == 0


def test_cli_unknown_token_fails(tmp_path: Path, runner: CliRunner) -> None:
    result = runner.invoke(app, ["open-test", "--token", "missing", "--state", str(tmp_path / "s.json")])

    assert result.exit_code == 1
    assert "Error [not_found]" in result.output


def test_cli_rejects_non_mapping_config(tmp_path: Path, runner: CliRunner) -> None:
    config = tmp_path / "config.yaml"
    config.write_text("- just\n- a list\n", encoding="utf-8")

    result = runner.invoke(app, ["sweep", "--state", str(tmp_path / "s.json"), "--config", str(config)])

    assert result.exit_code != 0
