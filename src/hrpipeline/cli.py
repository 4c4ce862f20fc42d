"""Typer CLI entrypoint for the recruitment pipeline."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, NoReturn, Optional

import typer
import yaml
from pydantic import ValidationError

from .audit import AuditLogger
from .container import create_container
from .errors import NotFoundError, PipelineError
from .logging import configure_logging
from .pipeline import RecruitmentPipeline
from .schemas import Application, ApplicationStatus
from .schemas.config import load_config
from .store import JsonFileStore

app = typer.Typer(help="Applicant screening pipeline CLI.")

DEFAULT_STATE = Path("hrpipeline-state.json")


def _load_settings(config: Optional[Path]) -> dict[str, Any]:
    if not config:
        return {}
    with config.open("r", encoding="utf-8") as handle:
        loaded = yaml.safe_load(handle) or {}
    if not isinstance(loaded, dict):
        raise typer.BadParameter("Config file must be a YAML object", param_name="config")
    try:
        return load_config(loaded).to_settings()
    except ValidationError as exc:
        raise typer.BadParameter(f"Invalid config: {exc.error_count()} errors", param_name="config") from exc


def _build_pipeline(
    state: Path,
    config: Optional[Path],
    log_level: str,
    audit_log: Optional[Path],
) -> RecruitmentPipeline:
    settings = _load_settings(config)
    configure_logging(log_level)
    container = create_container(
        settings=settings,
        store=JsonFileStore(state),
        audit_logger=AuditLogger(audit_log) if audit_log else None,
    )
    return container.pipeline()


def _find_application(pipeline: RecruitmentPipeline, ref: str) -> Application:
    application = pipeline.store.get_application(ref)
    if application is not None:
        return application
    for candidate in pipeline.store.list_applications():
        if candidate.application_number == ref:
            return candidate
    raise NotFoundError(f"Application {ref!r} not found")


def _echo_json(payload: Any) -> None:
    typer.echo(json.dumps(payload, ensure_ascii=False, indent=2, default=str))


def _fail(exc: PipelineError) -> NoReturn:
    typer.echo(f"Error [{exc.code}]: {exc.message}", err=True)
    raise typer.Exit(code=1)


StateOption = typer.Option(DEFAULT_STATE, dir_okay=False, help="Pipeline state JSON path.")
ConfigOption = typer.Option(None, exists=True, readable=True, dir_okay=False, help="YAML config path.")
LogLevelOption = typer.Option("INFO", help="Log level for structured logging.")
AuditLogOption = typer.Option(None, dir_okay=False, help="Audit log output (JSONL).")


@app.command()
def submit(
    payload: Path = typer.Option(..., exists=True, readable=True, dir_okay=False, help="Application JSON path."),
    state: Path = StateOption,
    config: Optional[Path] = ConfigOption,
    log_level: str = LogLevelOption,
    audit_log: Optional[Path] = AuditLogOption,
) -> None:
    """Submit an application form."""
    pipeline = _build_pipeline(state, config, log_level, audit_log)
    try:
        data = json.loads(payload.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise typer.BadParameter(f"Invalid application JSON: {exc}", param_name="payload") from exc
    try:
        application = pipeline.submit_application(data)
    except PipelineError as exc:
        errors = getattr(exc, "errors", [])
        for error in errors:
            typer.echo(f"  {error}", err=True)
        _fail(exc)
    typer.echo(f"Submitted {application.application_number} ({application.id}).")


@app.command("import-tests")
def import_tests(
    library: Path = typer.Option(..., exists=True, readable=True, dir_okay=False, help="Test library JSONL path."),
    state: Path = StateOption,
    config: Optional[Path] = ConfigOption,
    log_level: str = LogLevelOption,
) -> None:
    """Import test library entries."""
    pipeline = _build_pipeline(state, config, log_level, None)
    imported, errors = pipeline.import_library(library)
    for error in errors:
        typer.echo(f"  {error}", err=True)
    typer.echo(f"Imported {imported} tests.")
    if errors:
        raise typer.Exit(code=1)


@app.command()
def work(
    max_tasks: Optional[int] = typer.Option(None, min=1, help="Stop after this many tasks."),
    state: Path = StateOption,
    config: Optional[Path] = ConfigOption,
    log_level: str = LogLevelOption,
    audit_log: Optional[Path] = AuditLogOption,
) -> None:
    """Drain queued pipeline tasks."""
    pipeline = _build_pipeline(state, config, log_level, audit_log)
    report = pipeline.run_pending_tasks(max_tasks=max_tasks)
    for error in report.errors:
        typer.echo(f"  {error}", err=True)
    typer.echo(f"Processed {report.processed} tasks ({report.failed} failed).")


@app.command()
def sweep(
    state: Path = StateOption,
    config: Optional[Path] = ConfigOption,
    log_level: str = LogLevelOption,
    audit_log: Optional[Path] = AuditLogOption,
) -> None:
    """Run one follow-up sweep."""
    pipeline = _build_pipeline(state, config, log_level, audit_log)
    report = pipeline.run_followups()
    _echo_json(report.as_dict())


@app.command("open-test")
def open_test(
    token: str = typer.Option(..., help="Test token."),
    state: Path = StateOption,
    config: Optional[Path] = ConfigOption,
    log_level: str = LogLevelOption,
) -> None:
    """Show the test behind a token."""
    pipeline = _build_pipeline(state, config, log_level, None)
    try:
        view = pipeline.resolve_token(token)
    except PipelineError as exc:
        _fail(exc)
    _echo_json(view.model_dump(mode="json"))


@app.command("save-draft")
def save_draft(
    token: str = typer.Option(..., help="Test token."),
    content: Path = typer.Option(..., exists=True, readable=True, dir_okay=False, help="Draft text path."),
    state: Path = StateOption,
    config: Optional[Path] = ConfigOption,
    log_level: str = LogLevelOption,
) -> None:
    """Save a draft answer for a test."""
    pipeline = _build_pipeline(state, config, log_level, None)
    try:
        submission = pipeline.save_draft(token, content.read_text(encoding="utf-8"))
    except PipelineError as exc:
        _fail(exc)
    typer.echo(f"Draft saved at {submission.draft_last_saved_at}.")


@app.command("submit-test")
def submit_test(
    token: str = typer.Option(..., help="Test token."),
    content: Path = typer.Option(..., exists=True, readable=True, dir_okay=False, help="Answer text path."),
    notes: Optional[str] = typer.Option(None, help="Notes for the reviewer."),
    state: Path = StateOption,
    config: Optional[Path] = ConfigOption,
    log_level: str = LogLevelOption,
    audit_log: Optional[Path] = AuditLogOption,
) -> None:
    """Submit a test answer."""
    pipeline = _build_pipeline(state, config, log_level, audit_log)
    try:
        submission = pipeline.submit_test(token, content.read_text(encoding="utf-8"), notes)
    except PipelineError as exc:
        _fail(exc)
    typer.echo(f"Test submitted ({submission.id}).")


@app.command()
def decide(
    application: str = typer.Option(..., help="Application id or number."),
    decision: ApplicationStatus = typer.Option(..., help="Staff decision."),
    reason: Optional[str] = typer.Option(None, help="Reason recorded with the decision."),
    notes: Optional[str] = typer.Option(None, help="Waitlist notes or information request."),
    state: Path = StateOption,
    config: Optional[Path] = ConfigOption,
    log_level: str = LogLevelOption,
    audit_log: Optional[Path] = AuditLogOption,
) -> None:
    """Record a staff decision on an application."""
    pipeline = _build_pipeline(state, config, log_level, audit_log)
    try:
        target = _find_application(pipeline, application)
        updated = pipeline.staff.decide(target.id, decision, reason=reason, notes=notes)
    except PipelineError as exc:
        _fail(exc)
    typer.echo(f"{updated.application_number} is now {updated.status.value}.")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
