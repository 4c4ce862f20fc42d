from __future__ import annotations

import json
from pathlib import Path

import pytest

from hrpipeline.errors import (
    AlreadySubmittedError,
    CooldownActiveError,
    InputValidationError,
    NotFoundError,
    TokenExpiredError,
    UpstreamFailure,
)
from hrpipeline.notifications import Template
from hrpipeline.oracle import PromptKind
from hrpipeline.schemas import (
    ApplicationStatus,
    CombinationStatus,
    RejectionEmailStatus,
    SubmissionStatus,
)

from conftest import CONSULTANT_PRESCREEN, SKILLS_PRESCREEN, translation_assessment


def submit_and_issue(pipeline, store, payload):
    application = pipeline.submit_application(payload)
    pipeline.run_pending_tasks()
    return application, store.list_submissions(application_id=application.id)


def test_happy_path_from_intake_to_approval(pipeline, store, notifier, add_library_entry, make_intake):
    entry = add_library_entry()
    application, submissions = submit_and_issue(pipeline, store, make_intake())

    assert application.application_number == "APP-26-0001"
    assert store.get_application(application.id).status == ApplicationStatus.TEST_SENT
    assert len(submissions) == 1
    _, _, invitation = notifier.sent[-1]
    assert notifier.templates()[-1] == Template.TEST_INVITATION
    assert submissions[0].token in invitation["testLinks"]

    view = pipeline.resolve_token(submissions[0].token)
    assert view.source_text == entry.source_text
    assert "reference_translation" not in view.model_dump()

    pipeline.save_draft(submissions[0].token, "Tome um comprimido")
    pipeline.submit_test(submissions[0].token, "Tome um comprimido por dia.")
    assert store.get_application(application.id).status == ApplicationStatus.TEST_SUBMITTED

    pipeline.run_pending_tasks()

    combination = store.list_combinations(application.id)[0]
    assert combination.status == CombinationStatus.APPROVED
    assert combination.score == 85
    assert store.get_application(application.id).status == ApplicationStatus.TEST_ASSESSED
    assert store.get_library_entry(entry.id).pass_count == 1

    approved = pipeline.staff.approve(application.id)

    assert approved.status == ApplicationStatus.APPROVED
    assert notifier.templates()[-1] == Template.APPROVED


def test_prescreen_outage_falls_back_to_staff_review(pipeline, store, oracle, notifier, make_intake):
    failure = UpstreamFailure("scoring_oracle", "HTTP 500")
    oracle.queue(PromptKind.PRESCREEN, failure, failure)

    application = pipeline.submit_application(make_intake())
    report = pipeline.run_pending_tasks()

    stored = store.get_application(application.id)
    assert report.failed == 0
    assert oracle.calls_for(PromptKind.PRESCREEN) == 2
    assert stored.status == ApplicationStatus.STAFF_REVIEW
    assert stored.score is None
    assert stored.score_detail.reason == "HTTP 500"
    assert notifier.count(Template.UNDER_REVIEW) == 1


def test_failed_tests_reject_and_dispatch_after_hold(
    pipeline, store, oracle, notifier, clock, add_library_entry, make_intake
):
    add_library_entry()
    oracle.queue(PromptKind.ASSESSMENT, translation_assessment(40))
    application, submissions = submit_and_issue(pipeline, store, make_intake())

    pipeline.submit_test(submissions[0].token, "Tomar comprimido.")
    pipeline.run_pending_tasks()

    stored = store.get_application(application.id)
    assert stored.status == ApplicationStatus.REJECTED
    assert stored.rejection.email_status == RejectionEmailStatus.QUEUED
    assert "Highest score: 40" in stored.rejection.reason
    assert notifier.count(Template.REJECTED) == 0

    clock.advance(hours=47)
    assert pipeline.run_followups().rejections_sent == 0

    clock.advance(hours=2)
    assert pipeline.run_followups().rejections_sent == 1
    assert store.get_application(application.id).rejection.email_status == RejectionEmailStatus.SENT
    assert pipeline.run_followups().rejections_sent == 0
    assert notifier.count(Template.REJECTED) == 1


def test_rejected_applicant_cannot_reapply_during_cooldown(pipeline, store, oracle, clock, make_intake):
    oracle.queue(PromptKind.PRESCREEN, {**SKILLS_PRESCREEN, "overall_score": 30, "recommendation": "reject"})
    application = pipeline.submit_application(make_intake())
    pipeline.run_pending_tasks()
    assert store.get_application(application.id).status == ApplicationStatus.REJECTED

    clock.advance(days=30)
    with pytest.raises(CooldownActiveError) as excinfo:
        pipeline.submit_application(make_intake(email="ANA.SOUZA@example.com"))
    assert excinfo.value.until == "2026-08-29"

    clock.advance(days=151)
    again = pipeline.submit_application(make_intake())
    assert again.application_number == "APP-26-0002"


def test_invalid_intake_reports_field_errors(pipeline, make_intake):
    with pytest.raises(InputValidationError) as excinfo:
        pipeline.submit_application(make_intake(email="nope"))

    assert any(error.startswith("email:") for error in excinfo.value.errors)


def test_expired_token_is_refused(pipeline, store, clock, add_library_entry, make_intake):
    add_library_entry()
    _, submissions = submit_and_issue(pipeline, store, make_intake())
    token = submissions[0].token

    clock.advance(hours=48, minutes=1)

    with pytest.raises(TokenExpiredError):
        pipeline.resolve_token(token)
    assert store.get_submission(submissions[0].id).status == SubmissionStatus.EXPIRED
    with pytest.raises(TokenExpiredError):
        pipeline.submit_test(token, "late answer")
    with pytest.raises(NotFoundError):
        pipeline.resolve_token("not-a-token")


def test_second_submission_is_refused(pipeline, store, add_library_entry, make_intake):
    add_library_entry()
    _, submissions = submit_and_issue(pipeline, store, make_intake())
    token = submissions[0].token

    pipeline.submit_test(token, "first answer")

    with pytest.raises(AlreadySubmittedError):
        pipeline.submit_test(token, "second answer")
    assert store.get_submission(submissions[0].id).submitted_content == "first answer"


def test_consultant_goes_straight_to_staff_review(pipeline, store, oracle, notifier, make_consultant_intake):
    oracle.queue(PromptKind.PRESCREEN, CONSULTANT_PRESCREEN)

    application = pipeline.submit_application(make_consultant_intake())
    pipeline.run_pending_tasks()

    stored = store.get_application(application.id)
    assert stored.status == ApplicationStatus.STAFF_REVIEW
    assert stored.score == 78
    assert store.list_submissions(application_id=application.id) == []

    waitlisted = pipeline.staff.waitlist(application.id, "Revisit for Q3 oncology projects")
    assert waitlisted.status == ApplicationStatus.WAITLISTED
    assert waitlisted.waitlist_notes == "Revisit for Q3 oncology projects"


def test_missing_library_entry_leaves_combination_unassigned(pipeline, store, notifier, make_intake):
    application, submissions = submit_and_issue(pipeline, store, make_intake())

    assert submissions == []
    combination = store.list_combinations(application.id)[0]
    assert combination.status == CombinationStatus.NO_TEST_AVAILABLE
    assert notifier.count(Template.TEST_INVITATION) == 0


def test_import_library_keeps_valid_lines(pipeline, store, tmp_path: Path):
    library = tmp_path / "library.jsonl"
    good = {
        "title": "Consent form",
        "source_language": "EN",
        "target_language": "JA",
        "domain": "clinical",
        "service_type": "translation",
    }
    library.write_text(
        "\n".join(
            [
                json.dumps(good),
                "{not json",
                json.dumps({**good, "service_type": "dubbing"}),
                "",
                json.dumps({**good, "id": "lib-2", "difficulty": "advanced"}),
            ]
        ),
        encoding="utf-8",
    )

    imported, errors = pipeline.import_library(library)

    assert imported == 2
    assert len(errors) == 2
    assert errors[0].startswith("line 2:")
    assert errors[1].startswith("line 3:")
    assert store.get_library_entry("lib-2") is not None
