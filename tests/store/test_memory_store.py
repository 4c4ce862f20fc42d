from __future__ import annotations

import uuid

import pytest

from hrpipeline.schemas import (
    Application,
    ApplicationStatus,
    OutboxTask,
    RejectionEmailStatus,
    SkillsProviderProfile,
    SubmissionStatus,
    TaskStatus,
    TestSubmission,
)
from hrpipeline.store import EntityStore, InMemoryStore


def _application(clock, **overrides) -> Application:
    fields = {
        "id": uuid.uuid4().hex,
        "application_number": "APP-26-0001",
        "full_name": "Ana Souza",
        "email": "ana@example.com",
        "country": "Brazil",
        "profile": SkillsProviderProfile(
            language_pairs=[{"source_language": "EN", "target_language": "PT", "domains": ["medical"]}],
            services_offered=["translation"],
        ),
        "created_at": clock(),
        "updated_at": clock(),
    }
    fields.update(overrides)
    return Application(**fields)


def _submission(clock, **overrides) -> TestSubmission:
    fields = {
        "id": uuid.uuid4().hex,
        "combination_id": "comb",
        "application_id": "app",
        "test_id": "test",
        "token": uuid.uuid4().hex,
        "token_expires_at": clock().add(hours=48),
        "created_at": clock(),
        "updated_at": clock(),
    }
    fields.update(overrides)
    return TestSubmission(**fields)


def test_store_satisfies_protocol(store):
    assert isinstance(store, EntityStore)


def test_compare_and_set_on_status(store, clock):
    application = store.insert_application(_application(clock))

    moved = store.update_application(
        application.id,
        {"status": ApplicationStatus.PRESCREENING},
        expected_status={ApplicationStatus.SUBMITTED},
    )
    assert moved.status == ApplicationStatus.PRESCREENING

    stale = store.update_application(
        application.id,
        {"status": ApplicationStatus.PRESCREENING},
        expected_status={ApplicationStatus.SUBMITTED},
    )
    assert stale is None


def test_where_clause_on_nested_field(store, clock):
    application = store.insert_application(_application(clock))
    rejection = application.rejection.model_copy(update={"email_status": RejectionEmailStatus.SENT})

    assert (
        store.update_application(
            application.id,
            {"rejection": rejection},
            where={"rejection.email_status": RejectionEmailStatus.QUEUED},
        )
        is None
    )
    assert store.update_application(application.id, {"rejection": rejection}, where={"rejection.email_status": None})


def test_update_stamps_updated_at(store, clock):
    application = store.insert_application(_application(clock))
    clock.advance(minutes=5)

    updated = store.update_application(application.id, {"staff_notes": "hi"})

    assert updated.updated_at == clock()


def test_returned_rows_are_copies(store, clock):
    application = store.insert_application(_application(clock))
    fetched = store.get_application(application.id)
    fetched.negotiation_log.append("mutated")

    assert store.get_application(application.id).negotiation_log == []


def test_tokens_are_immutable(store, clock):
    submission = store.insert_submission(_submission(clock))

    with pytest.raises(ValueError):
        store.update_submission(submission.id, {"token_expires_at": clock().add(days=1)})
    with pytest.raises(ValueError):
        store.insert_submission(_submission(clock, token=submission.token))


def test_require_null_blocks_second_claim(store, clock):
    submission = store.insert_submission(_submission(clock))

    first = store.update_submission(
        submission.id,
        {"reminder_day2_sent_at": clock()},
        require_null=("reminder_day2_sent_at",),
    )
    second = store.update_submission(
        submission.id,
        {"reminder_day2_sent_at": clock()},
        require_null=("reminder_day2_sent_at",),
    )

    assert first is not None
    assert second is None


def test_list_submissions_filters(store, clock):
    old = store.insert_submission(_submission(clock))
    clock.advance(hours=30)
    store.insert_submission(_submission(clock, status=SubmissionStatus.SUBMITTED))
    fresh = store.insert_submission(_submission(clock))

    rows = store.list_submissions(
        statuses={SubmissionStatus.SENT},
        created_before=clock().subtract(hours=24),
        null_fields=("reminder_day2_sent_at",),
    )
    assert [row.id for row in rows] == [old.id]

    rows = store.list_submissions(expires_after=clock().add(hours=20))
    assert {row.id for row in rows} >= {fresh.id}
    assert old.id not in {row.id for row in rows}

    assert len(store.list_submissions(limit=1)) == 1


def test_library_counters_increment(store, clock, add_library_entry):
    entry = add_library_entry()

    store.increment_library_usage(entry.id, clock())
    store.increment_library_usage(entry.id, clock())
    store.increment_library_outcome(entry.id, passed=True)
    store.increment_library_outcome(entry.id, passed=False)
    store.increment_library_outcome(entry.id, passed=False)

    stored = store.get_library_entry(entry.id)
    assert (stored.times_used, stored.pass_count, stored.fail_count) == (2, 1, 2)
    assert stored.last_used_at == clock()


def test_inactive_entries_hidden_by_default(store, add_library_entry):
    add_library_entry(is_active=False)

    filters = dict(source_language="EN", target_language="PT-BR", domain="medical", service_type="translation")
    assert store.list_library_entries(**filters) == []
    assert len(store.list_library_entries(active_only=False, **filters)) == 1


def test_outbox_claims_each_task_once(clock):
    store = InMemoryStore(now_provider=clock)
    store.enqueue_task(OutboxTask(id="t1", kind="prescreen", created_at=clock()))

    claimed = store.claim_next_task()

    assert claimed.status == TaskStatus.RUNNING
    assert claimed.attempts == 1
    assert store.claim_next_task() is None
