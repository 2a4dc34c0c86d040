import pytest

from conftest import make_record
from verifier.models import MatchResult, RunStatus
from verifier.store import InMemoryStore


def test_put_get_and_list_in_insertion_order():
    store = InMemoryStore()
    records = [make_record(email=f"p{i}@x.com") for i in range(5)]
    for record in records:
        store.put(record)

    assert store.list() == records
    assert store.get(records[2].id) is records[2]
    assert store.get("missing") is None


def test_update_result_requires_known_record():
    store = InMemoryStore()
    with pytest.raises(KeyError):
        store.update_result("missing", MatchResult(record_id="missing", candidate=None))


def test_update_result_replaces_previous():
    store = InMemoryStore()
    record = make_record()
    store.put(record)
    store.update_result(record.id, MatchResult(record_id=record.id, candidate=None))
    newer = MatchResult(record_id=record.id, candidate=None, name_match=True)
    store.update_result(record.id, newer)
    assert store.get_result(record.id) is newer


def test_processed_never_rolls_back():
    store = InMemoryStore()
    store.update_run_status(RunStatus.RUNNING, processed=5, total=10)
    store.update_run_status(processed=3)
    assert store.run.processed == 5
    store.update_run_status(processed=10)
    assert store.run.processed == 10


def test_update_run_status_sets_and_clears_error():
    store = InMemoryStore()
    store.update_run_status(RunStatus.FAILED, error="bad credentials")
    assert store.run.error == "bad credentials"
    store.update_run_status(RunStatus.RUNNING, error=None)
    assert store.run.error is None


def test_replace_records_discards_previous_upload():
    store = InMemoryStore()
    old = make_record()
    store.put(old)
    store.update_result(old.id, MatchResult(record_id=old.id, candidate=None))
    old_run_id = store.run.run_id

    new_records = [make_record(email="a@x.com"), make_record(email="b@x.com")]
    run = store.replace_records(new_records)

    assert store.list() == new_records
    assert store.get(old.id) is None
    assert store.get_result(old.id) is None
    assert run.status == RunStatus.PENDING
    assert run.total == 2
    assert run.processed == 0
    assert run.run_id != old_run_id
