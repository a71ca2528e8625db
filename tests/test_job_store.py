"""Tests for the file job store: compare-and-set updates, terminal immutability, change feed."""

import pytest

from contentforge.errors import InvalidStateError, StoreError
from contentforge.jobs.feed import JobFeed
from contentforge.jobs.models import GenerationJob, GenerationMode, JobStatus
from contentforge.jobs.store import FileJobStore, new_job_id


def _pending(user_id="u1", count=3):
    return GenerationJob(
        id=new_job_id(), user_id=user_id, mode=GenerationMode.TOPICS, topic="tea", count=count
    )


def test_create_and_get(job_store):
    job = job_store.create(_pending())
    assert job_store.get(job.id) == job
    assert job_store.get("job_missing") is None


def test_duplicate_create_is_rejected(job_store):
    job = job_store.create(_pending())
    with pytest.raises(StoreError):
        job_store.create(job)


def test_update_requires_expected_status(job_store):
    job = job_store.create(_pending())
    assert job_store.update(job.id, {JobStatus.PROCESSING}, progress=1) is None
    started = job_store.update(job.id, {JobStatus.PENDING}, status=JobStatus.PROCESSING)
    assert started.status == JobStatus.PROCESSING
    assert started.version == job.version + 1
    assert started.updated_at is not None


def test_terminal_records_are_never_modified(job_store):
    job = job_store.create(_pending())
    job_store.update(job.id, {JobStatus.PENDING}, status=JobStatus.CANCELLED)
    all_statuses = set(JobStatus)
    assert job_store.update(job.id, all_statuses, status=JobStatus.PROCESSING) is None
    assert job_store.get(job.id).status == JobStatus.CANCELLED


def test_progress_never_decreases(job_store):
    job = job_store.create(_pending())
    job_store.update(job.id, {JobStatus.PENDING}, status=JobStatus.PROCESSING, progress=2)
    with pytest.raises(InvalidStateError):
        job_store.update(job.id, {JobStatus.PROCESSING}, progress=1)


def test_update_missing_job_returns_none(job_store):
    assert job_store.update("job_nope", {JobStatus.PENDING}, status=JobStatus.PROCESSING) is None


def test_list_for_user_is_newest_first_and_scoped(job_store):
    first = job_store.create(_pending())
    second = job_store.create(_pending())
    job_store.create(_pending(user_id="someone-else"))
    ids = [j.id for j in job_store.list_for_user("u1")]
    assert set(ids) == {first.id, second.id}
    assert ids == sorted(ids, key=lambda i: job_store.get(i).created_at, reverse=True)


def test_list_by_status(job_store):
    a = job_store.create(_pending())
    b = job_store.create(_pending())
    job_store.update(b.id, {JobStatus.PENDING}, status=JobStatus.PROCESSING)
    assert [j.id for j in job_store.list_by_status({JobStatus.PENDING})] == [a.id]
    assert [j.id for j in job_store.list_by_status({JobStatus.PROCESSING})] == [b.id]


def test_records_survive_a_new_store_instance(tmp_path):
    store = FileJobStore(tmp_path)
    job = store.create(_pending())
    store.update(job.id, {JobStatus.PENDING}, status=JobStatus.PROCESSING)
    reopened = FileJobStore(tmp_path)
    assert reopened.get(job.id).status == JobStatus.PROCESSING


def test_corrupt_record_raises_store_error(tmp_path):
    store = FileJobStore(tmp_path)
    (tmp_path / "jobs" / "job_broken.json").write_text("{not json", encoding="utf-8")
    with pytest.raises(StoreError):
        store.get("job_broken")


def test_feed_delivers_writes_in_version_order(tmp_path):
    feed = JobFeed()
    store = FileJobStore(tmp_path, feed=feed)
    job = store.create(_pending())
    seen = []
    unsubscribe = feed.subscribe(job.id, lambda j: seen.append(j.version), current=lambda: store.get(job.id))
    store.update(job.id, {JobStatus.PENDING}, status=JobStatus.PROCESSING)
    store.update(job.id, {JobStatus.PROCESSING}, progress=1)
    # A stale record (older version) is dropped
    feed.publish(job)
    unsubscribe()
    store.update(job.id, {JobStatus.PROCESSING}, progress=2)
    assert seen == [0, 1, 2]
    assert feed.listener_count(job.id) == 0


def test_feed_listener_errors_do_not_break_writes(tmp_path):
    feed = JobFeed()
    store = FileJobStore(tmp_path, feed=feed)
    job = store.create(_pending())

    def broken(_job):
        raise RuntimeError("listener bug")

    feed.subscribe(job.id, broken)
    updated = store.update(job.id, {JobStatus.PENDING}, status=JobStatus.PROCESSING)
    assert updated.status == JobStatus.PROCESSING


def test_update_can_be_pinned_to_a_version(job_store):
    job = job_store.create(_pending())
    started = job_store.update(job.id, {JobStatus.PENDING}, status=JobStatus.PROCESSING)

    assert job_store.update(job.id, {JobStatus.PROCESSING}, expected_version=job.version, progress=1) is None
    moved = job_store.update(job.id, {JobStatus.PROCESSING}, expected_version=started.version, progress=1)
    assert moved.progress == 1
    assert moved.version == started.version + 1
