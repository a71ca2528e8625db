"""Tests for the job client: validation, settings defaults, subscribe, cancel, stream, runner."""

import asyncio

import pytest

from contentforge.errors import InvalidStateError, NotFoundError, ProviderError, StoreError, ValidationError
from contentforge.jobs.client import JobClient
from contentforge.jobs.models import GenerationMode, JobStatus
from contentforge.jobs.runner import JobRunner
from contentforge.users.models import UserSettings


def test_create_job_persists_pending_record(client, job_store):
    job_id = client.create_job("u1", {"mode": "topics", "topic": " espresso "}, count=2, language="Italian")
    job = job_store.get(job_id)
    assert job.status == JobStatus.PENDING
    assert job.progress == 0
    assert job.topic == "espresso"
    assert job.language == "Italian"
    assert job.mode == GenerationMode.TOPICS


@pytest.mark.parametrize(
    "source,count",
    [
        ({"mode": "topics", "topic": "tea"}, 0),
        ({"mode": "topics", "topic": ""}, 2),
        ({"mode": "topics", "topic": "tea"}, None),
        ({"mode": "image", "image_urls": []}, None),
        ({"mode": "website", "url": "not-a-url"}, 1),
        ({"mode": "podcast"}, 1),
    ],
)
def test_invalid_requests_are_rejected_before_persisting(client, job_store, source, count):
    with pytest.raises(ValidationError):
        client.create_job("u1", source, count=count)
    assert job_store.list_for_user("u1") == []


def test_image_count_is_pinned_to_number_of_images(client, job_store):
    job_id = client.create_job("u1", {"mode": "image", "imageUrls": ["/media/u1/a.png", "/media/u1/b.png"]}, count=7)
    assert job_store.get(job_id).count == 2


def test_website_url_is_kept_in_topic(client, job_store):
    job_id = client.create_job("u1", {"mode": "website", "url": "https://example.com/post"}, count=1)
    job = job_store.get(job_id)
    assert job.mode == GenerationMode.WEBSITE
    assert job.topic == "https://example.com/post"


def test_on_created_fires_once_after_persisting(job_store):
    triggered = []
    client = JobClient(job_store, on_created=lambda job_id: triggered.append(job_store.get(job_id).status))
    client.create_job("u1", {"mode": "topics", "topic": "tea"}, count=1)
    assert triggered == [JobStatus.PENDING]


def test_create_from_settings_uses_owner_preferences(client, job_store, settings_store):
    prefs = UserSettings.model_validate(
        {
            "ai": {"systemPrompt": "Write like a poet.", "contentLanguage": "Dutch"},
            "vision": {"imagePromptSuffix": "watercolor", "imageAspectRatio": "16:9"},
        }
    )
    settings_store.save("u1", prefs)

    job = job_store.get(client.create_job_from_settings("u1", {"mode": "topics", "topic": "tulips"}, count=1))
    assert job.system_prompt == "Write like a poet."
    assert job.language == "Dutch"
    assert job.image_prompt_suffix == "watercolor"
    assert job.image_aspect_ratio == "16:9"

    override = client.create_job_from_settings("u1", {"mode": "topics", "topic": "tulips"}, count=1, language="English")
    assert job_store.get(override).language == "English"


def test_create_from_settings_falls_back_to_defaults(client, job_store):
    job = job_store.get(client.create_job_from_settings("new-user", {"mode": "topics", "topic": "x"}, count=1))
    assert job.language == "English"
    assert job.image_prompt_suffix == "4k, detailed"


def test_get_job_hides_other_owners_jobs(client):
    job_id = client.create_job("u1", {"mode": "topics", "topic": "tea"}, count=1)
    assert client.get_job(job_id, "u1").id == job_id
    with pytest.raises(NotFoundError):
        client.get_job(job_id, "u2")
    with pytest.raises(NotFoundError):
        client.get_job("job_missing")


def test_cancel_pending_job(client):
    job_id = client.create_job("u1", {"mode": "topics", "topic": "tea"}, count=3)
    cancelled = client.cancel(job_id, "u1")
    assert cancelled.status == JobStatus.CANCELLED
    assert cancelled.completed_at is not None


def test_cancel_terminal_job_is_rejected(client, processor):
    job_id = client.create_job("u1", {"mode": "topics", "topic": "tea"}, count=1)
    processor.process(job_id)
    with pytest.raises(InvalidStateError):
        client.cancel(job_id)

    other = client.create_job("u1", {"mode": "topics", "topic": "tea"}, count=1)
    client.cancel(other)
    with pytest.raises(InvalidStateError):
        client.cancel(other)


def test_cancel_unknown_job(client):
    with pytest.raises(NotFoundError):
        client.cancel("job_missing")


def test_subscribe_detaches_after_terminal_state(client, job_store, processor):
    job_id = client.create_job("u1", {"mode": "topics", "topic": "tea"}, count=2)
    seen = []
    client.subscribe(job_id, seen.append)
    processor.process(job_id)
    assert seen[-1].status == JobStatus.COMPLETED
    assert job_store.feed.listener_count(job_id) == 0


def test_subscribe_to_finished_job_delivers_once(client):
    job_id = client.create_job("u1", {"mode": "topics", "topic": "tea"}, count=2)
    client.cancel(job_id)
    seen = []
    unsubscribe = client.subscribe(job_id, seen.append)
    assert [j.status for j in seen] == [JobStatus.CANCELLED]
    unsubscribe()


def test_progress_view(client, processor):
    job_id = client.create_job("u1", {"mode": "topics", "topic": "tea"}, count=2)
    view = client.progress(processor.process(job_id))
    assert (view.current, view.total, view.percentage) == (2, 2, 100)


def test_stream_yields_until_terminal(client, processor):
    job_id = client.create_job("u1", {"mode": "topics", "topic": "tea"}, count=2)

    async def collect():
        events = []
        async for event in client.stream(job_id):
            events.append(event)
            if event.status == JobStatus.PENDING:
                await asyncio.get_running_loop().run_in_executor(None, processor.process, job_id)
        return events

    events = asyncio.run(collect())
    assert events[0].status == JobStatus.PENDING
    assert events[-1].status == JobStatus.COMPLETED
    assert events[-1].percentage == 100
    assert [e.current for e in events] == sorted(e.current for e in events)


def test_runner_processes_submitted_jobs(job_store, processor, article_store):
    runner = JobRunner(job_store, lambda: processor, max_workers=2)
    client = JobClient(job_store, on_created=runner.submit)
    job_id = client.create_job("u1", {"mode": "topics", "topic": "tea"}, count=2)
    runner.shutdown(wait=True)
    assert job_store.get(job_id).status == JobStatus.COMPLETED
    assert len(article_store.list_for_job(job_id)) == 2


def test_runner_fails_job_when_provider_cannot_be_built(job_store):
    def no_provider():
        raise ProviderError("API key not configured for provider 'openai'.")

    runner = JobRunner(job_store, no_provider)
    job_id = JobClient(job_store, on_created=runner.submit).create_job("u1", {"mode": "topics", "topic": "tea"}, count=1)
    runner.shutdown(wait=True)
    job = job_store.get(job_id)
    assert job.status == JobStatus.FAILED
    assert job.error_kind == "provider"
    assert "API key" in job.error


def test_runner_recovers_stale_jobs(job_store, processor, client):
    pending_id = client.create_job("u1", {"mode": "topics", "topic": "tea"}, count=1)
    stuck_id = client.create_job("u1", {"mode": "topics", "topic": "tea"}, count=2)
    job_store.update(stuck_id, {JobStatus.PENDING}, status=JobStatus.PROCESSING, progress=1)

    runner = JobRunner(job_store, lambda: processor)
    picked = runner.recover_stale(stale_after_seconds=0)
    runner.shutdown(wait=True)

    assert set(picked) == {pending_id, stuck_id}
    assert job_store.get(pending_id).status == JobStatus.COMPLETED
    assert job_store.get(stuck_id).status == JobStatus.COMPLETED


def test_runner_logs_when_failure_cannot_be_recorded(job_store, client, monkeypatch, caplog):
    job_id = client.create_job("u1", {"mode": "topics", "topic": "tea"}, count=1)

    def no_provider():
        raise ProviderError("API key not configured for provider 'openai'.")

    def broken_update(*args, **kwargs):
        raise StoreError("disk full")

    monkeypatch.setattr(job_store, "update", broken_update)
    runner = JobRunner(job_store, no_provider)

    with caplog.at_level("ERROR", logger="contentforge.jobs.runner"):
        assert runner.submit(job_id).result() is None
    runner.shutdown(wait=True)

    assert "Could not record failure" in caplog.text
    assert job_store.get(job_id).status == JobStatus.PENDING
