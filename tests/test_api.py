"""Tests for the HTTP API using FastAPI's TestClient on an app built over temp stores."""

from datetime import timedelta

import httpx
import pytest
from fastapi.testclient import TestClient

from backend.main import create_app
from contentforge.articles.models import Article
from contentforge.articles.store import new_article_id
from contentforge.config import Settings
from contentforge.jobs.client import JobClient
from contentforge.jobs.models import GenerationMode, utcnow
from contentforge.publishing.webhook import WebhookPublisher
from contentforge.services import Services
from conftest import PNG_BYTES, FakeProvider


def _services(tmp_path, job_store, article_store, settings_store, media, **settings):
    return Services(
        settings=Settings(_env_file=None, cf_data_dir=str(tmp_path), **settings),
        jobs=job_store,
        articles=article_store,
        user_settings=settings_store,
        media=media,
        publisher=WebhookPublisher(transport=httpx.MockTransport(lambda r: httpx.Response(200))),
        _provider=FakeProvider(),
    )


@pytest.fixture
def services(tmp_path, job_store, article_store, settings_store, media):
    return _services(tmp_path, job_store, article_store, settings_store, media)


@pytest.fixture
def app(services):
    return create_app(services, background=False)


@pytest.fixture
def api(app):
    return TestClient(app)


def _article(services, user_id="local"):
    return services.articles.create(
        Article(
            id=new_article_id(),
            user_id=user_id,
            title="Hello",
            content="World",
            image_prompt="a field",
            mode=GenerationMode.TOPICS,
        )
    )


def test_health(api):
    response = api.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_token_auth(tmp_path, job_store, article_store, settings_store, media):
    services = _services(tmp_path, job_store, article_store, settings_store, media, cf_api_tokens="tok:u1")
    api = TestClient(create_app(services, background=False))

    assert api.get("/api/health").status_code == 200
    assert api.get("/api/jobs").status_code == 401
    assert api.get("/api/jobs", headers={"Authorization": "Bearer wrong"}).status_code == 401

    response = api.post(
        "/api/jobs",
        json={"mode": "topics", "topic": "tea", "count": 1},
        headers={"Authorization": "Bearer tok"},
    )
    assert response.status_code == 201
    api.app.state.runner.shutdown(wait=True)
    assert job_store.get(response.json()["jobId"]).user_id == "u1"


def test_create_job_runs_in_background(api, app, article_store):
    response = api.post("/api/jobs", json={"mode": "topics", "topic": "tea", "count": 2})
    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "pending"

    app.state.runner.shutdown(wait=True)

    job = api.get(f"/api/jobs/{body['jobId']}").json()
    assert job["status"] == "completed"
    assert job["progress"] == 2
    assert job["percentage"] == 100
    assert len(job["articleIds"]) == 2
    assert len(api.get("/api/articles").json()) == 2
    assert [j["id"] for j in api.get("/api/jobs").json()] == [body["jobId"]]


def test_create_job_validation_error(api, job_store):
    response = api.post("/api/jobs", json={"mode": "topics", "topic": "tea", "count": 0})
    assert response.status_code == 400
    assert response.json()["kind"] == "validation"
    assert job_store.list_for_user("local") == []


def test_cancel_then_cancel_again(api, services):
    job_id = JobClient(services.jobs).create_job("local", {"mode": "topics", "topic": "tea"}, count=3)

    first = api.post(f"/api/jobs/{job_id}/cancel")
    assert first.status_code == 200
    assert first.json()["status"] == "cancelled"

    second = api.post(f"/api/jobs/{job_id}/cancel")
    assert second.status_code == 409
    assert second.json()["kind"] == "invalid_state"


def test_unknown_and_foreign_jobs_are_404(api, services):
    assert api.get("/api/jobs/job_missing").status_code == 404
    other = JobClient(services.jobs).create_job("someone-else", {"mode": "topics", "topic": "tea"}, count=1)
    assert api.get(f"/api/jobs/{other}").status_code == 404


def test_events_stream_ends_with_terminal_state(api, services):
    job_id = JobClient(services.jobs).create_job("local", {"mode": "topics", "topic": "tea"}, count=2)
    api.post(f"/api/jobs/{job_id}/cancel")

    response = api.get(f"/api/jobs/{job_id}/events")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.headers["cache-control"] == "no-cache"
    assert "event: progress" in response.text
    assert '"status": "cancelled"' in response.text


def test_upload_images(api):
    response = api.post(
        "/api/uploads/images",
        files=[("files", ("a.png", PNG_BYTES, "image/png")), ("files", ("b.png", PNG_BYTES, "image/png"))],
    )
    assert response.status_code == 201
    urls = response.json()["urls"]
    assert len(urls) == 2
    assert all(u.startswith("/media/local/") for u in urls)
    assert api.get(urls[0]).content == PNG_BYTES


def test_upload_rejects_non_images(api):
    response = api.post("/api/uploads/images", files=[("files", ("notes.txt", b"hi", "text/plain"))])
    assert response.status_code == 400


def test_article_lifecycle(api, services):
    article = _article(services)
    path = f"/api/articles/{article.id}"

    assert api.patch(path, json={"title": "Hello again"}).json()["title"] == "Hello again"

    when = (utcnow() + timedelta(hours=1)).isoformat()
    scheduled = api.post(f"{path}/schedule", json={"scheduledAt": when, "platforms": ["linkedin"]})
    assert scheduled.status_code == 200
    assert scheduled.json()["status"] == "scheduled"
    assert [a["id"] for a in api.get("/api/articles", params={"status": "scheduled"}).json()] == [article.id]
    assert api.post(f"{path}/unschedule").json()["status"] == "draft"

    no_hook = api.post(f"{path}/publish")
    assert no_hook.status_code == 502
    assert no_hook.json()["kind"] == "publish"

    api.put("/api/settings", json={"integration": {"webhookUrl": "https://hooks.test/x"}})
    assert api.post(f"{path}/publish").json()["status"] == "published"

    copy = api.post(f"{path}/duplicate")
    assert copy.status_code == 201
    assert copy.json()["status"] == "draft"

    assert api.delete(path).status_code == 204
    assert api.get(path).status_code == 404


def test_article_regeneration(api, services):
    article = _article(services)
    path = f"/api/articles/{article.id}"

    assert api.post(f"{path}/regenerate-text").json()["title"] == "Fresh title"
    assert api.post(f"{path}/regenerate-image-prompt").json()["imagePrompt"] == "a brand new scene, 4k, detailed"
    assert api.post(f"{path}/regenerate-image").json()["imageUrl"].startswith("/media/local/")


def test_articles_of_other_owners_are_hidden(api, services):
    article = _article(services, user_id="someone-else")
    assert api.get("/api/articles").json() == []
    assert api.get(f"/api/articles/{article.id}").status_code == 404


def test_settings_round_trip(api):
    defaults = api.get("/api/settings").json()
    assert defaults["ai"]["contentLanguage"] == "English"
    assert defaults["vision"]["imagePromptSuffix"] == "4k, detailed"

    updated = api.put("/api/settings", json={"ai": {"contentLanguage": "German"}})
    assert updated.status_code == 200
    assert api.get("/api/settings").json()["ai"]["contentLanguage"] == "German"
