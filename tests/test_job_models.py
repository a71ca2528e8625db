"""Tests for job records: percentage, source validation, stored shape."""

import pytest
from pydantic import ValidationError

from contentforge.jobs.models import (
    GenerationJob,
    GenerationMode,
    ImageSource,
    JobProgress,
    JobStatus,
    TopicsSource,
    WebsiteSource,
    percentage,
)


def _job(**overrides):
    data = dict(id="job_1", user_id="u1", mode=GenerationMode.TOPICS, topic="coffee", count=4)
    data.update(overrides)
    return GenerationJob(**data)


def test_percentage_rounds_and_handles_zero_count():
    assert percentage(0, 3) == 0
    assert percentage(1, 3) == 33
    assert percentage(2, 3) == 67
    assert percentage(3, 3) == 100
    assert percentage(0, 0) == 0


@pytest.mark.parametrize("progress,count,expected", [(1, 8, 13), (1, 40, 3), (3, 8, 38), (1, 200, 1)])
def test_percentage_rounds_halves_up(progress, count, expected):
    assert percentage(progress, count) == expected


def test_progress_cannot_exceed_count():
    with pytest.raises(ValidationError):
        _job(progress=5)


def test_count_must_be_positive():
    with pytest.raises(ValidationError):
        _job(count=0)


def test_record_round_trip_preserves_every_field():
    job = _job(
        mode=GenerationMode.IMAGE,
        topic=None,
        image_urls=["/media/u1/a.jpg", "/media/u1/b.jpg"],
        count=2,
        language="Spanish",
        system_prompt="Be brief.",
        image_prompt_suffix="4k, detailed",
        status=JobStatus.FAILED,
        progress=1,
        error="boom",
        error_kind="provider",
        article_ids=["art_1"],
        version=3,
    )
    restored = GenerationJob.from_record(job.to_record())
    assert restored == job


def test_record_uses_camel_case_keys():
    record = _job(image_prompt_suffix="4k").to_record()
    assert record["userId"] == "u1"
    assert record["imagePromptSuffix"] == "4k"
    assert record["status"] == "pending"
    assert "image_prompt_suffix" not in record


def test_source_view_per_mode():
    assert _job().source == TopicsSource(topic="coffee")
    web = _job(mode=GenerationMode.WEBSITE, topic="https://example.com")
    assert web.source == WebsiteSource(url="https://example.com")
    img = _job(mode=GenerationMode.IMAGE, topic=None, image_urls=["/media/u1/a.jpg"], count=1)
    assert img.source == ImageSource(image_urls=["/media/u1/a.jpg"])


@pytest.mark.parametrize(
    "source",
    [
        {"mode": "topics", "topic": "   "},
        {"mode": "image", "imageUrls": []},
        {"mode": "image", "imageUrls": ["ok", " "]},
        {"mode": "website", "url": "ftp://example.com"},
    ],
)
def test_invalid_sources_are_rejected(source):
    model = {"topics": TopicsSource, "image": ImageSource, "website": WebsiteSource}[source["mode"]]
    with pytest.raises(ValidationError):
        model.model_validate(source)


def test_progress_view_hides_error_unless_failed():
    cancelled = _job(status=JobStatus.CANCELLED, progress=2, error="stale")
    view = JobProgress.from_job(cancelled)
    assert view.error is None
    assert (view.current, view.total, view.percentage) == (2, 4, 50)

    failed = JobProgress.from_job(_job(status=JobStatus.FAILED, progress=1, error="boom"))
    assert failed.error == "boom"
