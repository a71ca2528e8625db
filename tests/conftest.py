"""Pytest configuration and shared fixtures."""

import os
import tempfile

# Keep the module-level app and settings away from the project's data dir
os.environ.setdefault("CF_DATA_DIR", tempfile.mkdtemp(prefix="contentforge-test-"))
os.environ.setdefault("CF_SCHEDULER_ENABLED", "false")

import pytest

from contentforge.articles.models import ArticleText, RegeneratedImagePrompt, RegeneratedText
from contentforge.articles.store import FileArticleStore
from contentforge.errors import ProviderError
from contentforge.jobs.client import JobClient
from contentforge.jobs.processor import JobProcessor
from contentforge.jobs.store import FileJobStore
from contentforge.llm.base import GeneratedImage
from contentforge.media.storage import MediaStorage
from contentforge.users.store import FileSettingsStore

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16


class FakeProvider:
    """In-memory provider: numbered articles, optional failure and per-call hooks."""

    def __init__(self, fail_on_call=None, error=None, on_call=None):
        self.fail_on_call = fail_on_call
        self.error = error or ProviderError("model unavailable")
        self.on_call = on_call
        self.calls = 0
        self.text_calls = []
        self.vision_calls = []
        self.image_calls = []
        self.structured_calls = []

    def _next(self):
        self.calls += 1
        if self.on_call is not None:
            self.on_call(self.calls)
        if self.fail_on_call is not None and self.calls == self.fail_on_call:
            raise self.error
        n = self.calls
        return ArticleText(title=f"Title {n}", content=f"Content {n}", image_prompt=f"a picture {n}")

    def generate_text(self, instruction, system_prompt):
        self.text_calls.append((instruction, system_prompt))
        return self._next()

    def generate_vision_text(self, image_bytes, mime_type, instruction, system_prompt):
        self.vision_calls.append((image_bytes, mime_type, instruction, system_prompt))
        return self._next()

    def generate_image(self, prompt, aspect_ratio="1:1"):
        self.image_calls.append((prompt, aspect_ratio))
        return GeneratedImage(data=PNG_BYTES, mime_type="image/png")

    def complete_structured(self, prompt, schema, system_prompt="", **kwargs):
        self.structured_calls.append((prompt, schema))
        if schema is RegeneratedText:
            return RegeneratedText(title="Fresh title", content="Fresh content")
        if schema is RegeneratedImagePrompt:
            return RegeneratedImagePrompt(image_prompt="a brand new scene")
        return schema.model_validate({})


@pytest.fixture
def job_store(tmp_path):
    return FileJobStore(tmp_path)


@pytest.fixture
def article_store(tmp_path):
    return FileArticleStore(tmp_path)


@pytest.fixture
def settings_store(tmp_path):
    return FileSettingsStore(tmp_path)


@pytest.fixture
def media(tmp_path):
    return MediaStorage(tmp_path / "media", base_url="/media", max_upload_bytes=1024)


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def processor(job_store, article_store, provider, media):
    return JobProcessor(
        job_store,
        article_store,
        provider,
        media,
        job_timeout=30.0,
        call_timeout=10.0,
        page_fetcher=lambda url: "Acme launches a solar kettle.",
    )


@pytest.fixture
def client(job_store, settings_store):
    """Job client without a trigger; tests drive the processor themselves."""
    return JobClient(job_store, settings_store=settings_store)
