"""Article lifecycle after generation: edit, schedule, publish, regenerate."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable

from contentforge.articles.models import (
    Article,
    ArticleStatus,
    RegeneratedImagePrompt,
    RegeneratedText,
)
from contentforge.articles.store import ArticleStore, new_article_id
from contentforge.errors import InvalidStateError, NotFoundError, PublishError, ValidationError
from contentforge.jobs.models import utcnow
from contentforge.llm.base import ContentProvider, with_suffix
from contentforge.llm.prompts import (
    regenerate_image_prompt_instruction,
    regenerate_text_instruction,
)
from contentforge.media.storage import MediaStorage
from contentforge.publishing.webhook import WebhookPublisher
from contentforge.users.models import DEFAULT_SETTINGS, UserSettings
from contentforge.users.store import SettingsStore

logger = logging.getLogger(__name__)


def _aware(dt: datetime) -> datetime:
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


class ArticleService:
    def __init__(
        self,
        store: ArticleStore,
        settings_store: SettingsStore,
        publisher: WebhookPublisher,
        provider: ContentProvider | None = None,
        media: MediaStorage | None = None,
        provider_factory: Callable[[], ContentProvider] | None = None,
    ):
        self._store = store
        self._settings = settings_store
        self._publisher = publisher
        self._provider = provider
        self._media = media
        self._provider_factory = provider_factory

    def _owner_settings(self, user_id: str) -> UserSettings:
        return self._settings.get(user_id) or DEFAULT_SETTINGS

    def _require_provider(self) -> ContentProvider:
        if self._provider is None and self._provider_factory is not None:
            self._provider = self._provider_factory()
        if self._provider is None:
            raise ValidationError("No content provider configured")
        return self._provider

    def list(self, user_id: str, status: ArticleStatus | None = None) -> list[Article]:
        return self._store.list_for_user(user_id, status)

    def get(self, user_id: str, article_id: str) -> Article:
        article = self._store.get(article_id)
        if article is None or article.user_id != user_id:
            raise NotFoundError(f"Article not found: {article_id}")
        return article

    def _save(self, article_id: str, **fields) -> Article:
        updated = self._store.update(article_id, **fields)
        if updated is None:
            raise NotFoundError(f"Article not found: {article_id}")
        return updated

    def edit(
        self,
        user_id: str,
        article_id: str,
        title: str | None = None,
        content: str | None = None,
        image_url: str | None = None,
        image_prompt: str | None = None,
    ) -> Article:
        self.get(user_id, article_id)
        fields = {
            k: v
            for k, v in {
                "title": title,
                "content": content,
                "image_url": image_url,
                "image_prompt": image_prompt,
            }.items()
            if v is not None
        }
        for key in ("title", "content"):
            if key in fields and not fields[key].strip():
                raise ValidationError(f"{key} must not be empty")
        if not fields:
            return self.get(user_id, article_id)
        return self._save(article_id, **fields)

    # -- scheduling ------------------------------------------------------------

    def schedule(
        self,
        user_id: str,
        article_id: str,
        scheduled_at: datetime,
        platforms: list[str] | None = None,
    ) -> Article:
        article = self.get(user_id, article_id)
        if article.status == ArticleStatus.PUBLISHED:
            raise InvalidStateError(f"Article {article_id} is already published")
        scheduled_at = _aware(scheduled_at)
        if scheduled_at <= utcnow():
            raise ValidationError("Scheduled time must be in the future")
        logger.info("Article %s scheduled for %s", article_id, scheduled_at.isoformat())
        return self._save(
            article_id,
            status=ArticleStatus.SCHEDULED,
            scheduled_at=scheduled_at,
            platforms=platforms or article.platforms,
        )

    def unschedule(self, user_id: str, article_id: str) -> Article:
        article = self.get(user_id, article_id)
        if article.status != ArticleStatus.SCHEDULED:
            raise InvalidStateError(f"Article {article_id} is not scheduled")
        return self._save(article_id, status=ArticleStatus.DRAFT, scheduled_at=None)

    def publish_now(self, user_id: str, article_id: str) -> Article:
        """Post to every webhook target of the owner not yet posted to.

        Targets that succeed are recorded in ``posted_to`` even when another
        target fails, so a retry only posts to the rest. The article becomes
        published once every target has it.
        """
        article = self.get(user_id, article_id)
        targets = self._owner_settings(user_id).webhook_targets(article.platforms)
        if not targets:
            raise PublishError("Webhook URL is not configured. Please add it in Settings.")
        pending = {name: url for name, url in targets.items() if name not in article.posted_to}
        delivery = self._publisher.post_all(pending, article.title, article.content, article.image_url)
        posted_to = article.posted_to + delivery.posted
        if delivery.errors:
            if delivery.posted:
                self._save(article_id, posted_to=posted_to)
            raise PublishError(delivery.describe_errors())
        logger.info("Published article %s to %s", article_id, ", ".join(posted_to))
        return self._save(
            article_id,
            status=ArticleStatus.PUBLISHED,
            published_at=utcnow(),
            scheduled_at=None,
            posted_to=posted_to,
        )

    def duplicate(self, user_id: str, article_id: str) -> Article:
        article = self.get(user_id, article_id)
        copy = article.model_copy(
            update={
                "id": new_article_id(),
                "job_id": None,
                "posted_to": [],
                "status": ArticleStatus.DRAFT,
                "scheduled_at": None,
                "published_at": None,
                "created_at": utcnow(),
                "updated_at": None,
            }
        )
        return self._store.create(copy)

    def delete(self, user_id: str, article_id: str) -> None:
        self.get(user_id, article_id)
        self._store.delete(article_id)

    # -- single-article provider actions ---------------------------------------

    def regenerate_text(self, user_id: str, article_id: str) -> Article:
        """Rewrite title and content for a fresh take on the same subject."""
        article = self.get(user_id, article_id)
        provider = self._require_provider()
        settings = self._owner_settings(user_id)
        result = provider.complete_structured(
            regenerate_text_instruction(article.title, article.content, article.topic),
            RegeneratedText,
            settings.ai.system_prompt,
        )
        return self._save(article_id, title=result.title, content=result.content)

    def regenerate_image_prompt(self, user_id: str, article_id: str) -> Article:
        article = self.get(user_id, article_id)
        provider = self._require_provider()
        settings = self._owner_settings(user_id)
        suffix = settings.vision.image_prompt_suffix
        result = provider.complete_structured(
            regenerate_image_prompt_instruction(
                article.title, article.content, article.image_prompt, article.topic, suffix
            ),
            RegeneratedImagePrompt,
            settings.ai.system_prompt,
        )
        image_prompt = result.image_prompt
        if suffix and not image_prompt.rstrip(" .").endswith(suffix.strip()):
            image_prompt = with_suffix(image_prompt, suffix)
        return self._save(article_id, image_prompt=image_prompt)

    def regenerate_image(self, user_id: str, article_id: str) -> Article:
        """Generate a new image from the article's image prompt and store it."""
        article = self.get(user_id, article_id)
        if not article.image_prompt:
            raise ValidationError(f"Article {article_id} has no image prompt")
        if self._media is None:
            raise ValidationError("No media storage configured")
        provider = self._require_provider()
        settings = self._owner_settings(user_id)
        image = provider.generate_image(article.image_prompt, settings.vision.image_aspect_ratio)
        image_url = self._media.save(user_id, image.data, image.mime_type)
        return self._save(article_id, image_url=image_url)
