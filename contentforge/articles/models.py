"""Article schema and the structured text a provider returns for one article."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from contentforge.jobs.models import GenerationMode, utcnow


class ArticleStatus(str, Enum):
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    PUBLISHED = "published"


class Article(BaseModel):
    """One generated content unit with its own publish lifecycle."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = ""
    user_id: str
    job_id: str | None = None
    title: str
    content: str
    image_url: str | None = None
    image_prompt: str | None = None
    topic: str | None = None
    mode: GenerationMode
    status: ArticleStatus = ArticleStatus.DRAFT
    scheduled_at: datetime | None = None
    platforms: list[str] | None = None
    # Webhook targets already posted to; a retry skips them
    posted_to: list[str] = Field(default_factory=list)
    published_at: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime | None = None

    @model_validator(mode="after")
    def _scheduled_has_time(self) -> "Article":
        if self.status == ArticleStatus.SCHEDULED and self.scheduled_at is None:
            raise ValueError("a scheduled article needs scheduledAt")
        return self

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @classmethod
    def from_record(cls, data: dict[str, Any]) -> "Article":
        return cls.model_validate(data)


class ArticleText(BaseModel):
    """Structured provider output for one article.

    Every field is required and non-empty; anything else is a malformed
    response.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    title: str = Field(description="A catchy and engaging title for the social media post.")
    content: str = Field(description="The main body of the post, formatted for readability.")
    image_prompt: str = Field(description="A detailed, creative prompt for an AI image generator.")

    @field_validator("title", "content", "image_prompt")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v.strip()


class RegeneratedText(BaseModel):
    title: str
    content: str

    @field_validator("title", "content")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v.strip()


class RegeneratedImagePrompt(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    image_prompt: str

    @field_validator("image_prompt")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v.strip()
