"""Generation job schema, status and mode-tagged sources."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GenerationMode(str, Enum):
    TOPICS = "topics"
    IMAGE = "image"
    WEBSITE = "website"


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED})
ACTIVE_STATUSES = frozenset({JobStatus.PENDING, JobStatus.PROCESSING})


def percentage(progress: int, count: int) -> int:
    """Progress as a whole percentage, halves rounded up; a job with no items reads as 0%."""
    if count <= 0:
        return 0
    return (200 * progress + count) // (2 * count)


# ---------------------------------------------------------------------------
# Mode-tagged sources: what a caller asks for
# ---------------------------------------------------------------------------

class TopicsSource(BaseModel):
    """Generate posts about a free-text topic."""

    mode: Literal["topics"] = "topics"
    topic: str

    @field_validator("topic")
    @classmethod
    def _topic_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("topic must not be empty")
        return v


class ImageSource(BaseModel):
    """One post per uploaded image; ``image_urls`` are durable storage references."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    mode: Literal["image"] = "image"
    image_urls: list[str] = Field(min_length=1)

    @field_validator("image_urls")
    @classmethod
    def _urls_not_blank(cls, v: list[str]) -> list[str]:
        if any(not u.strip() for u in v):
            raise ValueError("image references must not be empty")
        return v


class WebsiteSource(BaseModel):
    """Generate posts from the content of a web page."""

    mode: Literal["website"] = "website"
    url: str

    @field_validator("url")
    @classmethod
    def _http_url(cls, v: str) -> str:
        v = v.strip()
        if not v.lower().startswith(("http://", "https://")):
            raise ValueError("url must be an http(s) URL")
        return v


JobSource = Annotated[Union[TopicsSource, ImageSource, WebsiteSource], Field(discriminator="mode")]


# ---------------------------------------------------------------------------
# Persisted job record
# ---------------------------------------------------------------------------

class GenerationJob(BaseModel):
    """Batch generation job, persisted so progress survives restarts.

    Field names follow the stored record (camelCase) through aliases.
    ``version`` increases by one on every write and orders change
    notifications.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = ""
    user_id: str
    mode: GenerationMode
    topic: str | None = None
    image_urls: list[str] | None = None
    count: int = Field(ge=1)
    language: str = "English"
    system_prompt: str = ""
    image_prompt_suffix: str | None = None
    image_aspect_ratio: str = "1:1"
    status: JobStatus = JobStatus.PENDING
    progress: int = Field(default=0, ge=0)
    error: str | None = None
    error_kind: str | None = None
    article_ids: list[str] = Field(default_factory=list)
    version: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime | None = None
    started_at: datetime | None = None
    resumed_at: datetime | None = None
    completed_at: datetime | None = None

    @model_validator(mode="after")
    def _progress_within_count(self) -> "GenerationJob":
        if self.progress > self.count:
            raise ValueError(f"progress {self.progress} exceeds count {self.count}")
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def percentage(self) -> int:
        return percentage(self.progress, self.count)

    @property
    def source(self) -> TopicsSource | ImageSource | WebsiteSource:
        """The mode-tagged view of this record's inputs."""
        if self.mode == GenerationMode.IMAGE:
            return ImageSource(image_urls=list(self.image_urls or []))
        if self.mode == GenerationMode.WEBSITE:
            return WebsiteSource(url=self.topic or "")
        return TopicsSource(topic=self.topic or "")

    def to_record(self) -> dict[str, Any]:
        """JSON-safe dict in the stored (camelCase) shape."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @classmethod
    def from_record(cls, data: dict[str, Any]) -> "GenerationJob":
        return cls.model_validate(data)


class JobProgress(BaseModel):
    """Progress view handed to callers and the UI layer."""

    job_id: str
    status: JobStatus
    current: int = 0
    total: int = 0
    percentage: int = 0
    error: str | None = None

    @classmethod
    def from_job(cls, job: GenerationJob) -> "JobProgress":
        return cls(
            job_id=job.id,
            status=job.status,
            current=job.progress,
            total=job.count,
            percentage=job.percentage,
            # Clean cancellation carries no error banner
            error=job.error if job.status == JobStatus.FAILED else None,
        )
