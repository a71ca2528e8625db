"""Generation job API.

POST /api/jobs                 → create a job, returns { jobId, status } immediately
GET  /api/jobs                 → the caller's recent jobs
GET  /api/jobs/{job_id}        → one job with its percentage
POST /api/jobs/{job_id}/cancel → cancel a pending or processing job
GET  /api/jobs/{job_id}/events → SSE progress stream, ends after the terminal state
"""

from __future__ import annotations

import json
import logging
from typing import Any, Literal, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from starlette.responses import StreamingResponse

from backend.auth import current_user
from backend.deps import get_job_client
from contentforge.jobs.client import JobClient
from contentforge.jobs.models import GenerationJob

logger = logging.getLogger(__name__)
router = APIRouter()

KEEPALIVE_SECONDS = 15.0


class CreateJobRequest(BaseModel):
    """Job creation form; generation parameters come from the owner's settings."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    mode: Literal["topics", "image", "website"] = "topics"
    topic: Optional[str] = None
    url: Optional[str] = None
    image_urls: Optional[list[str]] = None
    count: Optional[int] = Field(default=None)
    language: Optional[str] = None

    def source(self) -> dict[str, Any]:
        if self.mode == "image":
            return {"mode": "image", "image_urls": self.image_urls or []}
        if self.mode == "website":
            return {"mode": "website", "url": self.url or self.topic or ""}
        return {"mode": "topics", "topic": self.topic or ""}


class CreateJobResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    job_id: str
    status: str = "pending"


def _job_view(job: GenerationJob) -> dict[str, Any]:
    data = job.to_record()
    data["percentage"] = job.percentage
    return data


def _format_event(event_type: str, data: dict) -> str:
    return f"event: {event_type}\ndata: {json.dumps(data)}\n\n"


@router.post("/jobs", status_code=status.HTTP_201_CREATED)
def create_job(
    body: CreateJobRequest,
    user_id: str = Depends(current_user),
    client: JobClient = Depends(get_job_client),
):
    """Create a batch generation job; processing starts in the background."""
    job_id = client.create_job_from_settings(
        user_id, body.source(), count=body.count, language=body.language
    )
    return CreateJobResponse(job_id=job_id).model_dump(by_alias=True)


@router.get("/jobs")
def list_jobs(
    limit: int = 20,
    user_id: str = Depends(current_user),
    client: JobClient = Depends(get_job_client),
):
    return [_job_view(j) for j in client.list_jobs(user_id, limit=limit)]


@router.get("/jobs/{job_id}")
def get_job(
    job_id: str,
    user_id: str = Depends(current_user),
    client: JobClient = Depends(get_job_client),
):
    return _job_view(client.get_job(job_id, user_id))


@router.post("/jobs/{job_id}/cancel")
def cancel_job(
    job_id: str,
    user_id: str = Depends(current_user),
    client: JobClient = Depends(get_job_client),
):
    return _job_view(client.cancel(job_id, user_id))


@router.get("/jobs/{job_id}/events")
def stream_job_events(
    job_id: str,
    user_id: str = Depends(current_user),
    client: JobClient = Depends(get_job_client),
):
    """SSE stream of progress updates for one job."""
    client.get_job(job_id, user_id)

    async def events():
        async for progress in client.stream(job_id, user_id, keepalive=KEEPALIVE_SECONDS):
            if progress is None:
                yield ": keepalive\n\n"
                continue
            yield _format_event("progress", progress.model_dump(mode="json"))

    return StreamingResponse(
        events(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
