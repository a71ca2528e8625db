"""Article API: list, edit, schedule, publish and regenerate generated posts."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from backend.auth import current_user
from backend.deps import get_article_service
from contentforge.articles.models import ArticleStatus
from contentforge.articles.service import ArticleService

router = APIRouter()


class _CamelBody(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EditArticleRequest(_CamelBody):
    title: Optional[str] = None
    content: Optional[str] = None
    image_url: Optional[str] = None
    image_prompt: Optional[str] = None


class ScheduleRequest(_CamelBody):
    scheduled_at: datetime
    platforms: Optional[list[str]] = None


@router.get("/articles")
def list_articles(
    status_filter: Optional[ArticleStatus] = Query(None, alias="status"),
    user_id: str = Depends(current_user),
    service: ArticleService = Depends(get_article_service),
):
    return [a.to_record() for a in service.list(user_id, status_filter)]


@router.get("/articles/{article_id}")
def get_article(
    article_id: str,
    user_id: str = Depends(current_user),
    service: ArticleService = Depends(get_article_service),
):
    return service.get(user_id, article_id).to_record()


@router.patch("/articles/{article_id}")
def edit_article(
    article_id: str,
    body: EditArticleRequest,
    user_id: str = Depends(current_user),
    service: ArticleService = Depends(get_article_service),
):
    return service.edit(user_id, article_id, **body.model_dump(exclude_none=True)).to_record()


@router.delete("/articles/{article_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_article(
    article_id: str,
    user_id: str = Depends(current_user),
    service: ArticleService = Depends(get_article_service),
):
    service.delete(user_id, article_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/articles/{article_id}/schedule")
def schedule_article(
    article_id: str,
    body: ScheduleRequest,
    user_id: str = Depends(current_user),
    service: ArticleService = Depends(get_article_service),
):
    return service.schedule(user_id, article_id, body.scheduled_at, body.platforms).to_record()


@router.post("/articles/{article_id}/unschedule")
def unschedule_article(
    article_id: str,
    user_id: str = Depends(current_user),
    service: ArticleService = Depends(get_article_service),
):
    return service.unschedule(user_id, article_id).to_record()


@router.post("/articles/{article_id}/publish")
def publish_article(
    article_id: str,
    user_id: str = Depends(current_user),
    service: ArticleService = Depends(get_article_service),
):
    """Post the article to the owner's webhooks now."""
    return service.publish_now(user_id, article_id).to_record()


@router.post("/articles/{article_id}/duplicate", status_code=status.HTTP_201_CREATED)
def duplicate_article(
    article_id: str,
    user_id: str = Depends(current_user),
    service: ArticleService = Depends(get_article_service),
):
    return service.duplicate(user_id, article_id).to_record()


@router.post("/articles/{article_id}/regenerate-text")
def regenerate_text(
    article_id: str,
    user_id: str = Depends(current_user),
    service: ArticleService = Depends(get_article_service),
):
    return service.regenerate_text(user_id, article_id).to_record()


@router.post("/articles/{article_id}/regenerate-image-prompt")
def regenerate_image_prompt(
    article_id: str,
    user_id: str = Depends(current_user),
    service: ArticleService = Depends(get_article_service),
):
    return service.regenerate_image_prompt(user_id, article_id).to_record()


@router.post("/articles/{article_id}/regenerate-image")
def regenerate_image(
    article_id: str,
    user_id: str = Depends(current_user),
    service: ArticleService = Depends(get_article_service),
):
    return service.regenerate_image(user_id, article_id).to_record()
