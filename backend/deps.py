"""Request-scoped access to the services the app was built with."""

from fastapi import Request

from contentforge.articles.service import ArticleService
from contentforge.errors import ContentForgeError
from contentforge.jobs.client import JobClient
from contentforge.services import Services

# HTTP status per error kind; anything unlisted is a 500
ERROR_STATUS = {
    "validation": 400,
    "not_found": 404,
    "invalid_state": 409,
    "publish": 502,
    "provider": 502,
    "timeout": 504,
    "store": 503,
}


def status_for(error: ContentForgeError) -> int:
    return ERROR_STATUS.get(error.kind, 500)


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_job_client(request: Request) -> JobClient:
    return request.app.state.job_client


def get_article_service(request: Request) -> ArticleService:
    return request.app.state.article_service
