"""FastAPI backend for ContentForge: jobs, uploads, articles and settings."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel

from backend.auth import PUBLIC_PATHS, resolve_user
from backend.deps import status_for
from contentforge.errors import ContentForgeError
from contentforge.services import Services, build_services

logger = logging.getLogger(__name__)


class HealthResponse(BaseModel):
    status: str
    data_dir: str


def create_app(services: Optional[Services] = None, background: bool = True) -> FastAPI:
    """Build the app. ``background=False`` skips the scheduler thread and stale-job recovery."""
    services = services or build_services()
    settings = services.settings
    runner = services.runner()
    checker = services.scheduled_checker()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if background:
            runner.recover_stale(settings.cf_job_timeout_seconds)
            if settings.cf_scheduler_enabled:
                checker.start_in_thread()
        yield
        checker.stop()
        runner.shutdown(wait=False)

    app = FastAPI(
        title="ContentForge API",
        description="Batch social post generation, scheduling and webhook publishing.",
        version="0.3.0",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
        lifespan=lifespan,
    )
    app.state.services = services
    app.state.runner = runner
    app.state.job_client = services.job_client(runner)
    app.state.article_service = services.article_service()

    # ---------------------------------------------------------------------------
    # Authentication middleware: resolve the bearer token to an owner id
    # ---------------------------------------------------------------------------
    @app.middleware("http")
    async def auth_middleware(request: Request, call_next):
        path = request.url.path.rstrip("/")
        if (
            request.method == "OPTIONS"
            or path in PUBLIC_PATHS
            or f"{path}/" in PUBLIC_PATHS
            or not path.startswith("/api/")
        ):
            return await call_next(request)

        user_id = resolve_user(request.headers.get("authorization", ""), settings)
        if not user_id:
            return Response(
                content='{"detail":"Invalid or missing token"}',
                status_code=401,
                media_type="application/json",
                headers={"WWW-Authenticate": "Bearer"},
            )
        request.state.user_id = user_id
        return await call_next(request)

    @app.exception_handler(ContentForgeError)
    async def contentforge_error_handler(request: Request, exc: ContentForgeError):
        code = status_for(exc)
        if code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=code, content={"detail": str(exc), "kind": exc.kind})

    # CORS is added last so it wraps the auth middleware and 401s carry CORS headers
    if not settings.api_token_map:
        logger.warning("CF_API_TOKENS not set; API runs in local mode without authentication")
    logger.info("CORS configured for origins: %s", settings.cors_origin_list)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health", response_model=HealthResponse)
    @app.get("/api/health", response_model=HealthResponse)
    async def health():
        """Health check endpoint."""
        return HealthResponse(status="ok", data_dir=str(settings.data_dir))

    from backend.routes import articles, jobs, settings as settings_routes, uploads

    app.include_router(jobs.router, prefix="/api", tags=["jobs"])
    app.include_router(uploads.router, prefix="/api", tags=["uploads"])
    app.include_router(articles.router, prefix="/api", tags=["articles"])
    app.include_router(settings_routes.router, prefix="/api", tags=["settings"])

    app.mount(
        settings.cf_media_base_url.rstrip("/") or "/media",
        StaticFiles(directory=str(services.media.root)),
        name="media",
    )
    return app


def _create_default_app() -> FastAPI:
    logging.basicConfig(level=logging.INFO)
    return create_app()


app = _create_default_app()
