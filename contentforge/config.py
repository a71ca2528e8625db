"""Configuration loaded from environment (.env) and defaults."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Locate the project root .env file regardless of CWD
_THIS_DIR = Path(__file__).resolve().parent          # contentforge/
_PROJECT_ROOT = _THIS_DIR.parent
_ENV_FILE = _PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE) if _ENV_FILE.exists() else ".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Text provider: openai | anthropic
    cf_llm_provider: str = "openai"

    # Image provider (Anthropic has no image model, so this stays openai)
    cf_image_provider: str = "openai"

    # OpenAI
    openai_api_key: str | None = None
    cf_openai_model: str = "gpt-4o"
    cf_openai_vision_model: str = "gpt-4o-mini"
    cf_openai_image_model: str = "gpt-image-1"

    # Anthropic
    anthropic_api_key: str | None = None
    cf_anthropic_model: str = "claude-3-5-sonnet-20241022"

    # Per provider call timeout and SDK transport retries.
    # Retries stay at 0: a failing item aborts the batch.
    cf_provider_timeout_seconds: float = 120.0
    cf_provider_max_retries: int = 0

    # Wall-clock budget for a whole batch job (9 minutes)
    cf_job_timeout_seconds: float = 540.0

    # Worker pool size for concurrently running jobs
    cf_max_concurrent_jobs: int = 3

    # Scheduled post checker period ("every 5 minutes")
    cf_scheduler_interval_seconds: float = 300.0
    cf_scheduler_enabled: bool = True

    # Data directory for the file stores and stored media
    cf_data_dir: str = "./data"

    # Postgres URL; when unset the JSON file stores are used
    cf_database_url: str | None = None

    # Public URL prefix under which stored images are served
    cf_media_base_url: str = "/media"

    # API tokens, comma-separated "token:user_id" pairs
    cf_api_tokens: str = ""

    # CORS origins (comma-separated). Defaults to localhost dev.
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"

    # Server port
    port: int = 8000

    # Max upload size in bytes (default 10 MB per image)
    max_upload_bytes: int = 10 * 1024 * 1024

    @property
    def data_dir(self) -> Path:
        """Get data directory as Path.

        Relative paths are resolved against the project root (not CWD).
        """
        p = Path(self.cf_data_dir)
        if not p.is_absolute():
            return (_PROJECT_ROOT / p).resolve()
        return p.resolve()

    @property
    def media_dir(self) -> Path:
        """Directory holding uploaded and generated images."""
        return self.data_dir / "media"

    @property
    def cors_origin_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list."""
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def api_token_map(self) -> dict[str, str]:
        """Parse ``token:user_id`` pairs into a token -> user_id map."""
        tokens: dict[str, str] = {}
        for pair in self.cf_api_tokens.split(","):
            token, sep, user_id = pair.strip().partition(":")
            if sep and token and user_id:
                tokens[token] = user_id
        return tokens

    def ensure_dirs(self) -> None:
        """Ensure all data directories exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.media_dir.mkdir(parents=True, exist_ok=True)


def get_settings() -> Settings:
    settings = Settings()
    settings.ensure_dirs()
    return settings
