"""Provider adapter layer: OpenAI and Anthropic behind a common protocol."""

from contentforge.config import Settings
from contentforge.errors import ProviderError
from contentforge.llm.anthropic_provider import AnthropicProvider
from contentforge.llm.base import ContentProvider, GeneratedImage
from contentforge.llm.openai_provider import OpenAIProvider


def get_provider(provider_name: str, **kwargs: object) -> ContentProvider:
    """Return a provider instance. provider_name: 'openai' | 'anthropic'."""
    if provider_name.lower() == "anthropic":
        return AnthropicProvider(**kwargs)
    return OpenAIProvider(**kwargs)


def provider_from_settings(settings: Settings, provider_name: str | None = None) -> ContentProvider:
    """Build the configured provider once; callers inject it where needed."""
    name = (provider_name or settings.cf_llm_provider).lower()
    common = {
        "timeout": settings.cf_provider_timeout_seconds,
        "max_retries": settings.cf_provider_max_retries,
    }

    openai_provider = None
    if settings.openai_api_key:
        openai_provider = OpenAIProvider(
            api_key=settings.openai_api_key,
            model=settings.cf_openai_model,
            vision_model=settings.cf_openai_vision_model,
            image_model=settings.cf_openai_image_model,
            **common,
        )

    if name == "anthropic":
        if not settings.anthropic_api_key:
            raise ProviderError("API key not configured for provider 'anthropic'.")
        image_provider = openai_provider if settings.cf_image_provider == "openai" else None
        return AnthropicProvider(
            api_key=settings.anthropic_api_key,
            model=settings.cf_anthropic_model,
            image_provider=image_provider,
            **common,
        )

    if openai_provider is None:
        raise ProviderError("API key not configured for provider 'openai'.")
    return openai_provider


__all__ = [
    "ContentProvider",
    "GeneratedImage",
    "OpenAIProvider",
    "AnthropicProvider",
    "get_provider",
    "provider_from_settings",
]
