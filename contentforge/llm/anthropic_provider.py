"""Anthropic implementation with structured output via JSON parse.

Claude has no image model; image generation is delegated to another provider
when one is configured.
"""

import base64
from typing import Any

from anthropic import Anthropic, APIError, APITimeoutError
from pydantic import BaseModel

from contentforge.articles.models import ArticleText
from contentforge.errors import GenerationTimeoutError, ProviderError
from contentforge.llm.base import (
    JSON_ONLY_INSTRUCTION,
    ContentProvider,
    GeneratedImage,
    parse_structured,
    schema_keys,
)


class AnthropicProvider:
    """Anthropic messages with structured (JSON) output."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "claude-3-5-sonnet-20241022",
        timeout: float = 120.0,
        max_retries: int = 0,
        image_provider: ContentProvider | None = None,
    ):
        self._client = Anthropic(api_key=api_key, timeout=timeout, max_retries=max_retries)
        self._model = model
        self._image_provider = image_provider

    def _message(self, content: Any, system_prompt: str, **kwargs: Any) -> str:
        params: dict[str, Any] = {
            "model": kwargs.get("model") or self._model,
            "max_tokens": kwargs.get("max_tokens", 4096),
            "messages": [{"role": "user", "content": content}],
        }
        if system_prompt:
            params["system"] = system_prompt
        try:
            response = self._client.messages.create(**params)
        except APITimeoutError as e:
            raise GenerationTimeoutError(f"Anthropic request timed out: {e}") from e
        except APIError as e:
            raise ProviderError(f"Anthropic API error: {e}") from e
        return "".join(getattr(block, "text", "") for block in response.content or [])

    @staticmethod
    def _json_instruction(schema: type[BaseModel]) -> str:
        keys = ", ".join(schema_keys(schema))
        return f"The JSON object must have exactly these string keys: {keys}. {JSON_ONLY_INSTRUCTION}"

    def complete_structured(self, prompt: str, schema: type[BaseModel], system_prompt: str = "", **kwargs: Any) -> BaseModel:
        full_prompt = f"{prompt}\n\n{self._json_instruction(schema)}"
        raw = self._message(full_prompt, system_prompt, **kwargs)
        return parse_structured(raw, schema)

    def generate_text(self, instruction: str, system_prompt: str) -> ArticleText:
        return self.complete_structured(instruction, ArticleText, system_prompt)

    def generate_vision_text(
        self, image_bytes: bytes, mime_type: str, instruction: str, system_prompt: str
    ) -> ArticleText:
        content = [
            {
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": mime_type,
                    "data": base64.b64encode(image_bytes).decode("ascii"),
                },
            },
            {"type": "text", "text": f"{instruction}\n\n{self._json_instruction(ArticleText)}"},
        ]
        raw = self._message(content, system_prompt)
        return parse_structured(raw, ArticleText)

    def generate_image(self, prompt: str, aspect_ratio: str = "1:1") -> GeneratedImage:
        if self._image_provider is None:
            raise ProviderError(
                "Anthropic cannot generate images; set OPENAI_API_KEY so images go through OpenAI"
            )
        return self._image_provider.generate_image(prompt, aspect_ratio)
