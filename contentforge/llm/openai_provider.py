"""OpenAI implementation: schema-constrained chat, vision and image generation."""

import base64
from typing import Any

from openai import APIError, APITimeoutError, OpenAI
from pydantic import BaseModel

from contentforge.articles.models import ArticleText
from contentforge.errors import GenerationTimeoutError, ProviderError
from contentforge.llm.base import GeneratedImage, parse_structured, strict_json_schema

# gpt-image-1 supports three sizes; DALL-E 3 uses wider landscape/portrait sizes
_GPT_IMAGE_SIZES = {"square": "1024x1024", "landscape": "1536x1024", "portrait": "1024x1536"}
_DALLE_SIZES = {"square": "1024x1024", "landscape": "1792x1024", "portrait": "1024x1792"}


def _orientation(aspect_ratio: str) -> str:
    try:
        w, h = (float(x) for x in aspect_ratio.split(":"))
    except ValueError:
        return "square"
    if w > h:
        return "landscape"
    if h > w:
        return "portrait"
    return "square"


class OpenAIProvider:
    """OpenAI text, vision and image generation with structured (JSON) output."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "gpt-4o",
        vision_model: str = "gpt-4o-mini",
        image_model: str = "gpt-image-1",
        timeout: float = 120.0,
        max_retries: int = 0,
    ):
        self._client = OpenAI(api_key=api_key, timeout=timeout, max_retries=max_retries)
        self._model = model
        self._vision_model = vision_model
        self._image_model = image_model

    def _chat(self, messages: list[dict[str, Any]], schema: type[BaseModel], model: str) -> str:
        try:
            response = self._client.chat.completions.create(
                model=model,
                messages=messages,
                response_format={
                    "type": "json_schema",
                    "json_schema": {
                        "name": schema.__name__,
                        "schema": strict_json_schema(schema),
                        "strict": True,
                    },
                },
            )
        except APITimeoutError as e:
            raise GenerationTimeoutError(f"OpenAI request timed out: {e}") from e
        except APIError as e:
            raise ProviderError(f"OpenAI API error: {e}") from e
        if not response.choices:
            raise ProviderError("OpenAI returned no choices")
        msg = response.choices[0].message
        refusal = getattr(msg, "refusal", None)
        if isinstance(refusal, str) and refusal:
            raise ProviderError(f"OpenAI refused the request: {refusal}")
        return msg.content or ""

    @staticmethod
    def _messages(system_prompt: str, user_content: Any) -> list[dict[str, Any]]:
        messages: list[dict[str, Any]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_content})
        return messages

    def complete_structured(self, prompt: str, schema: type[BaseModel], system_prompt: str = "", **kwargs: Any) -> BaseModel:
        raw = self._chat(self._messages(system_prompt, prompt), schema, kwargs.get("model") or self._model)
        return parse_structured(raw, schema)

    def generate_text(self, instruction: str, system_prompt: str) -> ArticleText:
        return self.complete_structured(instruction, ArticleText, system_prompt)

    def generate_vision_text(
        self, image_bytes: bytes, mime_type: str, instruction: str, system_prompt: str
    ) -> ArticleText:
        data_url = f"data:{mime_type};base64,{base64.b64encode(image_bytes).decode('ascii')}"
        content = [
            {"type": "image_url", "image_url": {"url": data_url}},
            {"type": "text", "text": instruction},
        ]
        raw = self._chat(self._messages(system_prompt, content), ArticleText, self._vision_model)
        return parse_structured(raw, ArticleText)

    def generate_image(self, prompt: str, aspect_ratio: str = "1:1") -> GeneratedImage:
        is_dalle = self._image_model.startswith("dall-e")
        sizes = _DALLE_SIZES if is_dalle else _GPT_IMAGE_SIZES
        kwargs: dict[str, Any] = {"size": sizes[_orientation(aspect_ratio)]}
        if is_dalle:
            kwargs["response_format"] = "b64_json"
        try:
            response = self._client.images.generate(
                model=self._image_model, prompt=prompt, n=1, **kwargs
            )
        except APITimeoutError as e:
            raise GenerationTimeoutError(f"OpenAI image request timed out: {e}") from e
        except APIError as e:
            raise ProviderError(f"OpenAI image API error: {e}") from e
        b64 = response.data[0].b64_json if response.data else None
        if not b64:
            raise ProviderError("No image generated")
        return GeneratedImage(data=base64.b64decode(b64), mime_type="image/png")
