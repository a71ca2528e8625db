"""Generative content provider protocol and shared response parsing."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Protocol, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from contentforge.articles.models import ArticleText
from contentforge.errors import ProviderError

T = TypeVar("T", bound=BaseModel)

JSON_ONLY_INSTRUCTION = (
    "Respond with a single JSON object only. No markdown, no code fence, no explanation."
)


@dataclass
class GeneratedImage:
    """One generated image, as raw bytes."""

    data: bytes
    mime_type: str = "image/png"


class ContentProvider(Protocol):
    """Text, vision and image generation behind one interface."""

    def complete_structured(self, prompt: str, schema: type[T], system_prompt: str = "", **kwargs: Any) -> T:
        """Return completion parsed into the given Pydantic model."""
        ...

    def generate_text(self, instruction: str, system_prompt: str) -> ArticleText:
        """Return {title, content, imagePrompt} for a text instruction."""
        ...

    def generate_vision_text(
        self, image_bytes: bytes, mime_type: str, instruction: str, system_prompt: str
    ) -> ArticleText:
        """Return {title, content, imagePrompt} for an image plus instruction."""
        ...

    def generate_image(self, prompt: str, aspect_ratio: str = "1:1") -> GeneratedImage:
        """Return exactly one image for the prompt."""
        ...


def strict_json_schema(schema: type[BaseModel]) -> dict[str, Any]:
    """Strict JSON schema for a flat model of string fields (wire names = aliases)."""
    properties: dict[str, Any] = {}
    for name, field in schema.model_fields.items():
        prop: dict[str, Any] = {"type": "string"}
        if field.description:
            prop["description"] = field.description
        properties[field.alias or name] = prop
    return {
        "type": "object",
        "properties": properties,
        "required": list(properties),
        "additionalProperties": False,
    }


def schema_keys(schema: type[BaseModel]) -> list[str]:
    return [field.alias or name for name, field in schema.model_fields.items()]


def parse_structured(raw: str | None, schema: type[T]) -> T:
    """Parse a provider's JSON answer into ``schema``.

    Empty output, non-JSON, a non-object payload or missing/empty required
    fields all raise ProviderError.
    """
    text = (raw or "").strip()
    if not text:
        raise ProviderError("Received empty response from provider")
    if text.startswith("```"):
        text = re.sub(r"^```\w*\n?", "", text)
        text = re.sub(r"\n?```\s*$", "", text)
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ProviderError(f"Provider returned invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ProviderError(
            f"Provider returned unexpected data structure ({type(data).__name__}, expected object)"
        )
    try:
        return schema.model_validate(data)
    except PydanticValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) or "?" for err in e.errors())
        raise ProviderError(f"Provider response missing or invalid fields: {fields}") from e


def with_suffix(image_prompt: str, suffix: str | None) -> str:
    """Append the configured image-prompt suffix (", <suffix>")."""
    if suffix and suffix.strip():
        return f"{image_prompt.strip()}, {suffix.strip()}"
    return image_prompt
