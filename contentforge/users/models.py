"""Per-owner settings consumed as generation and publishing parameters."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

DEFAULT_SYSTEM_PROMPT = "You are an expert social media manager specializing in viral content."

AspectRatio = Literal["1:1", "16:9", "9:16", "4:3", "3:4"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AISettings(_CamelModel):
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    content_language: str = "English"


class VisionSettings(_CamelModel):
    vision_system_prompt: str = ""
    image_prompt_suffix: str = "4k, detailed"
    image_aspect_ratio: AspectRatio = "1:1"


class PlatformIntegration(_CamelModel):
    enabled: bool = False
    webhook_url: str = ""


class PlatformsSettings(_CamelModel):
    facebook: PlatformIntegration = Field(default_factory=lambda: PlatformIntegration(enabled=True))
    linkedin: PlatformIntegration = Field(default_factory=PlatformIntegration)
    instagram: PlatformIntegration = Field(default_factory=PlatformIntegration)


class IntegrationSettings(_CamelModel):
    # Single legacy webhook, used when no platform webhook applies
    webhook_url: str = ""
    platforms: PlatformsSettings = Field(default_factory=PlatformsSettings)


class UserSettings(_CamelModel):
    ai: AISettings = Field(default_factory=AISettings)
    vision: VisionSettings = Field(default_factory=VisionSettings)
    integration: IntegrationSettings = Field(default_factory=IntegrationSettings)

    def webhook_targets(self, platforms: list[str] | None = None) -> dict[str, str]:
        """Resolve ``{platform: webhook_url}`` to post an article to.

        Enabled platforms with a webhook are used, restricted to ``platforms``
        when the article names any. With none left, the legacy webhook is
        returned under the key ``"webhook"``; an empty dict means there is
        nowhere to post.
        """
        wanted = {p.lower() for p in platforms} if platforms else None
        targets: dict[str, str] = {}
        for name in ("facebook", "linkedin", "instagram"):
            integration: PlatformIntegration = getattr(self.integration.platforms, name)
            if not integration.enabled or not integration.webhook_url.strip():
                continue
            if wanted is not None and name not in wanted:
                continue
            targets[name] = integration.webhook_url.strip()
        if not targets and self.integration.webhook_url.strip():
            targets["webhook"] = self.integration.webhook_url.strip()
        return targets


DEFAULT_SETTINGS = UserSettings()
