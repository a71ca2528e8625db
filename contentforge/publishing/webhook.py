"""Outbound webhook publishing (e.g. a Make.com / Zapier scenario per platform)."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import httpx

from contentforge.errors import ContentForgeError, PublishError, ValidationError

logger = logging.getLogger(__name__)


@dataclass
class Delivery:
    """Outcome of posting one article to several webhook targets."""

    posted: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)

    def describe_errors(self) -> str:
        failed = "; ".join(f"{name}: {error}" for name, error in self.errors.items())
        if self.posted:
            return f"Posted to {', '.join(self.posted)} but failed for {failed}"
        return f"Failed to post to {failed}"


class WebhookPublisher:
    """POSTs ``{title, content, imageUrl}`` as JSON to a webhook URL."""

    def __init__(self, timeout: float = 30.0, transport: httpx.BaseTransport | None = None):
        self._timeout = timeout
        self._transport = transport

    def post(self, url: str, title: str, content: str, image_url: str | None = None) -> int:
        """Send one article. Returns the HTTP status; raises PublishError on failure."""
        if not url or not url.strip():
            raise ValidationError("Webhook URL is not configured")
        if not url.lower().startswith(("http://", "https://")):
            raise ValidationError(f"Webhook URL must be http(s): {url}")
        if not title or not content:
            raise ValidationError("Article title and content are required to publish")

        payload = {"title": title, "content": content, "imageUrl": image_url or ""}
        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                response = client.post(url.strip(), json=payload)
        except httpx.HTTPError as e:
            raise PublishError(f"Webhook request failed: {e}") from e

        if not response.is_success:
            body = response.text[:300]
            raise PublishError(f"Webhook failed with status {response.status_code}: {body}")
        logger.info("Posted '%s' to webhook (%d)", title[:60], response.status_code)
        return response.status_code

    def post_all(
        self,
        targets: dict[str, str],
        title: str,
        content: str,
        image_url: str | None = None,
    ) -> Delivery:
        """Post to every ``{name: url}`` target; a failing target does not stop the rest."""
        delivery = Delivery()
        for name, url in targets.items():
            try:
                self.post(url, title, content, image_url)
            except ContentForgeError as e:
                logger.error("Posting to %s failed: %s", name, e)
                delivery.errors[name] = str(e)
            else:
                delivery.posted.append(name)
        return delivery
