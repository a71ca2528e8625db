"""URL scraping for website mode: fetch a page and extract its main content with trafilatura."""

from __future__ import annotations

import httpx
import trafilatura

from contentforge.errors import ProviderError

# Enough page text to ground a post without flooding the prompt
MAX_PAGE_CHARS = 6000


def scrape_url(url: str, timeout: float = 15.0) -> str:
    """
    Fetch URL and return extracted main text (boilerplate removed).
    Raises ProviderError on fetch errors; an empty string means nothing extractable.
    """
    try:
        with httpx.Client(follow_redirects=True, timeout=timeout) as client:
            response = client.get(url)
            response.raise_for_status()
            html = response.text
    except httpx.HTTPError as e:
        raise ProviderError(f"Failed to fetch website {url}: {e}") from e
    text = trafilatura.extract(html) or ""
    return text


def page_excerpt(url: str, timeout: float = 15.0, max_chars: int = MAX_PAGE_CHARS) -> str:
    """Main text of ``url`` trimmed to ``max_chars`` at a paragraph boundary when possible."""
    text = scrape_url(url, timeout=timeout).strip()
    if len(text) <= max_chars:
        return text
    cut = text[:max_chars]
    para = cut.rfind("\n\n")
    if para > max_chars // 2:
        cut = cut[:para]
    return cut.rstrip()
