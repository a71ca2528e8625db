"""Website ingestion for website-mode jobs."""

from contentforge.ingest.url_scraper import page_excerpt, scrape_url

__all__ = ["page_excerpt", "scrape_url"]
