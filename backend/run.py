"""Dev entry point: serve the ContentForge API with uvicorn.

Port comes from ``PORT`` via the settings; auto-reload is on unless
``CF_ENV`` names a non-development environment.
"""

import logging
import os

import uvicorn

from contentforge.config import get_settings


def main() -> None:
    settings = get_settings()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run(
        "backend.main:app",
        host=os.environ.get("CF_HOST", "0.0.0.0"),
        port=settings.port,
        reload=os.environ.get("CF_ENV", "development") == "development",
    )


if __name__ == "__main__":
    main()
