"""HTTP API process entry point.

Usage:
    docvault-api
    uvicorn handlers.api:get_app --factory
"""

from typing import Optional

import uvicorn
from fastapi import FastAPI

from docvault.api import create_app
from docvault.bootstrap import AppContext, build_context
from docvault.core import Settings, configure_logging, get_logger

logger = get_logger(__name__)

# Global context (initialized lazily)
_context: Optional[AppContext] = None


def _get_context() -> AppContext:
    """Get or create the application context."""
    global _context
    if _context is None:
        settings = Settings.from_env()
        configure_logging(level=settings.log_level, json_format=settings.log_json)
        _context = build_context(settings)
    return _context


def get_app() -> FastAPI:
    return create_app(_get_context())


def main() -> None:
    context = _get_context()
    settings = context.settings
    logger.info("api_starting", host=settings.api_host, port=settings.api_port)
    try:
        uvicorn.run(create_app(context), host=settings.api_host, port=settings.api_port)
    finally:
        context.close()


if __name__ == "__main__":
    main()
