"""Centralized logging configuration with Pydantic Logfire integration."""

import logging
from typing import Any

import logfire
from fastapi import FastAPI

from sitemap_indexer.config import Settings, get_settings


def configure_logging(settings: Settings | None = None) -> None:
    """
    Configure Logfire and Python logging without web instrumentation.

    Used by the CLI; the API calls setup_logfire() which adds FastAPI
    instrumentation on top.
    """
    settings = settings or get_settings()

    logfire_config: dict[str, Any] = {
        "environment": settings.env,
        "send_to_logfire": "if-token-present",
    }

    # Add token if provided (for cloud logging)
    if settings.logfire_token:
        logfire_config["token"] = settings.logfire_token

    logfire.configure(**logfire_config)
    logfire.instrument_pydantic()

    log_level = settings.log_level.upper()

    if settings.env == "local":
        # Local: Console formatting for development
        logging.basicConfig(
            level=getattr(logging, log_level, logging.INFO),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )
    else:
        # Production: Structured JSON logging
        logging.basicConfig(
            level=getattr(logging, log_level, logging.INFO),
            format="%(message)s",  # Logfire handles structured formatting
        )


def setup_logfire(app: FastAPI) -> None:
    """
    Initialize and configure Pydantic Logfire for observability.

    Sets up:
    - FastAPI instrumentation (request/response tracing)
    - Pydantic instrumentation (model validation logging)
    - Environment-aware configuration
    - Structured JSON logging for production
    """
    configure_logging(get_settings())
    logfire.instrument_fastapi(app)


def redact_url_credentials(url: str | None) -> str:
    """
    Strip userinfo (user:password@) from a URL before logging it.

    Args:
        url: URL that may embed credentials

    Returns:
        URL with credentials replaced by ***
    """
    if not url:
        return ""

    scheme, sep, rest = url.partition("://")
    if not sep or "@" not in rest.split("/", 1)[0]:
        return url

    authority, slash, path = rest.partition("/")
    host = authority.rsplit("@", 1)[1]
    return f"{scheme}://***@{host}{slash}{path}"
