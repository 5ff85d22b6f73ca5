"""FastAPI application initialization."""

from contextlib import asynccontextmanager

import logfire
import sentry_sdk
from fastapi import FastAPI
from sentry_sdk.integrations.fastapi import FastApiIntegration

from sitemap_indexer.api import health, sitemaps
from sitemap_indexer.config import get_settings
from sitemap_indexer.context import AppContext
from sitemap_indexer.logging_config import setup_logfire

# Wait this long for in-flight sitemap runs before cancelling them (seconds)
GRACEFUL_SHUTDOWN_TIMEOUT_SECONDS = 30.0


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: build the shared context, drain it on shutdown."""
    settings = get_settings()

    # Initialize Logfire for observability
    setup_logfire(app)

    # Initialize Sentry if DSN is provided
    if settings.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            traces_sample_rate=settings.sentry_traces_sample_rate,
            integrations=[FastApiIntegration()],
        )

    context = AppContext.create(settings)
    app.state.context = context

    logfire.info(
        "Application startup complete",
        environment=settings.env,
        renderer_backend=settings.renderer_backend,
        crawl_concurrency=settings.crawl_concurrency,
    )

    yield

    logfire.info(
        "Application shutting down",
        pending_runs=context.dispatcher.pending,
    )
    await context.aclose(GRACEFUL_SHUTDOWN_TIMEOUT_SECONDS)


app = FastAPI(
    title="Sitemap Indexer",
    description="Discover, rank and crawl a site's sitemap into a title/description index",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router, tags=["health"])
app.include_router(sitemaps.router, tags=["sitemaps"])
