"""Typer-based CLI for running the sitemap pipeline by hand."""

import os

os.environ.setdefault("LOGFIRE_IGNORE_NO_CONFIG", "1")

import asyncio
import json
from typing import List, Optional

import httpx
import typer

from sitemap_indexer.config import Settings, get_settings
from sitemap_indexer.context import AppContext, build_crawler, build_resolver, create_http_client
from sitemap_indexer.exceptions import SitemapNotFoundError
from sitemap_indexer.logging_config import configure_logging
from sitemap_indexer.models.site_models import SiteRecord
from sitemap_indexer.models.sitemap_models import PageItem
from sitemap_indexer.services.ranking import dedupe, select
from sitemap_indexer.services.renderer import get_renderer

app = typer.Typer(help="Discover, rank and crawl a site's sitemap.")


def _load_settings(renderer: str | None = None, concurrency: int | None = None) -> Settings:
    settings = get_settings()
    overrides = {}
    if renderer is not None:
        overrides["renderer_backend"] = renderer
    if concurrency is not None:
        overrides["crawl_concurrency"] = concurrency
    if overrides:
        settings = settings.model_copy(update=overrides)
    configure_logging(settings)
    return settings


def _print_pages(pages: List[PageItem]) -> None:
    typer.echo(json.dumps([p.model_dump(mode="json") for p in pages], indent=2))


async def _resolve_ranked(
    settings: Settings, url: str, limit: int, client: httpx.AsyncClient
) -> List[PageItem]:
    resolver = build_resolver(settings, client)
    return select(dedupe(await resolver.resolve(url)), limit)


@app.command()
def resolve(
    url: str = typer.Argument(..., help="Any absolute URL on the site"),
    limit: Optional[int] = typer.Option(None, help="Maximum URLs to list (default: MAX_CRAWL_LENGTH)"),
):
    """List the site's sitemap URLs, newest first, without crawling."""
    settings = _load_settings()

    async def run() -> List[PageItem]:
        async with create_http_client(settings) as client:
            return await _resolve_ranked(
                settings, url, limit or settings.max_crawl_length, client
            )

    try:
        items = asyncio.run(run())
    except SitemapNotFoundError as e:
        typer.secho(str(e), fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    for item in items:
        typer.echo(f"{item.lastmod}\t{item.url}")


@app.command()
def crawl(
    url: str = typer.Argument(..., help="Any absolute URL on the site"),
    limit: Optional[int] = typer.Option(None, help="Maximum pages to crawl"),
    renderer: Optional[str] = typer.Option(None, help="Rendering backend: chrome or http"),
    concurrency: Optional[int] = typer.Option(None, help="Concurrent page visits"),
):
    """Resolve and crawl locally, printing pages as JSON. Nothing is stored."""
    settings = _load_settings(renderer, concurrency)

    def report(progress: int) -> None:
        typer.echo(f"{progress}% complete", err=True)

    async def run() -> List[PageItem]:
        async with create_http_client(settings) as client:
            selected = await _resolve_ranked(
                settings, url, limit or settings.max_crawl_length, client
            )
        typer.echo(f"Crawling {len(selected)} pages", err=True)
        crawler = build_crawler(settings, get_renderer(settings))
        return await crawler.crawl(selected, report)

    try:
        pages = asyncio.run(run())
    except SitemapNotFoundError as e:
        typer.secho(str(e), fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    _print_pages(pages)


async def _process_with_context(settings: Settings, site_id: str):
    async with AppContext.create(settings) as context:
        return await context.dispatcher.run(site_id)


@app.command()
def process(
    site_id: str = typer.Argument(..., help="Id of an existing site record"),
):
    """Run the full pipeline for an existing site against the store."""
    settings = _load_settings()
    pages = asyncio.run(_process_with_context(settings, site_id))
    if pages is None:
        typer.secho("Sitemap processing failed; see the site's sitemap_error", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    typer.secho(f"Committed {len(pages)} pages", fg=typer.colors.GREEN)


@app.command()
def submit(
    url: str = typer.Argument(..., help="Absolute URL of the site to index"),
):
    """Create a site record for url and process it synchronously."""
    settings = _load_settings()

    async def run() -> SiteRecord | None:
        async with AppContext.create(settings) as context:
            site_id = context.trigger.submit_url(url)
            typer.echo(f"Site {site_id} created")
            await context.dispatcher.shutdown()
            return context.repository.get_site(site_id)

    try:
        site = asyncio.run(run())
    except ValueError as e:
        typer.secho(str(e), fg=typer.colors.RED, err=True)
        raise typer.Exit(2)
    if site is None or site.sitemap_error:
        reason = site.sitemap_error if site else "site disappeared"
        typer.secho(f"Sitemap processing failed: {reason}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    typer.secho(f"Sitemap {site.sitemap_id} complete", fg=typer.colors.GREEN)


if __name__ == "__main__":
    app()
