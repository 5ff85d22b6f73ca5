"""Site submission and sitemap status endpoints.

POST /sitemaps?url=... is a development convenience for starting a run;
in production sites are created by an upstream system that then calls
SiteTrigger.on_site_created().
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import ValidationError

from sitemap_indexer.context import AppContext
from sitemap_indexer.models.site_models import SiteRecord
from sitemap_indexer.models.sitemap_models import SitemapRecord

logger = logging.getLogger(__name__)
router = APIRouter()


def get_app_context(request: Request) -> AppContext:
    """Dependency returning the process-wide AppContext."""
    return request.app.state.context


@router.post("/sitemaps", status_code=202)
async def create_sitemap(
    url: str | None = None, context: AppContext = Depends(get_app_context)
):
    """Create a site for url and start building its sitemap."""
    if not url:
        raise HTTPException(status_code=400, detail="Missing url parameter")

    try:
        site_id = context.trigger.submit_url(url)
    except (ValidationError, ValueError) as e:
        logger.info("Rejected sitemap request for %r: %s", url, e)
        raise HTTPException(status_code=400, detail="Invalid url parameter") from e

    logger.info("Sitemap request accepted for %s (site %s)", url, site_id)
    return {"status": "Request is being processed", "site_id": site_id}


@router.get("/sites/{site_id}", response_model=SiteRecord)
async def get_site(site_id: str, context: AppContext = Depends(get_app_context)):
    """Return a site's processing state."""
    site = context.repository.get_site(site_id)
    if site is None:
        raise HTTPException(status_code=404, detail="Site not found")
    return site


@router.get("/sitemaps/{sitemap_id}", response_model=SitemapRecord)
async def get_sitemap(sitemap_id: str, context: AppContext = Depends(get_app_context)):
    """Return a sitemap record, including pages once complete."""
    sitemap = context.repository.get_sitemap(sitemap_id)
    if sitemap is None:
        raise HTTPException(status_code=404, detail="Sitemap not found")
    return sitemap
