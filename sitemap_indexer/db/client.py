"""Supabase client initialization."""

from supabase import create_client, Client

from sitemap_indexer.config import Settings, get_settings


def get_supabase_client(settings: Settings | None = None) -> Client:
    """Create a Supabase client from settings."""
    settings = settings or get_settings()
    return create_client(settings.supabase_url, settings.supabase_service_key)
