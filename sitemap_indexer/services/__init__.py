"""Sitemap discovery, ranking, crawling and orchestration services."""
