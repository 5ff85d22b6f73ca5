"""Sitemap discovery, ranking and crawling into a title/description index."""

__version__ = "0.1.0"
