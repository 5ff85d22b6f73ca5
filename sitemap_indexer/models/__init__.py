"""Domain models for sites, sitemaps and crawled pages."""
