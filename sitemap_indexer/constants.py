"""Application-wide constants.

This module centralizes all magic numbers and configuration constants
to ensure a single source of truth and easier maintenance.

Every value here can be overridden through Settings (see config.py);
these are the conservative defaults.
"""

# =============================================================================
# Crawler Identity
# =============================================================================

# Name used in the self-identifying User-Agent for sitemap requests
CRAWLER_NAME = "SitemapIndexerBot"

# Informational URL embedded in the User-Agent
CRAWLER_INFO_URL = "https://www.example.com/bot"

# Browser-like User-Agent for page visits (many sites block headless defaults)
PAGE_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/127.0.0.0 Safari/537.36"
)

# Accept header for sitemap and robots.txt requests
SITEMAP_ACCEPT_HEADER = "application/xml, text/xml;q=0.9, */*;q=0.8"

# =============================================================================
# Sitemap Resolution
# =============================================================================

# Timeout for a single sitemap or robots.txt request (seconds)
SITEMAP_FETCH_TIMEOUT_SECONDS = 30.0

# Attempts per sitemap fetch before the error propagates
SITEMAP_FETCH_MAX_ATTEMPTS = 3

# Base delay between retries; the nth retry waits base * 2**n (seconds)
SITEMAP_RETRY_BASE_DELAY_SECONDS = 0.1

# Maximum sitemap-index nesting depth (root sitemap is depth 0)
MAX_SITEMAP_DEPTH = 5

# Maximum number of sitemap documents fetched for a single site
MAX_SITEMAP_FETCHES = 50

# Maximum number of pages to crawl from a sitemap (most recent first)
MAX_CRAWL_LENGTH = 300

# =============================================================================
# Page Crawling
# =============================================================================

# Concurrent page visits. Keep this low: sites rate limit or ban crawlers
# that open many simultaneous connections.
CRAWL_CONCURRENCY = 10

# Per-page navigation timeout (seconds)
PAGE_TIMEOUT_SECONDS = 20.0

# Delay between spawning pool workers (seconds)
WORKER_CREATION_DELAY_SECONDS = 0.1

# Document readiness state to wait for before extraction
WAIT_UNTIL_DOM_CONTENT_LOADED = "domcontentloaded"

# Selector and attribute for the page description
DESCRIPTION_SELECTOR = "meta[name='description']"
DESCRIPTION_ATTRIBUTE = "content"

# =============================================================================
# Orchestration
# =============================================================================

# Minimum progress advance (percentage points) between progress writes
PROGRESS_UPDATE_THRESHOLD = 10

# Wall-clock deadline for one processing run (seconds) - 15 minutes
CRAWL_TIMEOUT_SECONDS = 900.0

# Processing runs allowed at the same time. Each run spawns its own
# browser pool, so running several in parallel just bogs the host down.
MAX_CONCURRENT_DISPATCHES = 1

# =============================================================================
# Storage
# =============================================================================

SITES_TABLE = "sites"
SITEMAPS_TABLE = "sitemaps"

# Postgres function applying a list of writes in one transaction
COMMIT_WRITES_RPC = "commit_writes"

# =============================================================================
# Status Messages
# =============================================================================

STATUS_MESSAGE_FETCHING = "Fetching Sitemap"
STATUS_MESSAGE_CRAWLING = "Crawling {count} pages"
STATUS_MESSAGE_COMPLETE = "Complete"

ERROR_SITE_NOT_FOUND = "Site not found"
ERROR_SITEMAP_NOT_FOUND = "Sitemap not found"
ERROR_CRAWL_FAILED = "Failed to crawl sitemap"
ERROR_UNKNOWN = "Unknown error occurred"
ERROR_TIMED_OUT = "Sitemap processing timed out"
ERROR_CREATING_SITEMAP = "Error creating sitemap"
