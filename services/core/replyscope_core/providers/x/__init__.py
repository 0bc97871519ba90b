"""X (Twitter) provider integration.

This package contains:
- Apify-backed scrape client
- Dataset item mappers
"""

from replyscope_core.providers.x.adapter import (
    DEFAULT_ACTOR_ID,
    XScrapeClient,
    build_reply_query,
    get_scrape_client,
)

__all__ = [
    "DEFAULT_ACTOR_ID",
    "XScrapeClient",
    "build_reply_query",
    "get_scrape_client",
]
