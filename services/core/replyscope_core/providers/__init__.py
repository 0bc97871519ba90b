"""Provider integrations for Replyscope.

This package contains provider-specific implementations:
- Base: Abstract scrape client interface and DTOs
- X: Apify-backed conversation scraper
"""

from replyscope_core.providers.base import (
    OriginalPost,
    ScrapeClient,
    ScrapedAuthor,
    ScrapedReply,
    ScrapeError,
    ScrapeOptions,
    ScrapeResult,
)

__all__ = [
    "OriginalPost",
    "ScrapeClient",
    "ScrapedAuthor",
    "ScrapedReply",
    "ScrapeError",
    "ScrapeOptions",
    "ScrapeResult",
]
