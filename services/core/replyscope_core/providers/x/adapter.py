"""X (Twitter) scrape client backed by an Apify actor.

Implements the ScrapeClient interface, mapping the actor's dataset items to
normalized DTOs.

Usage:
    client = XScrapeClient(token="...")

    result = await client.scrape(
        "1846987139428634858",
        ScrapeOptions(page_cap=100, include_original=True),
        on_original_fetched=save_original,
    )
"""

import asyncio
import inspect
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from apify_client import ApifyClientAsync

from replyscope_core.providers.base import (
    OriginalFetchedCallback,
    OriginalPost,
    ScrapeClient,
    ScrapedAuthor,
    ScrapedReply,
    ScrapeError,
    ScrapeOptions,
    ScrapeResult,
)

logger = logging.getLogger(__name__)

DEFAULT_ACTOR_ID = "kaitoeasyapi/twitter-x-data-tweet-scraper-pay-per-result-cheapest"
DEFAULT_TIMEOUT_SECS = 300

# Bot accounts excluded at query level
EXCLUDED_BOTS = ("grok",)

# Format of the actor's createdAt field, e.g. "Wed Oct 10 20:19:24 +0000 2018"
CREATED_AT_FORMAT = "%a %b %d %H:%M:%S %z %Y"


# =============================================================================
# MAPPERS
# =============================================================================


def parse_created_at(value: Optional[str]) -> Optional[datetime]:
    """Parse the actor's timestamp into a naive UTC datetime."""
    if not value:
        return None
    try:
        parsed = datetime.strptime(value, CREATED_AT_FORMAT)
    except ValueError:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            logger.debug("Unparseable createdAt", extra={"value": value})
            return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def is_valid_item(item: Any) -> bool:
    """Check a dataset item is a real tweet with the fields we need."""
    if not isinstance(item, dict):
        return False
    # The actor pads results with placeholder tweets
    if item.get("type") == "mock_tweet" or item.get("id") == -1:
        return False
    item_id = item.get("id")
    return (
        isinstance(item_id, (str, int))
        and not isinstance(item_id, bool)
        and isinstance(item.get("text"), str)
        and isinstance(item.get("createdAt"), str)
        and isinstance(item.get("author"), dict)
    )


def map_author(data: dict[str, Any]) -> ScrapedAuthor:
    followers = data.get("followers")
    return ScrapedAuthor(
        external_id=str(data.get("id") or ""),
        username=data.get("userName") or "",
        display_name=data.get("name"),
        avatar_url=data.get("profilePicture"),
        followers=followers if isinstance(followers, int) else 0,
        is_verified=bool(data.get("isBlueVerified")),
    )


def map_reply(item: dict[str, Any]) -> ScrapedReply:
    return ScrapedReply(
        # Ids exceed 2**53, always carry them as strings
        external_id=str(item["id"]),
        text=item["text"],
        author=map_author(item["author"]),
        created_at=parse_created_at(item.get("createdAt")),
        conversation_id=(
            str(item["conversationId"]) if item.get("conversationId") else None
        ),
    )


def map_original(item: dict[str, Any]) -> OriginalPost:
    return OriginalPost(
        external_id=str(item["id"]),
        text=item["text"],
        author=map_author(item["author"]),
        created_at=parse_created_at(item.get("createdAt")),
    )


def validate_items(items: list[Any]) -> list[dict[str, Any]]:
    """Drop placeholder and malformed dataset items."""
    valid = [item for item in items if is_valid_item(item)]
    dropped = len(items) - len(valid)
    if dropped:
        logger.info(
            "Filtered invalid dataset items",
            extra={"dropped": dropped, "total": len(items)},
        )
    return valid


def build_reply_query(
    conversation_id: str,
    since: Optional[datetime] = None,
    min_followers: Optional[int] = None,
) -> str:
    """Build the X search query for a conversation's replies."""
    query = f"conversation_id:{conversation_id} filter:replies"
    for bot in EXCLUDED_BOTS:
        query += f" -from:{bot}"
    if since is not None:
        query += f" since:{since.strftime('%Y-%m-%d')}"
    if min_followers:
        query += f" min_followers:{min_followers}"
    return query


# =============================================================================
# CLIENT
# =============================================================================


class XScrapeClient(ScrapeClient):
    """Scrape client for X conversations.

    The original post and the replies are fetched by two concurrent actor
    runs; the original-post callback fires as soon as the first resolves.
    """

    def __init__(
        self,
        token: Optional[str],
        actor_id: str = DEFAULT_ACTOR_ID,
        timeout_secs: int = DEFAULT_TIMEOUT_SECS,
        client: Optional[ApifyClientAsync] = None,
    ):
        """Initialize the X scrape client.

        Args:
            token: Apify API token.
            actor_id: Apify actor that scrapes X.
            timeout_secs: Per-run timeout.
            client: Optional pre-built Apify client (for testing).
        """
        self.actor_id = actor_id
        self.timeout_secs = timeout_secs
        self._client = client or ApifyClientAsync(token)

    @property
    def provider_id(self) -> str:
        """Return the provider identifier."""
        return "x"

    async def _run_actor(self, run_input: dict[str, Any]) -> list[Any]:
        """Run the actor and return its raw dataset items."""
        run = await self._client.actor(self.actor_id).call(
            run_input=run_input,
            timeout_secs=self.timeout_secs,
        )
        if not run:
            raise ScrapeError("Actor run returned no result")

        page = await self._client.dataset(run["defaultDatasetId"]).list_items(
            clean=False
        )
        return list(page.items)

    async def fetch_original(self, conversation_id: str) -> Optional[OriginalPost]:
        """Fetch the conversation's original post by id.

        Failures are logged and yield None.
        """
        logger.info("Fetching original post", extra={"conversation_id": conversation_id})
        try:
            items = await self._run_actor({"tweetIDs": [conversation_id], "maxItems": 1})
        except Exception as exc:
            logger.warning(
                "Failed to fetch original post",
                extra={"conversation_id": conversation_id, "error": str(exc)},
            )
            return None

        valid = validate_items(items)
        if not valid:
            logger.info(
                "No valid original post found",
                extra={"conversation_id": conversation_id},
            )
            return None

        return map_original(valid[0])

    async def fetch_replies(
        self,
        conversation_id: str,
        options: ScrapeOptions,
    ) -> list[ScrapedReply]:
        """Fetch up to ``options.page_cap`` replies.

        Raises:
            ScrapeError: If the actor run fails.
        """
        query = build_reply_query(
            conversation_id,
            since=options.since,
            min_followers=options.min_followers,
        )
        logger.info(
            "Fetching replies",
            extra={"query": query, "max_items": options.page_cap, "sort": options.sort},
        )

        try:
            items = await self._run_actor(
                {
                    "searchTerms": [query],
                    "maxItems": options.page_cap,
                    "sort": options.sort,
                }
            )
        except ScrapeError:
            raise
        except Exception as exc:
            raise ScrapeError(
                f"Failed to fetch replies: {exc}", conversation_id=conversation_id
            ) from exc

        return [map_reply(item) for item in validate_items(items)]

    async def scrape(
        self,
        conversation_id: str,
        options: ScrapeOptions,
        on_original_fetched: Optional[OriginalFetchedCallback] = None,
    ) -> ScrapeResult:
        """Scrape the original post (optionally) and replies concurrently."""

        async def original_with_callback() -> Optional[OriginalPost]:
            original = await self.fetch_original(conversation_id)
            if original is not None and on_original_fetched is not None:
                result = on_original_fetched(original)
                if inspect.isawaitable(result):
                    await result
            return original

        if options.include_original:
            original, replies = await asyncio.gather(
                original_with_callback(),
                self.fetch_replies(conversation_id, options),
            )
        else:
            original = None
            replies = await self.fetch_replies(conversation_id, options)

        logger.info(
            "Scrape complete",
            extra={
                "conversation_id": conversation_id,
                "original_found": original is not None,
                "replies": len(replies),
            },
        )
        return ScrapeResult(original_post=original, replies=replies)


def get_scrape_client() -> XScrapeClient:
    """Build the X scrape client from settings."""
    from replyscope_core.config import get_settings

    settings = get_settings()
    return XScrapeClient(
        token=settings.apify_token,
        actor_id=settings.apify_actor_id,
        timeout_secs=settings.apify_timeout_secs,
    )
