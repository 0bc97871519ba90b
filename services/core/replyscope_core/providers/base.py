"""Base scrape client interface and DTOs.

This module defines the provider-agnostic interface for scraping a social
conversation, along with normalized data transfer objects:
- ScrapedAuthor: Normalized author data
- ScrapedReply: Normalized reply in the conversation
- OriginalPost: The post that started the conversation
- ScrapeOptions: Query options for one scrape
- ScrapeResult: Original post (if requested) plus replies

Results cross a checkpoint boundary in the workflow, so every DTO converts
to and from plain JSON-compatible dicts.

Usage:
    class XScrapeClient(ScrapeClient):
        @property
        def provider_id(self) -> str:
            return "x"

        async def scrape(self, conversation_id, options, on_original_fetched=None):
            # Implementation
            pass
"""

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional, Union


def _dt_to_str(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _str_to_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


# =============================================================================
# DATA TRANSFER OBJECTS
# =============================================================================


@dataclass
class ScrapedAuthor:
    """Normalized author of a post or reply."""

    external_id: str
    username: str

    # Optional fields
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    followers: int = 0
    is_verified: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ScrapedAuthor":
        return cls(**data)


@dataclass
class ScrapedReply:
    """Normalized reply from a provider.

    Represents a single reply in a conversation, with all fields
    normalized to a consistent format across providers.
    """

    external_id: str
    text: str
    author: ScrapedAuthor

    # Optional fields
    created_at: Optional[datetime] = None
    conversation_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "external_id": self.external_id,
            "text": self.text,
            "author": asdict(self.author),
            "created_at": _dt_to_str(self.created_at),
            "conversation_id": self.conversation_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ScrapedReply":
        return cls(
            external_id=data["external_id"],
            text=data["text"],
            author=ScrapedAuthor.from_dict(data["author"]),
            created_at=_str_to_dt(data.get("created_at")),
            conversation_id=data.get("conversation_id"),
        )


@dataclass
class OriginalPost:
    """The post a conversation is rooted at."""

    external_id: str
    text: str
    author: ScrapedAuthor
    created_at: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "external_id": self.external_id,
            "text": self.text,
            "author": asdict(self.author),
            "created_at": _dt_to_str(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OriginalPost":
        return cls(
            external_id=data["external_id"],
            text=data["text"],
            author=ScrapedAuthor.from_dict(data["author"]),
            created_at=_str_to_dt(data.get("created_at")),
        )


@dataclass
class ScrapeOptions:
    """Options for a single conversation scrape."""

    sort: str = "Oldest"
    page_cap: int = 100
    blue_only: bool = False
    min_followers: Optional[int] = None
    include_original: bool = True
    since: Optional[datetime] = None


@dataclass
class ScrapeResult:
    """Result of a conversation scrape."""

    original_post: Optional[OriginalPost] = None
    replies: list[ScrapedReply] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "original_post": self.original_post.to_dict() if self.original_post else None,
            "replies": [reply.to_dict() for reply in self.replies],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ScrapeResult":
        original = data.get("original_post")
        return cls(
            original_post=OriginalPost.from_dict(original) if original else None,
            replies=[ScrapedReply.from_dict(item) for item in data.get("replies", [])],
        )


OriginalFetchedCallback = Callable[[OriginalPost], Union[None, Awaitable[None]]]


# =============================================================================
# SCRAPE CLIENT INTERFACE
# =============================================================================


class ScrapeError(Exception):
    """Raised when the provider fails to return replies."""

    def __init__(self, message: str, conversation_id: Optional[str] = None):
        super().__init__(message)
        self.conversation_id = conversation_id


class ScrapeClient(ABC):
    """Abstract base class for scrape clients.

    All scrape clients must implement this interface to provide
    a consistent API for the scrape workflow.
    """

    @property
    @abstractmethod
    def provider_id(self) -> str:
        """Return the unique provider identifier (e.g., 'x')."""
        ...

    @abstractmethod
    async def scrape(
        self,
        conversation_id: str,
        options: ScrapeOptions,
        on_original_fetched: Optional[OriginalFetchedCallback] = None,
    ) -> ScrapeResult:
        """Scrape a conversation's original post and replies.

        When ``options.include_original`` is set, the original post is
        fetched alongside the replies and ``on_original_fetched`` is invoked
        as soon as it resolves, before reply collection finishes. The
        callback may be a plain function or a coroutine function.

        Args:
            conversation_id: The external conversation ID.
            options: Query options.
            on_original_fetched: Early-delivery callback for the original post.

        Returns:
            ScrapeResult with the original post (or None) and replies.

        Raises:
            ScrapeError: If replies could not be fetched.
        """
        ...
