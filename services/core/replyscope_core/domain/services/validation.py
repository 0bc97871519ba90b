"""Validation helpers for report submissions.

Pure functions, no I/O:
- validate_source_url: X/Twitter post URL to conversation id
- parse_weights: preset or custom scoring weights, never fails
- meaningful_length: reply length without mentions and URLs
"""

import json
import re
from typing import Any, Optional, Union
from urllib.parse import urlsplit

from replyscope_core.domain.errors import InvalidUrl


# =============================================================================
# CONSTANTS
# =============================================================================

ALLOWED_HOSTS = {"x.com", "twitter.com"}

_HOST_PREFIX_RE = re.compile(r"^(www\.|mobile\.)")
_USERNAME_RE = re.compile(r"[A-Za-z0-9_]+")
_STATUS_ID_RE = re.compile(r"[0-9]+")
# Width of the conversation_id column
MAX_STATUS_ID_LENGTH = 32

# X usernames are 1-15 alphanumeric characters or underscores
_MENTION_RE = re.compile(r"@[A-Za-z0-9_]{1,15}")
_URL_RE = re.compile(r"https?://\S+", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")

WEIGHT_FIELDS = ("actionability", "specificity", "substantiveness", "constructiveness")
DEFAULT_WEIGHT = 25
MIN_WEIGHT = 0
MAX_WEIGHT = 100

WEIGHT_PRESETS: dict[str, dict[str, int]] = {
    "balanced": {
        "actionability": 25,
        "specificity": 25,
        "substantiveness": 25,
        "constructiveness": 25,
    },
    "research": {
        "actionability": 35,
        "specificity": 35,
        "substantiveness": 15,
        "constructiveness": 15,
    },
    "ideas": {
        "actionability": 15,
        "specificity": 15,
        "substantiveness": 40,
        "constructiveness": 30,
    },
    "feedback": {
        "actionability": 35,
        "specificity": 20,
        "substantiveness": 10,
        "constructiveness": 35,
    },
}

CUSTOM_PRESET = "custom"
DEFAULT_PRESET = "balanced"


# =============================================================================
# URL VALIDATION
# =============================================================================


def validate_source_url(raw: Optional[str]) -> str:
    """Validate an X post URL and extract its conversation id.

    Args:
        raw: The submitted URL.

    Returns:
        The numeric status segment, verbatim.

    Raises:
        InvalidUrl: If the URL is not an https x.com/twitter.com post URL.
    """
    trimmed = (raw or "").strip()
    if not trimmed:
        raise InvalidUrl("URL is required")

    try:
        parsed = urlsplit(trimmed)
        hostname = parsed.hostname
    except ValueError:
        raise InvalidUrl("Invalid URL format")

    if not parsed.scheme or not parsed.netloc or not hostname:
        raise InvalidUrl("Invalid URL format")

    if parsed.scheme.lower() != "https":
        raise InvalidUrl("URL must use https")

    if _HOST_PREFIX_RE.sub("", hostname, count=1) not in ALLOWED_HOSTS:
        raise InvalidUrl("URL must be from x.com or twitter.com")

    parts = [part for part in parsed.path.split("/") if part]
    if len(parts) < 3:
        raise InvalidUrl(
            "URL must include username and status ID (e.g., /username/status/123)"
        )

    username, status_keyword, status_id = parts[0], parts[1], parts[2]

    if not _USERNAME_RE.fullmatch(username):
        raise InvalidUrl("Invalid username in URL")

    if status_keyword != "status":
        raise InvalidUrl("URL must be a post URL containing /status/")

    if not _STATUS_ID_RE.fullmatch(status_id):
        raise InvalidUrl("Invalid status ID - must be a number")

    if len(status_id) > MAX_STATUS_ID_LENGTH:
        raise InvalidUrl("Invalid status ID - too long")

    return status_id


# =============================================================================
# WEIGHTS
# =============================================================================


def _clamp_weight(value: Any) -> Union[int, float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"weight must be a number, got {type(value).__name__}")
    if value != value:  # NaN
        raise ValueError("weight must not be NaN")
    return min(MAX_WEIGHT, max(MIN_WEIGHT, value))


def parse_weights(
    raw: Union[str, dict, None],
    preset: Optional[str],
) -> dict[str, Union[int, float]]:
    """Resolve scoring weights from a preset or a custom record.

    A known non-custom preset wins. Otherwise ``raw`` (JSON text or a mapping)
    is read field by field, clamped to [0, 100] with absent fields defaulting
    to 25. Any parse failure falls back to the balanced preset.

    Args:
        raw: Custom weights as JSON text or a dict.
        preset: Preset name.

    Returns:
        Dict with the four weight fields.
    """
    if preset and preset != CUSTOM_PRESET and preset in WEIGHT_PRESETS:
        return dict(WEIGHT_PRESETS[preset])

    if raw:
        try:
            record = json.loads(raw) if isinstance(raw, str) else raw
            if not isinstance(record, dict):
                raise TypeError("weights must be an object")
            return {
                name: _clamp_weight(
                    DEFAULT_WEIGHT if record.get(name) is None else record[name]
                )
                for name in WEIGHT_FIELDS
            }
        except (ValueError, TypeError, RecursionError):
            pass

    return dict(WEIGHT_PRESETS[DEFAULT_PRESET])


# =============================================================================
# TEXT
# =============================================================================


def strip_mentions(text: str) -> str:
    """Remove @mentions from text."""
    return _MENTION_RE.sub("", text).strip()


def strip_urls(text: str) -> str:
    """Remove http(s) URLs from text."""
    return _URL_RE.sub("", text).strip()


def meaningful_length(text: Optional[str]) -> int:
    """Length of text after removing mentions, URLs and extra whitespace.

    Example:
        meaningful_length("@user https://t.co/abc Check this out!") == 15
    """
    if not text:
        return 0
    normalized = strip_urls(strip_mentions(text))
    return len(_WHITESPACE_RE.sub(" ", normalized).strip())
