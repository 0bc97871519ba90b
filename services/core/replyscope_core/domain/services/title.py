"""Short report titles from the original post, via Gemini.

Title generation is cosmetic: every failure is logged and yields None.

Usage:
    generator = TitleGenerator(api_key="...")
    title = await generator.generate_title(post_text)
"""

import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com"
DEFAULT_MODEL = "gemini-2.0-flash"

MAX_INPUT_CHARS = 500
MAX_OUTPUT_TOKENS = 20
TEMPERATURE = 0.7

PROMPT_TEMPLATE = (
    "Generate a short, catchy title (3-5 words max) that summarizes this tweet.\n"
    "The title should be descriptive and help identify the topic at a glance.\n"
    "Do NOT use quotes or punctuation. Just return the title, nothing else.\n"
    "\n"
    'Tweet: "{text}"'
)

_QUOTES = "\"'"


def clean_title(raw: str) -> str:
    """Trim whitespace and one layer of surrounding quotes."""
    title = raw.strip()
    if title[:1] in _QUOTES:
        title = title[1:]
    if title[-1:] in _QUOTES:
        title = title[:-1]
    return title.strip()


class TitleGenerator:
    """Generates a 3-5 word title for a post."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _build_payload(self, text: str) -> dict:
        prompt = PROMPT_TEMPLATE.format(text=text[:MAX_INPUT_CHARS])
        return {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "maxOutputTokens": MAX_OUTPUT_TOKENS,
                "temperature": TEMPERATURE,
            },
        }

    async def generate_title(self, text: str) -> Optional[str]:
        """Generate a title for the given post text.

        Args:
            text: The original post text.

        Returns:
            The title, or None when no key is configured, the call fails or
            the model returns nothing.
        """
        if not self.api_key:
            logger.warning("No Gemini API key set, skipping title generation")
            return None

        url = f"{self.base_url}/v1beta/models/{self.model}:generateContent"

        try:
            # A fresh client per call: workers drive this from short-lived event loops
            async with httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                response = await client.post(
                    url,
                    json=self._build_payload(text),
                    headers={"x-goog-api-key": self.api_key},
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                "Title generation failed",
                extra={"status_code": e.response.status_code},
            )
            return None
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Title generation failed", extra={"error": str(e)})
            return None

        if not isinstance(data, dict):
            logger.error("Title generation returned a non-object body")
            return None

        error = data.get("error")
        if error:
            message = error.get("message") if isinstance(error, dict) else str(error)
            logger.error(
                "Title generation returned an error",
                extra={"error": message},
            )
            return None

        try:
            raw = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            raw = None

        title = clean_title(raw) if isinstance(raw, str) else ""
        if not title:
            logger.warning("No title generated")
            return None

        logger.info("Generated report title", extra={"title": title})
        return title


def get_title_generator() -> TitleGenerator:
    """Build the title generator from settings."""
    from replyscope_core.config import get_settings

    settings = get_settings()
    return TitleGenerator(
        api_key=settings.gemini_api_key,
        model=settings.gemini_model,
        base_url=settings.gemini_base_url,
        timeout=settings.gemini_timeout,
    )


__all__ = [
    "TitleGenerator",
    "clean_title",
    "get_title_generator",
]
