"""Unit tests for the scrape client interface and DTOs."""

from datetime import datetime

import pytest

from replyscope_core.providers.base import (
    ScrapeClient,
    ScrapeError,
    ScrapeOptions,
    ScrapeResult,
)
from tests.factories import make_original, make_reply


class TestScrapeDTOs:
    """Tests for DTO serialization across checkpoint boundaries."""

    def test_result_to_dict_is_json_compatible(self):
        result = ScrapeResult(original_post=make_original(), replies=[make_reply("1")])

        data = result.to_dict()

        assert data["original_post"]["created_at"] == "2026-10-01T11:00:00"
        assert data["replies"][0]["external_id"] == "1"
        assert data["replies"][0]["author"]["username"] == "replier"

    def test_result_from_dict_restores_types(self):
        original = ScrapeResult(original_post=make_original(), replies=[make_reply("1")])

        restored = ScrapeResult.from_dict(original.to_dict())

        assert restored == original
        assert isinstance(restored.replies[0].created_at, datetime)

    def test_empty_result(self):
        restored = ScrapeResult.from_dict(ScrapeResult().to_dict())

        assert restored.original_post is None
        assert restored.replies == []

    def test_options_defaults(self):
        options = ScrapeOptions()

        assert options.sort == "Oldest"
        assert options.page_cap == 100
        assert options.include_original is True
        assert options.since is None


class TestScrapeClientInterface:
    def test_cannot_instantiate_abstract_client(self):
        with pytest.raises(TypeError):
            ScrapeClient()

    def test_scrape_error_carries_conversation(self):
        error = ScrapeError("actor failed", conversation_id="123")

        assert error.conversation_id == "123"
        assert "actor failed" in str(error)
