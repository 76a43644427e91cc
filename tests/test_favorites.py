"""
Tests for the favorites summary pipeline.
"""

import pytest

from assist.prompts import FAVORITES_SYSTEM_PROMPT
from portal.errors import InvalidInputError, ScoringOracleError
from portal.pipelines.favorites import load_favorite_items, summarize_favorites

from conftest import FakeGateway, InMemoryStore


class TestLoadFavoriteItems:
    """Tests for resolving favorites to rows."""

    @pytest.mark.asyncio
    async def test_groups_by_kind_and_skips_missing(self, store):
        items = await load_favorite_items(store, "user-p1")

        assert [row["id"] for row in items["trials"]] == ["trial-1"]
        assert [row["id"] for row in items["researchers"]] == ["res-1"]
        assert [row["id"] for row in items["publications"]] == ["pub-1"]

    @pytest.mark.asyncio
    async def test_user_without_favorites(self, store):
        items = await load_favorite_items(store, "user-nobody")

        assert items == {"trials": [], "researchers": [], "publications": []}


class TestSummarizeFavorites:
    """Tests for summary generation."""

    @pytest.mark.asyncio
    async def test_summary_and_counts(self, store):
        gateway = FakeGateway(reply="## Summary\n- Ask about eligibility")

        result = await summarize_favorites(store, gateway, user_id="user-p1")

        assert result.summary == "## Summary\n- Ask about eligibility"
        assert result.counts == {"trials": 1, "researchers": 1, "publications": 1}

        call = gateway.calls[0]
        assert call["temperature"] == 0.7
        assert call["messages"][0]["content"] == FAVORITES_SYSTEM_PROMPT
        user_prompt = call["messages"][1]["content"]
        assert "Clinical Trials (1):" in user_prompt
        assert "- Phase III Immunotherapy Trial: Checkpoint inhibitor" in user_prompt
        assert "- Dr. Ada Moreno, Glioblastoma immunology at Harbor Neuro Institute" in user_prompt
        assert "- PD-1 blockade in glioblastoma by Moreno A, Lee J (Neuro-Oncology, 2024)" in user_prompt

    @pytest.mark.asyncio
    async def test_user_without_favorites_gets_empty_counts(self):
        gateway = FakeGateway(reply="Nothing saved yet.")

        result = await summarize_favorites(InMemoryStore({}), gateway, user_id="u1")

        assert result.summary == "Nothing saved yet."
        assert result.counts == {"trials": 0, "researchers": 0, "publications": 0}
        assert "Clinical Trials (0):" in gateway.calls[0]["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_requires_user_id(self, store):
        gateway = FakeGateway(reply="unused")

        with pytest.raises(InvalidInputError, match="userId"):
            await summarize_favorites(store, gateway, user_id=None)

        assert store.calls == []

    @pytest.mark.asyncio
    async def test_gateway_failure(self, store):
        gateway = FakeGateway(error=ScoringOracleError("AI API error: 429"))

        with pytest.raises(ScoringOracleError, match="429"):
            await summarize_favorites(store, gateway, user_id="user-p1")
