"""Relevance scoring of search candidates by the language-model oracle.

The oracle returns loosely structured text. It is validated against a strict
schema (four arrays of {id, score, reason}); anything that does not validate
is replaced by a neutral default scoring so a bad reply never fails a search.
"""
from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from assist.gateway import ChatGateway
from assist.prompts import build_search_system_prompt, build_search_user_prompt
from portal.config import settings
from portal.errors import ScoringParseError

logger = logging.getLogger(__name__)

COLLECTIONS = ("trials", "researchers", "questions", "publications")

_FENCE_RE = re.compile(r"^```(?:json|JSON)?\s*(.*?)\s*```$", re.DOTALL)


class ScoredItem(BaseModel):
    """Oracle verdict for one candidate."""
    model_config = ConfigDict(extra="ignore")

    id: str
    score: int
    reason: str = ""

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> str:
        if isinstance(v, bool) or not isinstance(v, (str, int)):
            raise ValueError("id must be a string or integer")
        return str(v)

    @field_validator("score", mode="before")
    @classmethod
    def clamp_score(cls, v: Any) -> int:
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise ValueError("score must be a number")
        # ints are exact; isfinite() would overflow on very large ones
        if isinstance(v, float) and not math.isfinite(v):
            raise ValueError("score must be finite")
        return max(0, min(100, round(v)))

    @field_validator("reason", mode="before")
    @classmethod
    def default_reason(cls, v: Any) -> Any:
        if v is None:
            return ""
        if isinstance(v, (int, float)):
            return str(v)
        return v


class OracleScores(BaseModel):
    """Full oracle reply: one array per candidate collection."""
    model_config = ConfigDict(extra="ignore")

    trials: list[ScoredItem] = Field(default_factory=list)
    researchers: list[ScoredItem] = Field(default_factory=list)
    questions: list[ScoredItem] = Field(default_factory=list)
    publications: list[ScoredItem] = Field(default_factory=list)

    @field_validator("trials", "researchers", "questions", "publications", mode="before")
    @classmethod
    def null_as_empty(cls, v: Any) -> Any:
        return [] if v is None else v


@dataclass
class SearchContext:
    """Query plus requester context used to bias scoring."""
    query: str
    condition: str | None = None
    user_type: str | None = None
    location: str | None = None


def parse_oracle_scores(content: str) -> OracleScores:
    """Parse oracle output into OracleScores.

    Tolerates a surrounding markdown code fence.

    Raises:
        ScoringParseError: If the content is not JSON of the expected shape
    """
    text = (content or "").strip()
    fenced = _FENCE_RE.match(text)
    if fenced:
        text = fenced.group(1)

    try:
        return OracleScores.model_validate(json.loads(text))
    except (ValueError, RecursionError, ValidationError) as e:
        raise ScoringParseError(f"Unparsable oracle response: {e}") from e


def rank_scores(scores: OracleScores, min_score: int) -> dict[str, list[ScoredItem]]:
    """Drop items below `min_score` and sort each collection by score.

    Sorting is stable, so equal scores keep the oracle's order.
    """
    ranked = {}
    for collection in COLLECTIONS:
        kept = [item for item in getattr(scores, collection) if item.score >= min_score]
        kept.sort(key=lambda item: item.score, reverse=True)
        ranked[collection] = kept
    return ranked


def default_scores(
    candidates: Mapping[str, list[Mapping[str, Any]]],
    *,
    limit: int,
    score: int,
    reason: str,
) -> dict[str, list[ScoredItem]]:
    """Neutral scoring used when the oracle reply cannot be parsed.

    Takes the first `limit` candidates of each collection in fetch order.
    """
    return {
        collection: [
            ScoredItem(id=row["id"], score=score, reason=reason)
            for row in list(candidates.get(collection, []))[:limit]
        ]
        for collection in COLLECTIONS
    }


async def score_candidates(
    gateway: ChatGateway,
    context: SearchContext,
    candidates: Mapping[str, list[Mapping[str, Any]]],
) -> dict[str, list[ScoredItem]]:
    """Ask the oracle to score every candidate against the search context.

    Args:
        gateway: Language-model gateway client
        context: Query and requester context
        candidates: Raw rows per collection (keys from COLLECTIONS)

    Returns:
        Scored items per collection, filtered and sorted by score descending

    Raises:
        ScoringOracleError: If the gateway call fails
    """
    system_prompt = build_search_system_prompt(
        context.user_type,
        context.location,
        min_score=settings.search.min_score,
        location_bonus=settings.search.location_bonus,
    )
    user_prompt = build_search_user_prompt(
        context.query,
        condition=context.condition,
        user_type=context.user_type,
        location=context.location,
        candidates=candidates,
    )

    content = await gateway.complete_chat(
        system_prompt,
        user_prompt,
        temperature=settings.gateway.search_temperature,
    )

    try:
        parsed = parse_oracle_scores(content)
    except ScoringParseError as e:
        logger.warning(f"{e}; falling back to default scoring")
        return default_scores(
            candidates,
            limit=settings.search.fallback_limit,
            score=settings.search.fallback_score,
            reason=settings.search.fallback_reason,
        )

    return rank_scores(parsed, settings.search.min_score)
