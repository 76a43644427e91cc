"""Relevance search pipeline: fetch → score → enrich.

A single linear pass per request with no state kept between requests:
1. Fetch the four candidate collections concurrently
2. Ask the oracle to score every candidate (with a neutral fallback)
3. Join scores back onto the fetched rows
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from assist.gateway import ChatGateway
from assist.scoring import COLLECTIONS, ScoredItem, SearchContext, score_candidates
from portal.errors import DataFetchError, InvalidInputError
from portal.store import PortalStore, Row

logger = logging.getLogger(__name__)

# Response key → storage table
COLLECTION_TABLES = {
    "trials": "clinical_trials",
    "researchers": "researcher_profiles",
    "questions": "forum_questions",
    "publications": "publications",
}


@dataclass
class SearchResults:
    """Enriched results per collection, each sorted by matchScore descending."""
    trials: list[Row] = field(default_factory=list)
    researchers: list[Row] = field(default_factory=list)
    questions: list[Row] = field(default_factory=list)
    publications: list[Row] = field(default_factory=list)

    def as_dict(self) -> dict[str, list[Row]]:
        return {collection: getattr(self, collection) for collection in COLLECTIONS}


async def fetch_candidates(store: PortalStore) -> dict[str, list[Row]]:
    """Fetch every candidate collection in full, concurrently.

    The first failure fails the whole fetch. Reads already in flight are left
    to finish; their results are discarded.

    Raises:
        DataFetchError: If any collection cannot be read
    """
    try:
        results = await asyncio.gather(
            *(store.select(COLLECTION_TABLES[collection]) for collection in COLLECTIONS)
        )
    except DataFetchError:
        raise
    except Exception as e:
        logger.error(f"Candidate fetch failed: {e}", exc_info=True)
        raise DataFetchError(f"Failed to fetch search candidates: {e}") from e

    return {collection: list(rows or []) for collection, rows in zip(COLLECTIONS, results)}


def enrich_results(
    scored: dict[str, list[ScoredItem]],
    candidates: dict[str, list[Row]],
) -> SearchResults:
    """Merge each scored item onto its candidate row.

    Items whose id is not among the fetched candidates of the same collection
    are dropped. Order of `scored` is preserved.
    """
    enriched: dict[str, list[Row]] = {}
    for collection in COLLECTIONS:
        by_id = {str(row.get("id")): row for row in candidates.get(collection, [])}
        merged = []
        for item in scored.get(collection, []):
            row = by_id.get(item.id)
            if row is None:
                logger.debug(f"Dropping unknown {collection} id from oracle: {item.id}")
                continue
            merged.append({**row, "matchScore": item.score, "matchReason": item.reason})
        enriched[collection] = merged
    return SearchResults(**enriched)


async def run_search(
    store: PortalStore,
    gateway: ChatGateway,
    *,
    query: str | None,
    condition: str | None = None,
    user_type: str | None = None,
    location: str | None = None,
    filters: dict[str, Any] | None = None,
) -> SearchResults:
    """Execute the relevance search pipeline for one request.

    Args:
        store: Storage to read candidates from
        gateway: Language-model gateway used as the scoring oracle
        query: Free-text query (required)
        condition: Requester's condition, if any
        user_type: "patient" or "researcher"
        location: Requester's location, enables the proximity bonus
        filters: Accepted for compatibility; not applied

    Returns:
        SearchResults with enriched, score-ordered collections

    Raises:
        InvalidInputError: If the query is missing or blank
        DataFetchError: If a candidate collection cannot be read
        ScoringOracleError: If the oracle call fails
    """
    if not query or not query.strip():
        raise InvalidInputError("Query parameter is required")

    if filters:
        logger.debug(f"Ignoring search filters: {sorted(filters)}")

    logger.info(f"Starting search (userType={user_type or 'unknown'}, location={bool(location)})")

    candidates = await fetch_candidates(store)
    logger.info(
        "Fetched candidates: "
        + ", ".join(f"{len(candidates[c])} {c}" for c in COLLECTIONS)
    )

    context = SearchContext(
        query=query,
        condition=condition,
        user_type=user_type,
        location=location,
    )
    scored = await score_candidates(gateway, context, candidates)

    results = enrich_results(scored, candidates)
    logger.info(
        "Search completed: "
        + ", ".join(f"{len(getattr(results, c))} {c}" for c in COLLECTIONS)
    )
    return results
