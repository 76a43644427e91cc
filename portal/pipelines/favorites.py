"""Favorites summary pipeline.

Resolves a user's saved items and asks the gateway for a summary the user can
take to their doctor.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from assist.gateway import ChatGateway
from assist.prompts import FAVORITES_SYSTEM_PROMPT, build_favorites_prompt
from portal.config import settings
from portal.errors import InvalidInputError
from portal.store import PortalStore, Row

logger = logging.getLogger(__name__)

# favorites.item_type → (table, result key)
FAVORITE_TARGETS = {
    "trial": ("clinical_trials", "trials"),
    "researcher": ("researcher_profiles", "researchers"),
    "publication": ("publications", "publications"),
}


@dataclass
class FavoritesSummary:
    """Generated summary plus how many items of each kind it covers."""
    summary: str
    counts: dict[str, int] = field(default_factory=dict)


async def load_favorite_items(store: PortalStore, user_id: str) -> dict[str, list[Row]]:
    """Resolve the user's favorites to full rows, grouped by kind.

    Favorites pointing at missing rows or unknown item types are skipped.
    """
    favorites = await store.select("favorites", equals={"user_id": user_id})

    lookups = []
    for favorite in favorites:
        target = FAVORITE_TARGETS.get(favorite.get("item_type"))
        if target is None:
            logger.debug(f"Skipping favorite with unknown item type: {favorite.get('item_type')}")
            continue
        table, key = target
        lookups.append((key, store.get_one(table, id=favorite["item_id"])))

    rows = await asyncio.gather(*(lookup for _, lookup in lookups))

    items: dict[str, list[Row]] = {key: [] for _, key in FAVORITE_TARGETS.values()}
    for (key, _), row in zip(lookups, rows):
        if row is not None:
            items[key].append(row)
    return items


async def summarize_favorites(
    store: PortalStore,
    gateway: ChatGateway,
    *,
    user_id: str | None,
) -> FavoritesSummary:
    """Summarize a user's saved trials, researchers and publications.

    Raises:
        InvalidInputError: If no user id is given
        DataFetchError: If favorites cannot be loaded
        ScoringOracleError: If the gateway call fails
    """
    if not user_id:
        raise InvalidInputError("userId is required")

    items = await load_favorite_items(store, user_id)
    counts = {key: len(rows) for key, rows in items.items()}
    logger.info(f"Summarizing favorites for user {user_id}: {counts}")

    summary = await gateway.complete_chat(
        FAVORITES_SYSTEM_PROMPT,
        build_favorites_prompt(items["trials"], items["researchers"], items["publications"]),
        temperature=settings.gateway.summary_temperature,
    )

    return FavoritesSummary(summary=summary, counts=counts)
