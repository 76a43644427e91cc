"""Storage access for the pipelines.

The pipelines only need a narrow list/filter/select surface over a handful of
tables. `PortalStore` describes that surface; `SqlStore` implements it on top
of the async SQLAlchemy session factory. Rows are returned as plain dicts.
"""
from __future__ import annotations

import logging
from typing import Any, Protocol

from sqlalchemy import select as sa_select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from . import models
from .db import AsyncSessionMaker
from .errors import DataFetchError

logger = logging.getLogger(__name__)

Row = dict[str, Any]

TABLES: dict[str, type[models.Base]] = {
    "clinical_trials": models.ClinicalTrial,
    "researcher_profiles": models.ResearcherProfile,
    "patient_profiles": models.PatientProfile,
    "forum_questions": models.ForumQuestion,
    "publications": models.Publication,
    "favorites": models.Favorite,
    "collaboration_requests": models.CollaborationRequest,
}


class PortalStore(Protocol):
    """Read-only storage operations used by the pipelines."""

    async def select(
        self,
        table: str,
        *,
        equals: dict[str, Any] | None = None,
        not_equals: dict[str, Any] | None = None,
        contains: dict[str, str] | None = None,
        newest_first: bool = False,
        limit: int | None = None,
    ) -> list[Row]:
        """List rows of `table`.

        Args:
            table: Table name (see TABLES)
            equals: column → value exact matches
            not_equals: column → value exclusions
            contains: column → substring, case-insensitive
            newest_first: Order by created_at descending
            limit: Maximum number of rows

        Raises:
            DataFetchError: If the read fails
        """
        ...

    async def get_one(self, table: str, **equals: Any) -> Row | None:
        """Return the first row matching all `equals` filters, or None."""
        ...


class SqlStore:
    """PortalStore backed by the relational database."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] = AsyncSessionMaker) -> None:
        self._session_factory = session_factory

    async def select(
        self,
        table: str,
        *,
        equals: dict[str, Any] | None = None,
        not_equals: dict[str, Any] | None = None,
        contains: dict[str, str] | None = None,
        newest_first: bool = False,
        limit: int | None = None,
    ) -> list[Row]:
        model = TABLES.get(table)
        if model is None:
            raise DataFetchError(f"Unknown table: {table}")

        stmt = sa_select(model)
        for column, value in (equals or {}).items():
            stmt = stmt.where(getattr(model, column) == value)
        for column, value in (not_equals or {}).items():
            stmt = stmt.where(getattr(model, column) != value)
        for column, value in (contains or {}).items():
            stmt = stmt.where(getattr(model, column).ilike(f"%{value}%"))
        if newest_first:
            stmt = stmt.order_by(model.created_at.desc())
        if limit is not None:
            stmt = stmt.limit(limit)

        try:
            # Fresh session per call so concurrent selects never share one
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                rows = [record.to_dict() for record in result.scalars().all()]
        except SQLAlchemyError as e:
            logger.error(f"Read from {table} failed: {e}")
            raise DataFetchError(f"Failed to fetch {table}: {e}") from e

        logger.debug(f"Fetched {len(rows)} rows from {table}")
        return rows

    async def get_one(self, table: str, **equals: Any) -> Row | None:
        rows = await self.select(table, equals=equals, limit=1)
        return rows[0] if rows else None


def get_store() -> PortalStore:
    """FastAPI dependency returning the default store."""
    return SqlStore()
