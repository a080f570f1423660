"""
Outcome store: the time-ordered log of intervention outcomes.

The timing optimizer, burden tracker and fatigue recovery tracker read
from it; callers append to it after each intervention. Two
implementations share one protocol:

- SqlOutcomeStore: SQLAlchemy async sessions, paged range reads
- InMemoryOutcomeStore: list-backed, for development and tests

Analysis code reads through `read_results_safely` / `read_recent_safely`,
which turn storage failures into "no data" so a broken store degrades
decisions to their neutral defaults instead of crashing them.
"""

from __future__ import annotations

import bisect
import logging
from collections.abc import Callable
from typing import Protocol

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from jitai.lib.exceptions import StorageError
from jitai.models.intervention_result import InterventionOutcomeRecord, InterventionResult

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 500


class OutcomeStore(Protocol):
    """Read/append access to intervention outcome records."""

    async def get_results_in_range(self, start_ms: int, end_ms: int) -> list[InterventionOutcomeRecord]:
        """Records with start_ms <= timestamp <= end_ms, oldest first."""
        ...

    async def get_recent_results(self, limit: int) -> list[InterventionOutcomeRecord]:
        """The `limit` most recent records, newest first."""
        ...

    async def add_result(self, record: InterventionOutcomeRecord) -> None: ...


# ============================================================================
# SQL implementation
# ============================================================================


class SqlOutcomeStore:
    """Outcome store over the `intervention_results` table."""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        if page_size < 1:
            raise ValueError("page_size must be positive")
        self._session_factory = session_factory
        self._page_size = page_size

    async def get_results_in_range(self, start_ms: int, end_ms: int) -> list[InterventionOutcomeRecord]:
        records: list[InterventionOutcomeRecord] = []
        last_timestamp: int | None = None
        last_id = 0
        try:
            async with self._session_factory() as session:
                # Keyset pagination on (timestamp, id)
                while True:
                    stmt = (
                        select(InterventionResult)
                        .where(InterventionResult.timestamp >= start_ms)
                        .where(InterventionResult.timestamp <= end_ms)
                    )
                    if last_timestamp is not None:
                        stmt = stmt.where(
                            (InterventionResult.timestamp > last_timestamp)
                            | (
                                (InterventionResult.timestamp == last_timestamp)
                                & (InterventionResult.id > last_id)
                            )
                        )
                    stmt = stmt.order_by(InterventionResult.timestamp, InterventionResult.id).limit(
                        self._page_size
                    )
                    rows = (await session.execute(stmt)).scalars().all()
                    records.extend(row.to_record() for row in rows)
                    if len(rows) < self._page_size:
                        break
                    last_timestamp, last_id = rows[-1].timestamp, rows[-1].id
        except SQLAlchemyError as exc:
            raise StorageError("Failed to read intervention results") from exc
        return records

    async def get_recent_results(self, limit: int) -> list[InterventionOutcomeRecord]:
        try:
            async with self._session_factory() as session:
                stmt = (
                    select(InterventionResult)
                    .order_by(InterventionResult.timestamp.desc(), InterventionResult.id.desc())
                    .limit(limit)
                )
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as exc:
            raise StorageError("Failed to read recent intervention results") from exc
        return [row.to_record() for row in rows]

    async def add_result(self, record: InterventionOutcomeRecord) -> None:
        try:
            async with self._session_factory() as session:
                session.add(InterventionResult.from_record(record))
                await session.commit()
        except SQLAlchemyError as exc:
            raise StorageError("Failed to store intervention result") from exc

    async def count(self) -> int:
        try:
            async with self._session_factory() as session:
                result = await session.execute(select(func.count()).select_from(InterventionResult))
                return int(result.scalar_one())
        except SQLAlchemyError as exc:
            raise StorageError("Failed to count intervention results") from exc


# ============================================================================
# In-memory implementation
# ============================================================================


class InMemoryOutcomeStore:
    """List-backed outcome store kept sorted by timestamp."""

    def __init__(self, records: list[InterventionOutcomeRecord] | None = None) -> None:
        self._records: list[InterventionOutcomeRecord] = sorted(records or [], key=lambda r: r.timestamp)

    async def get_results_in_range(self, start_ms: int, end_ms: int) -> list[InterventionOutcomeRecord]:
        return [r for r in self._records if start_ms <= r.timestamp <= end_ms]

    async def get_recent_results(self, limit: int) -> list[InterventionOutcomeRecord]:
        return list(reversed(self._records[-limit:])) if limit > 0 else []

    async def add_result(self, record: InterventionOutcomeRecord) -> None:
        timestamps = [r.timestamp for r in self._records]
        self._records.insert(bisect.bisect_right(timestamps, record.timestamp), record)

    async def count(self) -> int:
        return len(self._records)


# ============================================================================
# Degrading reads
# ============================================================================


async def read_results_safely(
    store: OutcomeStore,
    start_ms: int,
    end_ms: int,
) -> list[InterventionOutcomeRecord]:
    """Range read that logs storage failures and returns no data instead."""
    try:
        return await store.get_results_in_range(start_ms, end_ms)
    except StorageError:
        logger.warning("Outcome store range read failed, treating as no data", exc_info=True)
        return []


async def read_recent_safely(store: OutcomeStore, limit: int) -> list[InterventionOutcomeRecord]:
    """Recent-records read that logs storage failures and returns no data instead."""
    try:
        return await store.get_recent_results(limit)
    except StorageError:
        logger.warning("Outcome store recent read failed, treating as no data", exc_info=True)
        return []
