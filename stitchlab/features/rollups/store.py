"""Rollup store: idempotent bulk upsert of aggregates keyed by ``rollup_key``."""

from typing import Any

from sqlalchemy import case, func, or_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from stitchlab.core.config import get_settings
from stitchlab.core.exceptions import DatabaseError
from stitchlab.core.logging import get_logger
from stitchlab.features.rollups.models import RollupMixin, rollup_model
from stitchlab.features.rollups.periods import Granularity
from stitchlab.features.rollups.schemas import AnalyticsAggregate

logger = get_logger(__name__)

# Identity columns are never rewritten on conflict
_IDENTITY_COLUMNS = frozenset({"id", "rollup_key", "created_at", "updated_at"})


class RollupStore:
    """Persists aggregates into the granularity's rollup table.

    ``save`` matches on the materialized identity key and either inserts the
    row or replaces its full metric payload. ``updated_at`` moves only when the
    payload differs, so re-running a refresh over unchanged data leaves rows
    byte-identical. It does not commit; the caller owns the transaction so a
    refresh is written atomically.
    """

    def __init__(self, db: AsyncSession, batch_size: int | None = None) -> None:
        self.db = db
        self.batch_size = batch_size or get_settings().rollup_upsert_batch_size

    def _insert(self, model: type[RollupMixin]) -> Any:
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            return pg_insert(model)
        if dialect == "sqlite":
            return sqlite_insert(model)
        raise DatabaseError(
            message=f"Rollup upsert is not supported on dialect '{dialect}'",
            details={"dialect": dialect},
        )

    async def save(self, aggregates: list[AnalyticsAggregate], granularity: Granularity) -> int:
        """Upsert aggregates.

        Args:
            aggregates: Rows to write; all must share ``granularity``.
            granularity: Selects the rollup table.

        Returns:
            Number of rows inserted or replaced.
        """
        if not aggregates:
            return 0

        model = rollup_model(granularity)
        # Last write wins for duplicate keys within one call
        rows_by_key = {agg.rollup_key: agg.to_row() for agg in aggregates}
        rows = list(rows_by_key.values())

        written = 0
        for offset in range(0, len(rows), self.batch_size):
            batch = rows[offset : offset + self.batch_size]
            insert_stmt = self._insert(model).values(batch)
            payload = {
                col: insert_stmt.excluded[col] for col in batch[0] if col not in _IDENTITY_COLUMNS
            }
            # Only a changed payload counts as an update
            changed = or_(
                *(getattr(model, col).is_distinct_from(value) for col, value in payload.items())
            )
            payload["updated_at"] = case((changed, func.now()), else_=model.updated_at)
            upsert_stmt = insert_stmt.on_conflict_do_update(
                index_elements=["rollup_key"],
                set_=payload,
            ).returning(model.id)
            result = await self.db.execute(upsert_stmt)
            written += len(result.fetchall())

        logger.info(
            "rollups.store_upserted",
            granularity=granularity.value,
            rows=written,
            batches=(len(rows) + self.batch_size - 1) // self.batch_size,
        )
        return written

    async def fetch(
        self,
        granularity: Granularity,
        tenant_id: int | None = None,
        date: str | None = None,
    ) -> list[AnalyticsAggregate]:
        """Read stored rows back as aggregates, ordered by label then key."""
        model = rollup_model(granularity)
        stmt = (
            select(model)
            .order_by(model.date, model.rollup_key)
            .execution_options(populate_existing=True)
        )
        if tenant_id is not None:
            stmt = stmt.where(model.tenant_id == tenant_id)
        if date is not None:
            stmt = stmt.where(model.date == date)
        result = await self.db.execute(stmt)
        return [AnalyticsAggregate.from_row(row) for row in result.scalars().all()]
