"""Refresh orchestration for rollups.

A refresh expands a date range into buckets, builds every bucket's rows and
writes them with a single upsert batch. Nothing is written if any bucket
fails; the recovery action is to re-run the same refresh.
"""

from __future__ import annotations

import asyncio
import time
from datetime import date

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from stitchlab.core.config import get_settings
from stitchlab.core.exceptions import BadRequestError, DatabaseError
from stitchlab.core.logging import get_logger, refresh_context
from stitchlab.features.production.models import Style
from stitchlab.features.rollups.builder import AggregateBuilder
from stitchlab.features.rollups.periods import (
    Bucket,
    Granularity,
    bucket_for,
    count_buckets,
    generate_ranges,
)
from stitchlab.features.rollups.schemas import (
    AnalyticsAggregate,
    RefreshAllResponse,
    RefreshResponse,
)
from stitchlab.features.rollups.store import RollupStore

logger = get_logger(__name__)


class RollupService:
    """Rebuilds rollups for a tenant and date range.

    Buckets are built sequentially on ``db`` unless a session maker is given
    and ``rollup_refresh_concurrency`` is above 1, in which case buckets are
    built in parallel on separate read sessions. Writes always go through
    ``db`` in one batch.
    """

    def __init__(
        self,
        db: AsyncSession,
        session_maker: async_sessionmaker[AsyncSession] | None = None,
    ) -> None:
        self.db = db
        self.session_maker = session_maker
        self.settings = get_settings()

    async def _build_all(
        self,
        buckets: list[Bucket],
        granularity: Granularity,
        tenant_id: int | None,
    ) -> list[AnalyticsAggregate]:
        currency = self.settings.analytics_currency
        concurrency = self.settings.rollup_refresh_concurrency

        if concurrency <= 1 or self.session_maker is None or len(buckets) <= 1:
            builder = AggregateBuilder(self.db, currency=currency)
            aggregates: list[AnalyticsAggregate] = []
            for bucket in buckets:
                aggregates.extend(await builder.build_aggregates(bucket, granularity, tenant_id))
            return aggregates

        semaphore = asyncio.Semaphore(concurrency)
        session_maker = self.session_maker

        async def build_bucket(bucket: Bucket) -> list[AnalyticsAggregate]:
            async with semaphore, session_maker() as session:
                builder = AggregateBuilder(session, currency=currency)
                return await builder.build_aggregates(bucket, granularity, tenant_id)

        # A failing bucket cancels its siblings; callers see the first error unwrapped
        try:
            async with asyncio.TaskGroup() as group:
                tasks = [group.create_task(build_bucket(bucket)) for bucket in buckets]
        except ExceptionGroup as eg:
            raise eg.exceptions[0] from eg
        return [aggregate for task in tasks for aggregate in task.result()]

    async def refresh(
        self,
        start_date: date,
        end_date: date,
        granularity: Granularity = Granularity.DAILY,
        tenant_id: int | None = None,
    ) -> RefreshResponse:
        """Rebuild rollups for ``[start_date, end_date]``.

        Args:
            start_date: First day (inclusive).
            end_date: Last day (inclusive).
            granularity: Bucket size.
            tenant_id: Tenant to rebuild (None in single-tenant mode).

        Returns:
            Buckets processed and rows written. ``start_date > end_date``
            processes nothing.

        Raises:
            BadRequestError: If the range spans more buckets than allowed.
            DatabaseError: If reading sources or writing rollups fails.
        """
        start_time = time.perf_counter()

        n_buckets = count_buckets(start_date, end_date, granularity)
        if n_buckets > self.settings.rollup_max_buckets:
            raise BadRequestError(
                message=(
                    f"Refresh range spans {n_buckets} {granularity.value} buckets; "
                    f"maximum is {self.settings.rollup_max_buckets}"
                ),
                details={"buckets": n_buckets, "max_buckets": self.settings.rollup_max_buckets},
            )

        with refresh_context():
            logger.info(
                "rollups.refresh_started",
                tenant_id=tenant_id,
                granularity=granularity.value,
                start_date=str(start_date),
                end_date=str(end_date),
                buckets=n_buckets,
            )

            buckets = generate_ranges(start_date, end_date, granularity)
            rows_written = 0
            if buckets:
                try:
                    aggregates = await self._build_all(buckets, granularity, tenant_id)
                    rows_written = await RollupStore(self.db).save(aggregates, granularity)
                except SQLAlchemyError as e:
                    await self.db.rollback()
                    logger.error(
                        "rollups.refresh_failed",
                        tenant_id=tenant_id,
                        granularity=granularity.value,
                        error=str(e),
                        error_type=type(e).__name__,
                        exc_info=True,
                    )
                    raise DatabaseError(
                        message="Failed to refresh rollups",
                        details={"error": str(e)},
                    ) from e

            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.info(
                "rollups.refresh_completed",
                tenant_id=tenant_id,
                granularity=granularity.value,
                buckets=len(buckets),
                rows_written=rows_written,
                duration_ms=round(duration_ms, 2),
            )
            return RefreshResponse(
                count=len(buckets),
                rows_written=rows_written,
                granularity=granularity,
                start_date=start_date,
                end_date=end_date,
                duration_ms=duration_ms,
            )

    async def refresh_period_containing(
        self,
        day: date,
        granularity: Granularity = Granularity.DAILY,
        tenant_id: int | None = None,
    ) -> RefreshResponse:
        """Rebuild the single day, ISO week or month that contains ``day``."""
        bucket = bucket_for(day, granularity)
        return await self.refresh(bucket.first_day, bucket.last_day, granularity, tenant_id)

    async def tenant_ids(self) -> list[int | None]:
        """Tenants found on styles; ``[None]`` for single-tenant data."""
        result = await self.db.execute(select(Style.tenant_id).distinct())
        found = {row[0] for row in result.all()}
        tenants = sorted(t for t in found if t is not None)
        return tenants if tenants else [None]

    async def refresh_all_tenants(
        self,
        start_date: date,
        end_date: date,
        granularity: Granularity = Granularity.DAILY,
    ) -> RefreshAllResponse:
        """Rebuild the range for every tenant, one tenant after another."""
        start_time = time.perf_counter()
        tenants = await self.tenant_ids()

        count = 0
        rows_written = 0
        for tenant_id in tenants:
            response = await self.refresh(start_date, end_date, granularity, tenant_id)
            count += response.count
            rows_written += response.rows_written

        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            "rollups.refresh_all_completed",
            tenants=len(tenants),
            granularity=granularity.value,
            buckets=count,
            rows_written=rows_written,
        )
        return RefreshAllResponse(
            tenants=len(tenants),
            count=count,
            rows_written=rows_written,
            granularity=granularity,
            duration_ms=duration_ms,
        )
