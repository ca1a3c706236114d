"""Aggregate builder: one bucket in, one rollup row per tracked dimension out."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stitchlab.core.logging import get_logger
from stitchlab.features.production.models import Style, Tailor
from stitchlab.features.rollups.calculators import compute_metric_set
from stitchlab.features.rollups.periods import Bucket, Granularity
from stitchlab.features.rollups.schemas import AnalyticsAggregate, RollupDimension
from stitchlab.features.rollups.sources import RollupScope

logger = get_logger(__name__)


class AggregateBuilder:
    """Builds the rollup rows of a bucket.

    Rows produced per bucket:
    - one per style in the tenant (vendor id copied from the style),
    - one per tailor in the tenant,
    - exactly one tenant-wide row.

    Any calculator error propagates; no partial bucket is returned.
    """

    def __init__(self, db: AsyncSession, currency: str = "INR") -> None:
        self.db = db
        self.currency = currency

    async def _styles(self, tenant_id: int | None) -> list[tuple[int, int | None]]:
        stmt = select(Style.id, Style.vendor_id).order_by(Style.id)
        if tenant_id is not None:
            stmt = stmt.where(Style.tenant_id == tenant_id)
        result = await self.db.execute(stmt)
        return [(row.id, row.vendor_id) for row in result.all()]

    async def _tailors(self, tenant_id: int | None) -> list[int]:
        stmt = select(Tailor.id).order_by(Tailor.id)
        if tenant_id is not None:
            stmt = stmt.where(Tailor.tenant_id == tenant_id)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def _aggregate(
        self,
        scope: RollupScope,
        bucket: Bucket,
        granularity: Granularity,
        dimension: RollupDimension,
        vendor_id: int | None = None,
    ) -> AnalyticsAggregate:
        metric_set = await compute_metric_set(self.db, scope, bucket, self.currency)
        return AnalyticsAggregate(
            tenant_id=scope.tenant_id,
            period=granularity,
            date=bucket.label,
            dimension=dimension,
            style_id=scope.style_id,
            vendor_id=vendor_id,
            tailor_id=scope.tailor_id,
            **metric_set,
        )

    async def build_aggregates(
        self,
        bucket: Bucket,
        granularity: Granularity,
        tenant_id: int | None = None,
    ) -> list[AnalyticsAggregate]:
        """Build every rollup row of one bucket.

        Args:
            bucket: Bucket window and label.
            granularity: Granularity the bucket belongs to.
            tenant_id: Tenant to build for (None in single-tenant mode).

        Returns:
            Per-style rows, then per-tailor rows, then the tenant-wide row.
        """
        aggregates: list[AnalyticsAggregate] = []

        for style_id, vendor_id in await self._styles(tenant_id):
            scope = RollupScope(tenant_id=tenant_id, style_id=style_id)
            aggregates.append(
                await self._aggregate(
                    scope, bucket, granularity, RollupDimension.STYLE, vendor_id=vendor_id
                )
            )

        for tailor_id in await self._tailors(tenant_id):
            scope = RollupScope(tenant_id=tenant_id, tailor_id=tailor_id)
            aggregates.append(
                await self._aggregate(scope, bucket, granularity, RollupDimension.TAILOR)
            )

        aggregates.append(
            await self._aggregate(
                RollupScope(tenant_id=tenant_id), bucket, granularity, RollupDimension.TENANT
            )
        )

        logger.info(
            "rollups.bucket_built",
            bucket=bucket.label,
            granularity=granularity.value,
            tenant_id=tenant_id,
            rows=len(aggregates),
        )
        return aggregates
