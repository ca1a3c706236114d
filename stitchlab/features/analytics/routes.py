"""API routes for analytics dashboards.

Every endpoint reads the rollup store under the caller's scope. Caller
identity arrives in the ``X-User-Role``/``X-Tenant-Id``/``X-Vendor-Id``/
``X-Tailor-Id`` headers set by the authentication layer.
"""

from datetime import date

from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from stitchlab.core.database import get_db
from stitchlab.core.logging import get_logger
from stitchlab.features.analytics.deps import get_caller_identity, get_filters
from stitchlab.features.analytics.export import (
    MEDIA_TYPES,
    export_filename,
    export_records,
    render_csv,
)
from stitchlab.features.analytics.schemas import (
    BreakdownResponse,
    DatePreset,
    DrilldownRow,
    ExportFormat,
    ExportView,
    KPIResponse,
    TrendResponse,
)
from stitchlab.features.analytics.scope import AnalyticsFilters, CallerIdentity
from stitchlab.features.analytics.service import AnalyticsQueryService, resolve_date_range
from stitchlab.features.rollups.periods import Granularity
from stitchlab.shared.schemas import PaginatedResponse

logger = get_logger(__name__)

router = APIRouter(prefix="/analytics", tags=["analytics"])


# =============================================================================
# KPI Endpoints
# =============================================================================


@router.get(
    "/kpis",
    response_model=KPIResponse,
    summary="Dashboard KPI cards",
    description="""
KPI cards for a date range, each compared with the preceding range of equal
length (a 30-day window compares with the 30 days before it).

**Trend direction** reflects improvement: for lower-is-better cards
(pending from tailors, avg TAT, late shipments, rework rate) a decrease is `up`.

**Date Range**: `start_date`/`end_date` (inclusive) or a `preset`
(`today`, `7d`, `30d`, `mtd`, `ytd`). Defaults to the last 30 days.

**Scope**: vendor callers see only their vendor's styles; tailor callers
only their own work. Conflicting filters cannot widen that scope.
""",
)
async def get_kpis(
    start_date: date | None = Query(None, description="Start of period (inclusive), YYYY-MM-DD."),
    end_date: date | None = Query(None, description="End of period (inclusive), YYYY-MM-DD."),
    preset: DatePreset | None = Query(None, description="Relative range; overrides dates."),
    filters: AnalyticsFilters = Depends(get_filters),
    identity: CallerIdentity = Depends(get_caller_identity),
    db: AsyncSession = Depends(get_db),
) -> KPIResponse:
    """Compute KPI cards for the caller's scope."""
    date_range = resolve_date_range(start_date, end_date, preset)
    service = AnalyticsQueryService(db, identity)
    return await service.get_kpi_cards(date_range, filters)


# =============================================================================
# Trend Endpoints
# =============================================================================


@router.get(
    "/trends",
    response_model=TrendResponse,
    summary="Metric trend series",
    description="""
One point per bucket of the range, ascending by bucket label. Buckets with no
rollup rows are returned as 0.

**Metrics**: any rollup metric (`pcs_shipped`, `qc_pass_rate`, ...) or a
dashboard alias (`cuttingReceived`, `shippedPcs`, `completedPcs`,
`tailorExpense`, `revenue`, ...). Unknown metrics return no points.
""",
)
async def get_trends(
    metric: str = Query(..., description="Metric name or alias."),
    granularity: Granularity = Query(Granularity.DAILY, description="daily, weekly or monthly."),
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    preset: DatePreset | None = Query(None),
    filters: AnalyticsFilters = Depends(get_filters),
    identity: CallerIdentity = Depends(get_caller_identity),
    db: AsyncSession = Depends(get_db),
) -> TrendResponse:
    """Compute a trend series for one metric."""
    date_range = resolve_date_range(start_date, end_date, preset)
    service = AnalyticsQueryService(db, identity)
    return await service.get_trend(metric, date_range, granularity, filters)


# =============================================================================
# Breakdown Endpoints
# =============================================================================


@router.get(
    "/breakdown",
    response_model=BreakdownResponse,
    summary="Top-N breakdown of a metric",
    description="""
Group a metric by `style`, `vendor` or `tailor`, sorted descending, top-N.
Each item's `percentage` is its share of the total across all groups.

`size` and `fabric` are accepted but not tracked and return no items; unknown
metrics or grouping keys also return no items.
""",
)
async def get_breakdown(
    metric: str = Query(..., description="Metric name or alias."),
    group_by: str = Query("style", description="style, vendor, tailor, size or fabric."),
    limit: int | None = Query(None, ge=1, description="Top-N items (default 10, max 100)."),
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    preset: DatePreset | None = Query(None),
    filters: AnalyticsFilters = Depends(get_filters),
    identity: CallerIdentity = Depends(get_caller_identity),
    db: AsyncSession = Depends(get_db),
) -> BreakdownResponse:
    """Compute a ranked breakdown for one metric."""
    date_range = resolve_date_range(start_date, end_date, preset)
    service = AnalyticsQueryService(db, identity)
    return await service.get_breakdown(metric, group_by, date_range, limit, filters)


# =============================================================================
# Drilldown Endpoints
# =============================================================================


@router.get(
    "/drilldown",
    response_model=PaginatedResponse[DrilldownRow],
    summary="Paginated rollup rows",
    description="""
Daily per-style rollup rows (per-tailor rows for tailor callers) joined to
style, vendor and tailor names, newest first.

**Pagination**: `limit`/`skip`; `pagination.has_more` is true when rows exist
beyond this page.
""",
)
async def get_drilldown(
    limit: int | None = Query(None, ge=1, description="Page size (default 50, max 500)."),
    skip: int = Query(0, ge=0, description="Rows to skip."),
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    filters: AnalyticsFilters = Depends(get_filters),
    identity: CallerIdentity = Depends(get_caller_identity),
    db: AsyncSession = Depends(get_db),
) -> PaginatedResponse[DrilldownRow]:
    """List rollup rows for the caller's scope."""
    date_range = None
    if start_date is not None or end_date is not None:
        date_range = resolve_date_range(start_date, end_date)

    service = AnalyticsQueryService(db, identity)
    return await service.get_drilldown(date_range, filters, limit=limit, skip=skip)


# =============================================================================
# Export Endpoints
# =============================================================================


@router.get(
    "/export",
    response_class=Response,
    summary="Download a dashboard view",
    description="""
The KPI cards, trend points, breakdown items or drilldown rows of a range as a
`csv` or `json` attachment: one record per card, point, item or row.

Computed exactly like the matching view endpoint, under the same caller
scope. `trends` and `breakdown` need `metric`; drilldown exports every row of
the range. Defaults to the last 30 days.
""",
    responses={
        200: {"content": {"text/csv": {}, "application/json": {}}},
    },
)
async def export_view(
    view: ExportView = Query(..., description="kpis, trends, breakdown or drilldown."),
    format: ExportFormat = Query(ExportFormat.CSV, description="csv or json."),  # noqa: A002
    metric: str | None = Query(None, description="Metric name or alias (trends, breakdown)."),
    group_by: str = Query("style", description="Breakdown grouping key."),
    granularity: Granularity = Query(Granularity.DAILY, description="Trend bucket size."),
    limit: int | None = Query(None, ge=1, description="Breakdown top-N."),
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    preset: DatePreset | None = Query(None),
    filters: AnalyticsFilters = Depends(get_filters),
    identity: CallerIdentity = Depends(get_caller_identity),
    db: AsyncSession = Depends(get_db),
) -> Response:
    """Export one view as an attachment."""
    date_range = resolve_date_range(start_date, end_date, preset)
    service = AnalyticsQueryService(db, identity)
    records = await export_records(
        service,
        view,
        date_range,
        filters,
        metric=metric,
        group_by=group_by,
        granularity=granularity,
        limit=limit,
    )

    logger.info(
        "analytics.export_built",
        view=view.value,
        format=format.value,
        role=identity.role.value,
        records=len(records),
    )

    headers = {
        "Content-Disposition": (
            f'attachment; filename="{export_filename(view, date_range, format)}"'
        )
    }
    if format == ExportFormat.JSON:
        return JSONResponse(content=records, media_type=MEDIA_TYPES[format], headers=headers)
    return Response(
        content=render_csv(view, records), media_type=MEDIA_TYPES[format], headers=headers
    )
