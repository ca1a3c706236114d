"""Flat exports of the dashboard views.

An export is the same data the view endpoint answers, computed by
``AnalyticsQueryService`` under the same caller scope, flattened to one
record per card, point, item or row.
"""

import csv
import io
from collections.abc import Sequence
from typing import Any

from pydantic import BaseModel

from stitchlab.core.exceptions import BadRequestError
from stitchlab.core.logging import get_logger
from stitchlab.features.analytics.schemas import (
    BreakdownItem,
    DateRange,
    DrilldownRow,
    ExportFormat,
    ExportView,
    KPICard,
    TrendPoint,
)
from stitchlab.features.analytics.scope import AnalyticsFilters
from stitchlab.features.analytics.service import AnalyticsQueryService
from stitchlab.features.rollups.periods import Granularity

logger = get_logger(__name__)

# Column order of each view's records; the CSV header is written even when empty
EXPORT_COLUMNS: dict[ExportView, list[str]] = {
    ExportView.KPIS: list(KPICard.model_fields),
    ExportView.TRENDS: list(TrendPoint.model_fields),
    ExportView.BREAKDOWN: list(BreakdownItem.model_fields),
    ExportView.DRILLDOWN: list(DrilldownRow.model_fields),
}

MEDIA_TYPES = {
    ExportFormat.CSV: "text/csv",
    ExportFormat.JSON: "application/json",
}


def _records(items: Sequence[BaseModel]) -> list[dict[str, Any]]:
    return [item.model_dump(mode="json") for item in items]


def _require_metric(view: ExportView, metric: str | None) -> str:
    if not metric:
        raise BadRequestError(
            message=f"Export of '{view.value}' requires a metric",
            details={"view": view.value},
        )
    return metric


async def export_records(
    service: AnalyticsQueryService,
    view: ExportView,
    date_range: DateRange,
    filters: AnalyticsFilters | None = None,
    metric: str | None = None,
    group_by: str = "style",
    granularity: Granularity = Granularity.DAILY,
    limit: int | None = None,
) -> list[dict[str, Any]]:
    """Compute one view and flatten it into records.

    Trends and breakdowns need a ``metric``. Drilldown exports every page of
    the range, not just the first.

    Raises:
        BadRequestError: A metric-based view was requested without a metric.
    """
    if view == ExportView.KPIS:
        kpis = await service.get_kpi_cards(date_range, filters)
        return _records(kpis.cards)

    if view == ExportView.TRENDS:
        trend = await service.get_trend(
            _require_metric(view, metric), date_range, granularity, filters
        )
        return _records(trend.points)

    if view == ExportView.BREAKDOWN:
        breakdown = await service.get_breakdown(
            _require_metric(view, metric), group_by, date_range, limit, filters
        )
        return _records(breakdown.items)

    rows: list[dict[str, Any]] = []
    page_size = service.settings.analytics_drilldown_max_limit
    while True:
        page = await service.get_drilldown(date_range, filters, limit=page_size, skip=len(rows))
        rows.extend(_records(page.data))
        if not page.pagination.has_more or not page.data:
            return rows


def render_csv(view: ExportView, records: list[dict[str, Any]]) -> str:
    """Render records as CSV with a header row; ``None`` becomes an empty cell."""
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=EXPORT_COLUMNS[view], lineterminator="\n")
    writer.writeheader()
    writer.writerows(records)
    return buffer.getvalue()


def export_filename(view: ExportView, date_range: DateRange, fmt: ExportFormat) -> str:
    return (
        f"analytics-{view.value}-{date_range.start_date.isoformat()}"
        f"-{date_range.end_date.isoformat()}.{fmt.value}"
    )
