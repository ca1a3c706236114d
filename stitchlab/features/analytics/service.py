"""Scoped query service for analytics dashboards.

Reads only the rollup store. Every query is restricted by a ``QueryScope``
built from the caller identity before it runs. Unknown metric names and
grouping keys return empty results instead of raising.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from stitchlab.core.config import get_settings
from stitchlab.core.exceptions import BadRequestError
from stitchlab.core.logging import get_logger
from stitchlab.features.analytics.schemas import (
    BreakdownDimension,
    BreakdownItem,
    BreakdownResponse,
    DatePreset,
    DateRange,
    DrilldownRow,
    KPICard,
    KPIResponse,
    TrendDirection,
    TrendPoint,
    TrendResponse,
)
from stitchlab.features.analytics.scope import (
    AnalyticsFilters,
    CallerIdentity,
    QueryScope,
    Role,
    build_scope,
)
from stitchlab.features.production.models import Style, Tailor, Vendor
from stitchlab.features.rollups.metrics import (
    STORED_COLUMNS,
    MetricDef,
    combine_buckets,
    resolve_metric,
)
from stitchlab.features.rollups.models import AnalyticsDaily, rollup_model
from stitchlab.features.rollups.periods import Bucket, Granularity, generate_ranges
from stitchlab.features.rollups.schemas import RollupDimension
from stitchlab.shared.schemas import PaginatedResponse
from stitchlab.shared.utils import paginate_response

logger = get_logger(__name__)


# =============================================================================
# Date ranges
# =============================================================================


def resolve_date_range(
    start_date: date | None = None,
    end_date: date | None = None,
    preset: DatePreset | None = None,
    today: date | None = None,
) -> DateRange:
    """Resolve explicit dates or a preset into an inclusive range.

    A preset wins over explicit dates. Without either, the range is the last
    ``analytics_default_range_days`` days ending today (or ending ``end_date``).

    Raises:
        BadRequestError: If end is before start or the range exceeds the
            configured maximum.
    """
    settings = get_settings()
    today = today or date.today()

    if preset is not None:
        if preset == DatePreset.TODAY:
            start, end = today, today
        elif preset == DatePreset.LAST_7_DAYS:
            start, end = today - timedelta(days=6), today
        elif preset == DatePreset.LAST_30_DAYS:
            start, end = today - timedelta(days=29), today
        elif preset == DatePreset.MONTH_TO_DATE:
            start, end = today.replace(day=1), today
        else:
            start, end = today.replace(month=1, day=1), today
        return DateRange(start_date=start, end_date=end)

    end = end_date or today
    start = start_date or end - timedelta(days=settings.analytics_default_range_days - 1)

    if end < start:
        raise BadRequestError(
            message="end_date must be on or after start_date",
            details={"start_date": str(start), "end_date": str(end)},
        )
    days = (end - start).days + 1
    if days > settings.analytics_max_date_range_days:
        raise BadRequestError(
            message=(
                f"Date range of {days} days exceeds maximum of "
                f"{settings.analytics_max_date_range_days} days"
            ),
            details={"days": days, "max_days": settings.analytics_max_date_range_days},
        )
    return DateRange(start_date=start, end_date=end)


def previous_range(current: DateRange) -> DateRange:
    """Range of equal length ending the day before ``current`` starts."""
    end = current.start_date - timedelta(days=1)
    return DateRange(start_date=end - timedelta(days=current.days - 1), end_date=end)


# =============================================================================
# Trend math
# =============================================================================


def trend_percent(current: float, previous: float) -> float:
    """Percent change; 100 when previous is 0 and current is positive, else 0."""
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return (current - previous) / previous * 100


def trend_direction(
    current: float,
    previous: float,
    lower_is_better: bool = False,
    epsilon: float = 0.01,
) -> TrendDirection:
    """Direction of a change in terms of improvement.

    ``up`` is an improvement: an increase normally, a decrease when lower is
    better. Changes smaller than ``epsilon`` are neutral.
    """
    diff = current - previous
    if abs(diff) < epsilon:
        return TrendDirection.NEUTRAL
    improved = diff < 0 if lower_is_better else diff > 0
    return TrendDirection.UP if improved else TrendDirection.DOWN


def _display_label(bucket: Bucket, granularity: Granularity) -> str:
    if granularity == Granularity.DAILY:
        return bucket.first_day.strftime("%b %d")
    if granularity == Granularity.WEEKLY:
        return f"Week of {bucket.first_day.strftime('%b %d')}"
    return bucket.first_day.strftime("%b %Y")


# =============================================================================
# KPI card definitions
# =============================================================================


@dataclass(frozen=True)
class KPICardDef:
    """Static description of one KPI card.

    ``tooltip`` is a format string over auxiliary metric values named in
    ``tooltip_metrics``.
    """

    id: str
    label: str
    metric: str
    unit: str | None = None
    lower_is_better: bool = False
    tooltip: str | None = None
    tooltip_metrics: tuple[str, ...] = ()


KPI_CARDS: tuple[KPICardDef, ...] = (
    KPICardDef(
        "cutting-received",
        "Cutting Received",
        "cutting_received_pcs",
        "pcs",
        tooltip="{cutting_received_orders:.0f} cutting orders",
        tooltip_metrics=("cutting_received_orders",),
    ),
    KPICardDef(
        "in-production",
        "In Production",
        "in_production_pcs",
        "pcs",
        tooltip="{in_production_orders:.0f} open jobs",
        tooltip_metrics=("in_production_orders",),
    ),
    KPICardDef("pcs-shipped", "Pcs Shipped", "pcs_shipped", "pcs"),
    KPICardDef("pcs-completed", "Pcs Completed", "pcs_completed", "pcs"),
    KPICardDef("revenue", "Revenue", "revenue_amount", "currency"),
    KPICardDef(
        "expected-receivable",
        "Expected Receivable",
        "expected_receivable_amount",
        "currency",
        tooltip="{expected_receivable_invoices:.0f} open invoices",
        tooltip_metrics=("expected_receivable_invoices",),
    ),
    KPICardDef(
        "tailoring-expense",
        "Tailoring Expense",
        "tailor_expense_amount",
        "currency",
        tooltip="{tailor_expense_payments:.0f} payments",
        tooltip_metrics=("tailor_expense_payments",),
    ),
    KPICardDef(
        "pending-from-tailors",
        "Pending From Tailors",
        "pending_from_tailors_pcs",
        "pcs",
        lower_is_better=True,
        tooltip="{pending_from_tailors_assignments:.0f} open assignments",
        tooltip_metrics=("pending_from_tailors_assignments",),
    ),
    KPICardDef(
        "avg-tat",
        "Avg Sample TAT",
        "samples_avg_tat_days",
        "days",
        lower_is_better=True,
        tooltip="{samples_tat_count:.0f} samples with turnaround",
        tooltip_metrics=("samples_tat_count",),
    ),
    KPICardDef(
        "approval-rate",
        "Sample Approval Rate",
        "samples_approval_rate",
        "%",
        tooltip="{samples_approved:.0f} of {samples_submitted:.0f} submitted samples approved",
        tooltip_metrics=("samples_approved", "samples_submitted"),
    ),
    KPICardDef(
        "qc-pass-rate",
        "QC Pass Rate",
        "qc_pass_rate",
        "%",
        tooltip="{qc_passed:.0f} of {qc_inspections:.0f} inspections passed",
        tooltip_metrics=("qc_passed", "qc_inspections"),
    ),
    KPICardDef(
        "production-yield",
        "Production Yield",
        "efficiency_yield_rate",
        "%",
        tooltip="{efficiency_returned_pcs:.0f} of {efficiency_issued_pcs:.0f} pcs returned",
        tooltip_metrics=("efficiency_returned_pcs", "efficiency_issued_pcs"),
    ),
    KPICardDef("rework-rate", "Rework Rate", "efficiency_rework_rate", "%", lower_is_better=True),
    KPICardDef(
        "late-shipments",
        "Late Shipments",
        "shipments_late_rate",
        "%",
        lower_is_better=True,
        tooltip="{shipments_late:.0f} of {shipments_count:.0f} shipments late",
        tooltip_metrics=("shipments_late", "shipments_count"),
    ),
)


# =============================================================================
# Service
# =============================================================================


class AnalyticsQueryService:
    """Role-scoped reads over the rollup store.

    Args:
        db: Database session.
        identity: Caller identity from the authentication layer.
    """

    def __init__(self, db: AsyncSession, identity: CallerIdentity) -> None:
        self.db = db
        self.identity = identity
        self.settings = get_settings()

    async def _bucket_totals(
        self,
        model: Any,
        scope: QueryScope,
        columns: tuple[str, ...],
        labels: list[str] | None = None,
        date_range: DateRange | None = None,
    ) -> dict[str, dict[str, float]]:
        """Per-bucket sums of ``columns`` across the scope's rows, keyed by label."""
        sums = [func.coalesce(func.sum(getattr(model, col)), 0).label(col) for col in columns]
        stmt = select(model.date, *sums).where(*scope.conditions(model))
        if labels is not None:
            stmt = stmt.where(model.date.in_(labels))
        if date_range is not None:
            stmt = stmt.where(
                model.date >= date_range.start_date.isoformat(),
                model.date <= date_range.end_date.isoformat(),
            )
        stmt = stmt.group_by(model.date).order_by(model.date)

        result = await self.db.execute(stmt)
        return {
            row["date"]: {col: float(row[col] or 0) for col in columns}
            for row in result.mappings().all()
        }

    # -------------------------------------------------------------------------
    # KPI cards
    # -------------------------------------------------------------------------

    async def get_kpi_cards(
        self,
        date_range: DateRange,
        filters: AnalyticsFilters | None = None,
    ) -> KPIResponse:
        """KPI cards for ``date_range`` compared with the preceding equal-length range.

        Values come from daily rollups. Snapshot KPIs take the latest day in
        range; ratio KPIs recombine numerators and denominators.

        Raises:
            ScopeError: If the caller identity cannot be scoped.
        """
        scope = build_scope(self.identity, filters)
        prior = previous_range(date_range)

        current_buckets = await self._bucket_totals(
            AnalyticsDaily, scope, STORED_COLUMNS, date_range=date_range
        )
        previous_buckets = await self._bucket_totals(
            AnalyticsDaily, scope, STORED_COLUMNS, date_range=prior
        )
        current_rows = list(current_buckets.values())
        previous_rows = list(previous_buckets.values())

        epsilon = self.settings.analytics_trend_epsilon
        cards: list[KPICard] = []
        for card in KPI_CARDS:
            metric = resolve_metric(card.metric)
            if metric is None:
                continue
            current = combine_buckets(metric, current_rows)
            previous = combine_buckets(metric, previous_rows)

            tooltip = None
            if card.tooltip is not None:
                values: dict[str, float] = {}
                for name in card.tooltip_metrics:
                    aux = resolve_metric(name)
                    values[name] = combine_buckets(aux, current_rows) if aux else 0.0
                tooltip = card.tooltip.format(**values)

            unit = self.settings.analytics_currency if card.unit == "currency" else card.unit
            cards.append(
                KPICard(
                    id=card.id,
                    label=card.label,
                    value=round(current, 2),
                    unit=unit,
                    previous_value=round(previous, 2),
                    trend_percent=round(trend_percent(current, previous), 2),
                    trend_direction=trend_direction(
                        current, previous, card.lower_is_better, epsilon
                    ),
                    lower_is_better=card.lower_is_better,
                    tooltip=tooltip,
                )
            )

        logger.info(
            "analytics.kpis_computed",
            role=self.identity.role.value,
            tenant_id=self.identity.tenant_id,
            dimension=scope.dimension.value,
            start_date=str(date_range.start_date),
            end_date=str(date_range.end_date),
            buckets=len(current_rows),
            cards=len(cards),
        )
        return KPIResponse(cards=cards, date_range=date_range, previous_range=prior)

    # -------------------------------------------------------------------------
    # Trends
    # -------------------------------------------------------------------------

    async def get_trend(
        self,
        metric_name: str,
        date_range: DateRange,
        granularity: Granularity = Granularity.DAILY,
        filters: AnalyticsFilters | None = None,
    ) -> TrendResponse:
        """One point per bucket of ``date_range``, ascending, zero-filled.

        Unknown metric names return no points.
        """
        metric = resolve_metric(metric_name)
        if metric is None:
            logger.info("analytics.unknown_metric", metric=metric_name, operation="trend")
            return TrendResponse(
                metric=metric_name, granularity=granularity, date_range=date_range, points=[]
            )

        scope = build_scope(self.identity, filters)
        buckets = generate_ranges(date_range.start_date, date_range.end_date, granularity)
        labels = [bucket.label for bucket in buckets]
        totals = await self._bucket_totals(
            rollup_model(granularity), scope, metric.columns, labels=labels
        )

        points = [
            TrendPoint(
                date=bucket.label,
                value=round(combine_buckets(metric, [totals[bucket.label]]), 4)
                if bucket.label in totals
                else 0.0,
                label=_display_label(bucket, granularity),
            )
            for bucket in buckets
        ]

        logger.info(
            "analytics.trend_computed",
            metric=metric.name,
            granularity=granularity.value,
            dimension=scope.dimension.value,
            points=len(points),
        )
        return TrendResponse(
            metric=metric.name, granularity=granularity, date_range=date_range, points=points
        )

    # -------------------------------------------------------------------------
    # Breakdown
    # -------------------------------------------------------------------------

    async def get_breakdown(
        self,
        metric_name: str,
        group_by: str,
        date_range: DateRange,
        limit: int | None = None,
        filters: AnalyticsFilters | None = None,
    ) -> BreakdownResponse:
        """Top-N groups of a metric over ``date_range`` from daily rollups.

        Percentages are shares of the total across all groups, before the
        top-N cut. Unknown metrics or grouping keys, and the untracked
        ``size``/``fabric`` keys, return no items.
        """
        empty = BreakdownResponse(
            metric=metric_name, group_by=group_by, date_range=date_range, total=0.0, items=[]
        )

        metric = resolve_metric(metric_name)
        try:
            dimension = BreakdownDimension(group_by)
        except ValueError:
            dimension = None
        if metric is None or dimension is None:
            logger.info(
                "analytics.unknown_breakdown",
                metric=metric_name,
                group_by=group_by,
            )
            return empty
        if dimension in (BreakdownDimension.SIZE, BreakdownDimension.FABRIC):
            return empty

        if dimension == BreakdownDimension.TAILOR:
            row_dimension = RollupDimension.TAILOR
        else:
            row_dimension = RollupDimension.STYLE
        scope = build_scope(self.identity, filters, preferred=row_dimension).for_dimension(
            row_dimension
        )
        if scope is None:
            return empty.model_copy(update={"metric": metric.name})

        limit = min(
            limit or self.settings.analytics_breakdown_default_limit,
            self.settings.analytics_breakdown_max_limit,
        )
        values = await self._group_values(metric, dimension, scope, date_range)
        total = sum(values.values())
        ranked = sorted(values.items(), key=lambda kv: kv[1], reverse=True)[:limit]
        labels = await self._lookup_labels(dimension, [key for key, _ in ranked])

        items = [
            BreakdownItem(
                key=str(key),
                label=labels.get(key, "Unknown"),
                value=round(value, 4),
                percentage=round(value / total * 100, 2) if total else 0.0,
            )
            for key, value in ranked
        ]

        logger.info(
            "analytics.breakdown_computed",
            metric=metric.name,
            group_by=dimension.value,
            groups=len(values),
            items=len(items),
        )
        return BreakdownResponse(
            metric=metric.name,
            group_by=dimension.value,
            date_range=date_range,
            total=round(total, 4),
            items=items,
        )

    async def _group_values(
        self,
        metric: MetricDef,
        dimension: BreakdownDimension,
        scope: QueryScope,
        date_range: DateRange,
    ) -> dict[int, float]:
        model = AnalyticsDaily
        key_column = {
            BreakdownDimension.STYLE: model.style_id,
            BreakdownDimension.VENDOR: model.vendor_id,
            BreakdownDimension.TAILOR: model.tailor_id,
        }[dimension]

        sums = [
            func.coalesce(func.sum(getattr(model, col)), 0).label(col) for col in metric.columns
        ]
        stmt = (
            select(key_column.label("group_key"), model.date, *sums)
            .where(
                *scope.conditions(model),
                key_column.is_not(None),
                model.date >= date_range.start_date.isoformat(),
                model.date <= date_range.end_date.isoformat(),
            )
            .group_by(key_column, model.date)
            .order_by(key_column, model.date)
        )
        result = await self.db.execute(stmt)

        buckets_by_key: dict[int, list[dict[str, float]]] = {}
        for row in result.mappings().all():
            buckets_by_key.setdefault(row["group_key"], []).append(
                {col: float(row[col] or 0) for col in metric.columns}
            )
        return {key: combine_buckets(metric, buckets) for key, buckets in buckets_by_key.items()}

    async def _lookup_labels(
        self, dimension: BreakdownDimension, keys: list[int]
    ) -> dict[int, str]:
        """Display labels: name, then code, then "Unknown"."""
        if not keys:
            return {}
        model: Any = {
            BreakdownDimension.STYLE: Style,
            BreakdownDimension.VENDOR: Vendor,
            BreakdownDimension.TAILOR: Tailor,
        }[dimension]
        stmt = select(model.id, model.name, model.code).where(model.id.in_(keys))
        result = await self.db.execute(stmt)
        return {row.id: row.name or row.code or "Unknown" for row in result.all()}

    # -------------------------------------------------------------------------
    # Drilldown
    # -------------------------------------------------------------------------

    async def get_drilldown(
        self,
        date_range: DateRange | None = None,
        filters: AnalyticsFilters | None = None,
        limit: int | None = None,
        skip: int = 0,
    ) -> PaginatedResponse[DrilldownRow]:
        """Daily per-style rows (per-tailor rows for tailor callers), newest first.

        ``has_more`` comes from a separate count query.
        """
        limit = min(
            limit or self.settings.analytics_drilldown_default_limit,
            self.settings.analytics_drilldown_max_limit,
        )
        skip = max(skip, 0)

        preferred = (
            RollupDimension.TAILOR if self.identity.role == Role.TAILOR else RollupDimension.STYLE
        )
        scope = build_scope(self.identity, filters, preferred=preferred)

        model = AnalyticsDaily
        conditions = scope.conditions(model)
        if date_range is not None:
            conditions.extend(
                [
                    model.date >= date_range.start_date.isoformat(),
                    model.date <= date_range.end_date.isoformat(),
                ]
            )

        count_stmt = select(func.count()).select_from(model).where(*conditions)
        total = (await self.db.execute(count_stmt)).scalar_one()

        stmt = (
            select(
                model,
                Style.code.label("style_code"),
                Style.name.label("style_name"),
                Vendor.name.label("vendor_name"),
                Tailor.name.label("tailor_name"),
            )
            .outerjoin(Style, Style.id == model.style_id)
            .outerjoin(Vendor, Vendor.id == model.vendor_id)
            .outerjoin(Tailor, Tailor.id == model.tailor_id)
            .where(*conditions)
            .order_by(model.date.desc(), model.id)
            .limit(limit)
            .offset(skip)
        )
        result = await self.db.execute(stmt)

        rows = [
            DrilldownRow(
                date=rollup.date,
                style_id=rollup.style_id,
                style_code=style_code,
                style_name=style_name,
                vendor_id=rollup.vendor_id,
                vendor_name=vendor_name,
                tailor_id=rollup.tailor_id,
                tailor_name=tailor_name,
                cutting_received_pcs=rollup.cutting_received_pcs,
                in_production_pcs=rollup.in_production_pcs,
                pcs_shipped=rollup.pcs_shipped,
                pcs_completed=rollup.pcs_completed,
                revenue_amount=rollup.revenue_amount,
                expected_receivable_amount=rollup.expected_receivable_amount,
                tailor_expense_amount=rollup.tailor_expense_amount,
                pending_from_tailors_pcs=rollup.pending_from_tailors_pcs,
                qc_pass_rate=rollup.qc_pass_rate,
                shipments_late=rollup.shipments_late,
            )
            for rollup, style_code, style_name, vendor_name, tailor_name in result.all()
        ]

        logger.info(
            "analytics.drilldown_computed",
            role=self.identity.role.value,
            dimension=scope.dimension.value,
            total=total,
            returned=len(rows),
            limit=limit,
            skip=skip,
        )
        return paginate_response(rows, total=total, limit=limit, skip=skip)
