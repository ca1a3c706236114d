"""Pydantic schemas for analytics dashboard endpoints.

All responses are computed from the rollup store, never from raw
transactional records.
"""

from datetime import date
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from stitchlab.features.rollups.periods import Granularity

# =============================================================================
# Enums
# =============================================================================


class DatePreset(str, Enum):
    """Relative date ranges accepted instead of explicit dates."""

    TODAY = "today"
    LAST_7_DAYS = "7d"
    LAST_30_DAYS = "30d"
    MONTH_TO_DATE = "mtd"
    YEAR_TO_DATE = "ytd"


class TrendDirection(str, Enum):
    """Whether a KPI moved in its good direction.

    ``up`` means improvement, so for lower-is-better KPIs a decrease is ``up``.
    """

    UP = "up"
    DOWN = "down"
    NEUTRAL = "neutral"


class BreakdownDimension(str, Enum):
    """Grouping keys for breakdowns.

    ``size`` and ``fabric`` are accepted but not tracked by the rollup store;
    they return no items.
    """

    STYLE = "style"
    VENDOR = "vendor"
    TAILOR = "tailor"
    SIZE = "size"
    FABRIC = "fabric"


class ExportView(str, Enum):
    """Dashboard view an export is taken from."""

    KPIS = "kpis"
    TRENDS = "trends"
    BREAKDOWN = "breakdown"
    DRILLDOWN = "drilldown"


class ExportFormat(str, Enum):
    CSV = "csv"
    JSON = "json"


# =============================================================================
# Common
# =============================================================================


class DateRange(BaseModel):
    """Inclusive date range of a query."""

    start_date: date
    end_date: date

    @property
    def days(self) -> int:
        return (self.end_date - self.start_date).days + 1


# =============================================================================
# KPI Cards
# =============================================================================


class KPICard(BaseModel):
    """One dashboard KPI with its period-over-period trend."""

    id: str = Field(..., description="Stable card id, e.g. 'pcs-shipped'.")
    label: str = Field(..., description="Display label.")
    value: float = Field(..., description="Value for the current period.")
    unit: str | None = Field(None, description="Display unit: pcs, INR, %, days ...")
    previous_value: float = Field(..., description="Value for the previous period.")
    trend_percent: float = Field(
        ...,
        description="(current - previous) / previous * 100; 100 when previous is 0 "
        "and current is positive, else 0.",
    )
    trend_direction: TrendDirection
    lower_is_better: bool = False
    tooltip: str | None = None


class KPIResponse(BaseModel):
    cards: list[KPICard]
    date_range: DateRange
    previous_range: DateRange


# =============================================================================
# Trends
# =============================================================================


class TrendPoint(BaseModel):
    date: str = Field(..., description="Bucket label (YYYY-MM-DD, YYYY-Www or YYYY-MM).")
    value: float
    label: str = Field(..., description="Human-friendly bucket label.")


class TrendResponse(BaseModel):
    metric: str
    granularity: Granularity
    date_range: DateRange
    points: list[TrendPoint]


# =============================================================================
# Breakdown
# =============================================================================


class BreakdownItem(BaseModel):
    key: str = Field(..., description="Dimension id.")
    label: str = Field(..., description="Display name resolved from reference data.")
    value: float
    percentage: float = Field(..., description="Share of the total across all groups.")


class BreakdownResponse(BaseModel):
    metric: str
    group_by: str
    date_range: DateRange
    total: float
    items: list[BreakdownItem]


# =============================================================================
# Drilldown
# =============================================================================


class DrilldownRow(BaseModel):
    """Daily rollup row joined to style/vendor/tailor display names."""

    model_config = ConfigDict(from_attributes=True)

    date: str
    style_id: int | None = None
    style_code: str | None = None
    style_name: str | None = None
    vendor_id: int | None = None
    vendor_name: str | None = None
    tailor_id: int | None = None
    tailor_name: str | None = None
    cutting_received_pcs: int = 0
    in_production_pcs: int = 0
    pcs_shipped: int = 0
    pcs_completed: int = 0
    revenue_amount: Decimal = Decimal("0")
    expected_receivable_amount: Decimal = Decimal("0")
    tailor_expense_amount: Decimal = Decimal("0")
    pending_from_tailors_pcs: int = 0
    qc_pass_rate: float = 0.0
    shipments_late: int = 0
