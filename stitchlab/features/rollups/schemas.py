"""Pydantic schemas for rollup aggregates and the refresh endpoint.

An ``AnalyticsAggregate`` is the in-memory form of one rollup row. Each
metric group is its own sub-model whose fields default to zero, so a bucket
without source data yields zeros, never nulls. ``to_row``/``from_row`` map
the nested groups onto the flat rollup table columns.
"""

import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from stitchlab.features.rollups.periods import Granularity

# =============================================================================
# Enums
# =============================================================================


class RollupDimension(str, Enum):
    """Tracked dimension a rollup row aggregates over."""

    TENANT = "tenant"
    STYLE = "style"
    TAILOR = "tailor"


# =============================================================================
# Metric Groups
# =============================================================================


class CuttingReceived(BaseModel):
    orders: int = 0
    pcs: int = 0


class InProduction(BaseModel):
    """Open jobs as of bucket end (snapshot)."""

    orders: int = 0
    pcs: int = 0


class Revenue(BaseModel):
    amount: Decimal = Decimal("0")
    currency: str = "INR"


class ExpectedReceivable(BaseModel):
    amount: Decimal = Decimal("0")
    invoices: int = 0


class TailorExpense(BaseModel):
    amount: Decimal = Decimal("0")
    payments: int = 0


class PendingFromTailors(BaseModel):
    """Pieces still with tailors as of bucket end (snapshot)."""

    assignments: int = 0
    pcs: int = 0


class SampleMetrics(BaseModel):
    """Sample round counts and turnaround.

    ``tat_total_days``/``tat_count`` keep the average recombinable across
    buckets.
    """

    requested: int = 0
    submitted: int = 0
    approved: int = 0
    rejected: int = 0
    avg_tat_days: float = 0.0
    approval_rate: float = 0.0
    tat_total_days: float = 0.0
    tat_count: int = 0


class QCMetrics(BaseModel):
    inspections: int = 0
    passed: int = 0
    failed: int = 0
    pass_rate: float = 0.0


class ShipmentMetrics(BaseModel):
    """Shipment punctuality. Shipments without a promised date are never late."""

    count: int = 0
    on_time: int = 0
    late: int = 0
    late_rate: float = 0.0
    avg_delay_days: float = 0.0
    delay_total_days: float = 0.0
    delay_count: int = 0


class EfficiencyMetrics(BaseModel):
    yield_rate: float = 0.0
    rework_rate: float = 0.0
    defect_rate: float = 0.0
    issued_pcs: int = 0
    returned_pcs: int = 0
    rejected_pcs: int = 0


class FabricConsumption(BaseModel):
    meters: Decimal = Decimal("0")
    wastage: Decimal = Decimal("0")


# Group attribute -> column prefix on the rollup tables
GROUP_PREFIXES: dict[str, str] = {
    "cutting_received": "cutting_received",
    "in_production": "in_production",
    "revenue": "revenue",
    "expected_receivable": "expected_receivable",
    "tailor_expense": "tailor_expense",
    "pending_from_tailors": "pending_from_tailors",
    "samples": "samples",
    "qc": "qc",
    "shipments": "shipments",
    "efficiency": "efficiency",
    "fabric_consumption": "fabric",
}
SCALAR_METRICS: tuple[str, ...] = ("pcs_shipped", "pcs_completed")


# =============================================================================
# Aggregate
# =============================================================================


class AnalyticsAggregate(BaseModel):
    """One rollup row: identity plus every metric group.

    Identity is ``(tenant_id, period, date, style_id, vendor_id, tailor_id)``;
    absent optional components are part of the key, not wildcards.
    """

    model_config = ConfigDict(from_attributes=True)

    tenant_id: int | None = None
    period: Granularity
    date: str = Field(..., description="Bucket label (YYYY-MM-DD, YYYY-Www or YYYY-MM).")
    dimension: RollupDimension = RollupDimension.TENANT
    style_id: int | None = None
    vendor_id: int | None = None
    tailor_id: int | None = None

    cutting_received: CuttingReceived = Field(default_factory=CuttingReceived)
    in_production: InProduction = Field(default_factory=InProduction)
    pcs_shipped: int = 0
    pcs_completed: int = 0
    revenue: Revenue = Field(default_factory=Revenue)
    expected_receivable: ExpectedReceivable = Field(default_factory=ExpectedReceivable)
    tailor_expense: TailorExpense = Field(default_factory=TailorExpense)
    pending_from_tailors: PendingFromTailors = Field(default_factory=PendingFromTailors)
    samples: SampleMetrics = Field(default_factory=SampleMetrics)
    qc: QCMetrics = Field(default_factory=QCMetrics)
    shipments: ShipmentMetrics = Field(default_factory=ShipmentMetrics)
    efficiency: EfficiencyMetrics = Field(default_factory=EfficiencyMetrics)
    fabric_consumption: FabricConsumption = Field(default_factory=FabricConsumption)

    @property
    def rollup_key(self) -> str:
        return make_rollup_key(
            self.tenant_id,
            self.period,
            self.date,
            self.style_id,
            self.vendor_id,
            self.tailor_id,
        )

    def to_row(self) -> dict[str, Any]:
        """Flatten into rollup table column values."""
        row: dict[str, Any] = {
            "rollup_key": self.rollup_key,
            "tenant_id": self.tenant_id,
            "period": self.period.value,
            "date": self.date,
            "dimension": self.dimension.value,
            "style_id": self.style_id,
            "vendor_id": self.vendor_id,
            "tailor_id": self.tailor_id,
        }
        for attr, prefix in GROUP_PREFIXES.items():
            for field, value in getattr(self, attr).model_dump().items():
                row[f"{prefix}_{field}"] = value
        for name in SCALAR_METRICS:
            row[name] = getattr(self, name)
        return row

    @classmethod
    def from_row(cls, row: Any) -> "AnalyticsAggregate":
        """Rebuild an aggregate from a rollup ORM row (or mapping)."""
        get = row.get if isinstance(row, dict) else lambda key: getattr(row, key)
        data: dict[str, Any] = {
            "tenant_id": get("tenant_id"),
            "period": get("period"),
            "date": get("date"),
            "dimension": get("dimension"),
            "style_id": get("style_id"),
            "vendor_id": get("vendor_id"),
            "tailor_id": get("tailor_id"),
        }
        for attr, prefix in GROUP_PREFIXES.items():
            group_cls = cls.model_fields[attr].annotation
            assert group_cls is not None
            data[attr] = {
                field: get(f"{prefix}_{field}") for field in group_cls.model_fields
            }
        for name in SCALAR_METRICS:
            data[name] = get(name)
        return cls.model_validate(data)


def make_rollup_key(
    tenant_id: int | None,
    period: Granularity | str,
    date: str,
    style_id: int | None,
    vendor_id: int | None,
    tailor_id: int | None,
) -> str:
    """Materialize the composite identity; a null component is an empty segment."""
    period_value = period.value if isinstance(period, Granularity) else period

    def part(value: int | None) -> str:
        return "" if value is None else str(value)

    return "|".join(
        [part(tenant_id), period_value, date, part(style_id), part(vendor_id), part(tailor_id)]
    )


# =============================================================================
# Refresh Endpoint Schemas
# =============================================================================


class RefreshRequest(BaseModel):
    """Request to rebuild rollups for a date range.

    Re-running an overlapping range overwrites existing rows.
    """

    tenant_id: int | None = Field(
        None, description="Tenant to refresh. Omit for single-tenant deployments."
    )
    start_date: datetime.date = Field(..., description="First day to rebuild (inclusive).")
    end_date: datetime.date = Field(..., description="Last day to rebuild (inclusive).")
    granularity: Granularity = Field(
        Granularity.DAILY, description="Bucket size: daily, weekly or monthly."
    )


class RefreshAllRequest(BaseModel):
    """Request to rebuild rollups for every tenant found on styles."""

    start_date: datetime.date
    end_date: datetime.date
    granularity: Granularity = Granularity.DAILY


class RefreshResponse(BaseModel):
    """Result of a refresh run.

    ``count`` is the number of buckets processed; ``rows_written`` the number
    of rollup rows upserted.
    """

    count: int = Field(..., ge=0, description="Buckets processed.")
    rows_written: int = Field(..., ge=0, description="Rollup rows upserted.")
    granularity: Granularity
    start_date: datetime.date
    end_date: datetime.date
    duration_ms: float = Field(..., ge=0)


class RefreshAllResponse(BaseModel):
    tenants: int = Field(..., ge=0, description="Tenants refreshed.")
    count: int = Field(..., ge=0, description="Buckets processed across tenants.")
    rows_written: int = Field(..., ge=0)
    granularity: Granularity
    duration_ms: float = Field(..., ge=0)
