"""Rollup store ORM models.

One table per granularity (``analytics_daily``, ``analytics_weekly``,
``analytics_monthly``) sharing a single column layout. Metric groups are
flattened into ``<group>_<field>`` columns.

Identity is materialized in ``rollup_key`` (unique, non-null) so that a
NULL tenant/style/vendor/tailor component matches NULL on every backend.
"""

from decimal import Decimal
from typing import Any

from sqlalchemy import Float, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from stitchlab.core.database import Base
from stitchlab.features.rollups.periods import Granularity
from stitchlab.shared.models import TimestampMixin


class RollupMixin(TimestampMixin):
    """Column layout shared by every rollup table."""

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    rollup_key: Mapped[str] = mapped_column(String(120), unique=True, nullable=False)

    # Identity
    tenant_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    period: Mapped[str] = mapped_column(String(10), nullable=False)
    date: Mapped[str] = mapped_column(String(10), nullable=False)
    dimension: Mapped[str] = mapped_column(String(10), nullable=False)
    style_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    vendor_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    tailor_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Cutting
    cutting_received_orders: Mapped[int] = mapped_column(Integer, default=0)
    cutting_received_pcs: Mapped[int] = mapped_column(Integer, default=0)

    # Snapshots as of bucket end
    in_production_orders: Mapped[int] = mapped_column(Integer, default=0)
    in_production_pcs: Mapped[int] = mapped_column(Integer, default=0)
    pending_from_tailors_assignments: Mapped[int] = mapped_column(Integer, default=0)
    pending_from_tailors_pcs: Mapped[int] = mapped_column(Integer, default=0)

    pcs_shipped: Mapped[int] = mapped_column(Integer, default=0)
    pcs_completed: Mapped[int] = mapped_column(Integer, default=0)

    # Money
    revenue_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=Decimal("0"))
    revenue_currency: Mapped[str] = mapped_column(String(3), default="INR")
    expected_receivable_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), default=Decimal("0")
    )
    expected_receivable_invoices: Mapped[int] = mapped_column(Integer, default=0)
    tailor_expense_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=Decimal("0"))
    tailor_expense_payments: Mapped[int] = mapped_column(Integer, default=0)

    # Samples
    samples_requested: Mapped[int] = mapped_column(Integer, default=0)
    samples_submitted: Mapped[int] = mapped_column(Integer, default=0)
    samples_approved: Mapped[int] = mapped_column(Integer, default=0)
    samples_rejected: Mapped[int] = mapped_column(Integer, default=0)
    samples_avg_tat_days: Mapped[float] = mapped_column(Float, default=0.0)
    samples_approval_rate: Mapped[float] = mapped_column(Float, default=0.0)
    samples_tat_total_days: Mapped[float] = mapped_column(Float, default=0.0)
    samples_tat_count: Mapped[int] = mapped_column(Integer, default=0)

    # QC
    qc_inspections: Mapped[int] = mapped_column(Integer, default=0)
    qc_passed: Mapped[int] = mapped_column(Integer, default=0)
    qc_failed: Mapped[int] = mapped_column(Integer, default=0)
    qc_pass_rate: Mapped[float] = mapped_column(Float, default=0.0)

    # Shipments
    shipments_count: Mapped[int] = mapped_column(Integer, default=0)
    shipments_on_time: Mapped[int] = mapped_column(Integer, default=0)
    shipments_late: Mapped[int] = mapped_column(Integer, default=0)
    shipments_late_rate: Mapped[float] = mapped_column(Float, default=0.0)
    shipments_avg_delay_days: Mapped[float] = mapped_column(Float, default=0.0)
    shipments_delay_total_days: Mapped[float] = mapped_column(Float, default=0.0)
    shipments_delay_count: Mapped[int] = mapped_column(Integer, default=0)

    # Efficiency
    efficiency_yield_rate: Mapped[float] = mapped_column(Float, default=0.0)
    efficiency_rework_rate: Mapped[float] = mapped_column(Float, default=0.0)
    efficiency_defect_rate: Mapped[float] = mapped_column(Float, default=0.0)
    efficiency_issued_pcs: Mapped[int] = mapped_column(Integer, default=0)
    efficiency_returned_pcs: Mapped[int] = mapped_column(Integer, default=0)
    efficiency_rejected_pcs: Mapped[int] = mapped_column(Integer, default=0)

    # Fabric
    fabric_meters: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=Decimal("0"))
    fabric_wastage: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=Decimal("0"))

    @declared_attr.directive
    def __table_args__(cls) -> tuple[Any, ...]:
        name = cls.__tablename__
        return (
            Index(f"ix_{name}_tenant_dimension_date", "tenant_id", "dimension", "date"),
            Index(f"ix_{name}_style_date", "style_id", "date"),
            Index(f"ix_{name}_vendor_date", "vendor_id", "date"),
            Index(f"ix_{name}_tailor_date", "tailor_id", "date"),
        )


class AnalyticsDaily(RollupMixin, Base):
    """Daily rollups, label ``YYYY-MM-DD``."""

    __tablename__ = "analytics_daily"


class AnalyticsWeekly(RollupMixin, Base):
    """ISO-week rollups, label ``YYYY-Www``."""

    __tablename__ = "analytics_weekly"


class AnalyticsMonthly(RollupMixin, Base):
    """Calendar-month rollups, label ``YYYY-MM``."""

    __tablename__ = "analytics_monthly"


ROLLUP_MODELS: dict[Granularity, type[RollupMixin]] = {
    Granularity.DAILY: AnalyticsDaily,
    Granularity.WEEKLY: AnalyticsWeekly,
    Granularity.MONTHLY: AnalyticsMonthly,
}


def rollup_model(granularity: Granularity) -> type[RollupMixin]:
    """Return the rollup table model for a granularity."""
    return ROLLUP_MODELS[granularity]
