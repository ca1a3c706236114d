"""Production pipeline ORM models consumed by the analytics core.

This module defines the reference and transactional records of the
garment pipeline (cutting -> tailoring -> QC -> shipment -> payment):
- Reference: Vendor, Style, Tailor, VendorRate
- Transactional: FabricCutting, TailorJob, Shipment, TailorPayment,
  SampleVersion, QCInspection

The analytics core only reads these tables. Tailor jobs carry no tenant id;
tenant scoping for jobs goes through ``style.tenant_id``.
"""

import datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stitchlab.core.database import Base
from stitchlab.shared.models import TimestampMixin

# Job lifecycle groupings used by the calculators
OPEN_JOB_STATUSES: tuple[str, ...] = ("issued", "in_progress")
COMPLETED_JOB_STATUSES: tuple[str, ...] = ("completed", "ready_to_ship", "shipped")

# Shipment statuses that count as invoiced revenue
REVENUE_SHIPMENT_STATUSES: tuple[str, ...] = ("shipped", "delivered")

# Payment statuses that are still receivable (NULL also counts)
OPEN_PAYMENT_STATUSES: tuple[str, ...] = ("pending", "partial")


# ============================================================================
# REFERENCE TABLES
# ============================================================================


class Vendor(TimestampMixin, Base):
    """Vendor (buyer brand) placing style orders.

    Attributes:
        id: Primary key.
        tenant_id: Owning tenant (NULL in single-tenant deployments).
        code: Short vendor code.
        name: Display name.
    """

    __tablename__ = "vendor"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[int | None] = mapped_column(Integer, index=True, nullable=True)
    code: Mapped[str] = mapped_column(String(30), index=True)
    name: Mapped[str] = mapped_column(String(200))

    styles: Mapped[list["Style"]] = relationship(back_populates="vendor")


class Style(TimestampMixin, Base):
    """Garment style, the main rollup dimension.

    Attributes:
        id: Primary key.
        tenant_id: Owning tenant (NULL in single-tenant deployments).
        code: Style code (e.g., "ST-1042").
        name: Style display name.
        vendor_id: Vendor the style is produced for.
    """

    __tablename__ = "style"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[int | None] = mapped_column(Integer, index=True, nullable=True)
    code: Mapped[str] = mapped_column(String(50), index=True)
    name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    vendor_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("vendor.id"), index=True, nullable=True
    )

    vendor: Mapped["Vendor | None"] = relationship(back_populates="styles")


class Tailor(TimestampMixin, Base):
    """Tailor (or tailoring unit) receiving cut pieces.

    Attributes:
        id: Primary key.
        tenant_id: Owning tenant (NULL in single-tenant deployments).
        code: Tailor code.
        name: Display name.
    """

    __tablename__ = "tailor"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[int | None] = mapped_column(Integer, index=True, nullable=True)
    code: Mapped[str] = mapped_column(String(30), index=True)
    name: Mapped[str] = mapped_column(String(200))


class VendorRate(TimestampMixin, Base):
    """Per-piece rate agreed with a vendor for a style.

    At most one rate exists per (style, vendor) pair.
    """

    __tablename__ = "vendor_rate"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    style_id: Mapped[int] = mapped_column(Integer, ForeignKey("style.id"), index=True)
    vendor_id: Mapped[int] = mapped_column(Integer, ForeignKey("vendor.id"), index=True)
    vendor_rate: Mapped[Decimal] = mapped_column(Numeric(12, 2))

    __table_args__ = (
        UniqueConstraint("style_id", "vendor_id", name="uq_vendor_rate_style_vendor"),
        CheckConstraint("vendor_rate >= 0", name="ck_vendor_rate_positive"),
    )


# ============================================================================
# TRANSACTIONAL TABLES
# ============================================================================


class FabricCutting(TimestampMixin, Base):
    """Fabric received and cut into pieces for a style.

    Occurrence time is ``created_at``.
    """

    __tablename__ = "fabric_cutting"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[int | None] = mapped_column(Integer, index=True, nullable=True)
    style_id: Mapped[int] = mapped_column(Integer, ForeignKey("style.id"), index=True)
    cutting_received_pcs: Mapped[int | None] = mapped_column(Integer, nullable=True)
    fabric_received_meters: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    wastage_meters: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    __table_args__ = (Index("ix_fabric_cutting_style_created", "style_id", "created_at"),)


class TailorJob(TimestampMixin, Base):
    """Pieces issued to a tailor for stitching.

    Attributes:
        status: issued | in_progress | completed | ready_to_ship | shipped.
        issued_pcs: Pieces handed to the tailor.
        returned_pcs: Pieces returned stitched (NULL until returned).
        rejected_pcs: Returned pieces rejected for rework.
        issue_date: When pieces were issued.
        completed_date: When the job was completed (authoritative completion time).
    """

    __tablename__ = "tailor_job"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    style_id: Mapped[int] = mapped_column(Integer, ForeignKey("style.id"), index=True)
    tailor_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("tailor.id"), index=True, nullable=True
    )
    status: Mapped[str] = mapped_column(String(20), index=True, default="issued")
    issued_pcs: Mapped[int | None] = mapped_column(Integer, nullable=True)
    returned_pcs: Mapped[int | None] = mapped_column(Integer, nullable=True)
    rejected_pcs: Mapped[int | None] = mapped_column(Integer, nullable=True)
    issue_date: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    completed_date: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        Index("ix_tailor_job_status_issue", "status", "issue_date"),
        Index("ix_tailor_job_style_completed", "style_id", "completed_date"),
    )


class Shipment(TimestampMixin, Base):
    """Finished pieces shipped to a vendor.

    Attributes:
        shipped_qty: Pieces shipped.
        invoice_value: Invoiced amount for the shipment.
        status: draft | shipped | delivered | cancelled.
        payment_status: pending | partial | paid (NULL = not invoiced yet).
        shipped_at: When the shipment left.
        promised_date: Committed delivery date (NULL = no commitment).
    """

    __tablename__ = "shipment"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[int | None] = mapped_column(Integer, index=True, nullable=True)
    style_id: Mapped[int] = mapped_column(Integer, ForeignKey("style.id"), index=True)
    vendor_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("vendor.id"), index=True, nullable=True
    )
    shipped_qty: Mapped[int | None] = mapped_column(Integer, nullable=True)
    invoice_value: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="shipped")
    payment_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    shipped_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    promised_date: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (Index("ix_shipment_style_shipped", "style_id", "shipped_at"),)


class TailorPayment(TimestampMixin, Base):
    """Payment made to a tailor."""

    __tablename__ = "tailor_payment"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[int | None] = mapped_column(Integer, index=True, nullable=True)
    style_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("style.id"), index=True, nullable=True
    )
    tailor_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("tailor.id"), index=True, nullable=True
    )
    amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    paid_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class SampleVersion(TimestampMixin, Base):
    """A sample round for a style (requested, submitted, then approved/rejected).

    Occurrence time is ``created_at``; turnaround is ``submitted_at - requested_at``.
    """

    __tablename__ = "sample_version"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[int | None] = mapped_column(Integer, index=True, nullable=True)
    style_id: Mapped[int] = mapped_column(Integer, ForeignKey("style.id"), index=True)
    status: Mapped[str] = mapped_column(String(20), default="requested")
    requested_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    submitted_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class QCInspection(TimestampMixin, Base):
    """Quality-control inspection of a batch of pieces."""

    __tablename__ = "qc_inspection"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[int | None] = mapped_column(Integer, index=True, nullable=True)
    style_id: Mapped[int] = mapped_column(Integer, ForeignKey("style.id"), index=True)
    result: Mapped[str | None] = mapped_column(String(20), nullable=True)
    inspected_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        CheckConstraint(
            "result IS NULL OR result IN ('passed', 'failed')",
            name="ck_qc_inspection_result",
        ),
    )
