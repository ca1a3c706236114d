"""create_production_and_rollup_tables

Revision ID: 3b1e6c7d2a10
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "3b1e6c7d2a10"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ROLLUP_TABLES = ("analytics_daily", "analytics_weekly", "analytics_monthly")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def _int(name: str) -> sa.Column:
    return sa.Column(name, sa.Integer(), nullable=False, server_default="0")


def _float(name: str) -> sa.Column:
    return sa.Column(name, sa.Float(), nullable=False, server_default="0")


def _money(name: str) -> sa.Column:
    return sa.Column(name, sa.Numeric(precision=14, scale=2), nullable=False, server_default="0")


def _create_rollup_table(name: str) -> None:
    op.create_table(
        name,
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("rollup_key", sa.String(length=120), nullable=False),
        # Identity
        sa.Column("tenant_id", sa.Integer(), nullable=True),
        sa.Column("period", sa.String(length=10), nullable=False),
        sa.Column("date", sa.String(length=10), nullable=False),
        sa.Column("dimension", sa.String(length=10), nullable=False),
        sa.Column("style_id", sa.Integer(), nullable=True),
        sa.Column("vendor_id", sa.Integer(), nullable=True),
        sa.Column("tailor_id", sa.Integer(), nullable=True),
        # Cutting
        _int("cutting_received_orders"),
        _int("cutting_received_pcs"),
        # Snapshots
        _int("in_production_orders"),
        _int("in_production_pcs"),
        _int("pending_from_tailors_assignments"),
        _int("pending_from_tailors_pcs"),
        _int("pcs_shipped"),
        _int("pcs_completed"),
        # Money
        _money("revenue_amount"),
        sa.Column("revenue_currency", sa.String(length=3), nullable=False, server_default="INR"),
        _money("expected_receivable_amount"),
        _int("expected_receivable_invoices"),
        _money("tailor_expense_amount"),
        _int("tailor_expense_payments"),
        # Samples
        _int("samples_requested"),
        _int("samples_submitted"),
        _int("samples_approved"),
        _int("samples_rejected"),
        _float("samples_avg_tat_days"),
        _float("samples_approval_rate"),
        _float("samples_tat_total_days"),
        _int("samples_tat_count"),
        # QC
        _int("qc_inspections"),
        _int("qc_passed"),
        _int("qc_failed"),
        _float("qc_pass_rate"),
        # Shipments
        _int("shipments_count"),
        _int("shipments_on_time"),
        _int("shipments_late"),
        _float("shipments_late_rate"),
        _float("shipments_avg_delay_days"),
        _float("shipments_delay_total_days"),
        _int("shipments_delay_count"),
        # Efficiency
        _float("efficiency_yield_rate"),
        _float("efficiency_rework_rate"),
        _float("efficiency_defect_rate"),
        _int("efficiency_issued_pcs"),
        _int("efficiency_returned_pcs"),
        _int("efficiency_rejected_pcs"),
        # Fabric
        _money("fabric_meters"),
        _money("fabric_wastage"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("rollup_key", name=f"uq_{name}_rollup_key"),
    )
    op.create_index(f"ix_{name}_tenant_dimension_date", name, ["tenant_id", "dimension", "date"])
    op.create_index(f"ix_{name}_style_date", name, ["style_id", "date"])
    op.create_index(f"ix_{name}_vendor_date", name, ["vendor_id", "date"])
    op.create_index(f"ix_{name}_tailor_date", name, ["tailor_id", "date"])


def upgrade() -> None:
    """Apply migration - create production source tables and rollup tables."""
    # Reference tables
    op.create_table(
        "vendor",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=True),
        sa.Column("code", sa.String(length=30), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_vendor_tenant_id", "vendor", ["tenant_id"])
    op.create_index("ix_vendor_code", "vendor", ["code"])

    op.create_table(
        "style",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=True),
        sa.Column("code", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=True),
        sa.Column("vendor_id", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["vendor_id"], ["vendor.id"]),
    )
    op.create_index("ix_style_tenant_id", "style", ["tenant_id"])
    op.create_index("ix_style_code", "style", ["code"])
    op.create_index("ix_style_vendor_id", "style", ["vendor_id"])

    op.create_table(
        "tailor",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=True),
        sa.Column("code", sa.String(length=30), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_tailor_tenant_id", "tailor", ["tenant_id"])
    op.create_index("ix_tailor_code", "tailor", ["code"])

    op.create_table(
        "vendor_rate",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("style_id", sa.Integer(), nullable=False),
        sa.Column("vendor_id", sa.Integer(), nullable=False),
        sa.Column("vendor_rate", sa.Numeric(precision=12, scale=2), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["style_id"], ["style.id"]),
        sa.ForeignKeyConstraint(["vendor_id"], ["vendor.id"]),
        sa.UniqueConstraint("style_id", "vendor_id", name="uq_vendor_rate_style_vendor"),
        sa.CheckConstraint("vendor_rate >= 0", name="ck_vendor_rate_positive"),
    )
    op.create_index("ix_vendor_rate_style_id", "vendor_rate", ["style_id"])
    op.create_index("ix_vendor_rate_vendor_id", "vendor_rate", ["vendor_id"])

    # Transactional tables
    op.create_table(
        "fabric_cutting",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=True),
        sa.Column("style_id", sa.Integer(), nullable=False),
        sa.Column("cutting_received_pcs", sa.Integer(), nullable=True),
        sa.Column("fabric_received_meters", sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column("wastage_meters", sa.Numeric(precision=12, scale=2), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["style_id"], ["style.id"]),
    )
    op.create_index("ix_fabric_cutting_tenant_id", "fabric_cutting", ["tenant_id"])
    op.create_index("ix_fabric_cutting_style_id", "fabric_cutting", ["style_id"])
    op.create_index("ix_fabric_cutting_style_created", "fabric_cutting", ["style_id", "created_at"])

    op.create_table(
        "tailor_job",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("style_id", sa.Integer(), nullable=False),
        sa.Column("tailor_id", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("issued_pcs", sa.Integer(), nullable=True),
        sa.Column("returned_pcs", sa.Integer(), nullable=True),
        sa.Column("rejected_pcs", sa.Integer(), nullable=True),
        sa.Column("issue_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_date", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["style_id"], ["style.id"]),
        sa.ForeignKeyConstraint(["tailor_id"], ["tailor.id"]),
    )
    op.create_index("ix_tailor_job_style_id", "tailor_job", ["style_id"])
    op.create_index("ix_tailor_job_tailor_id", "tailor_job", ["tailor_id"])
    op.create_index("ix_tailor_job_status", "tailor_job", ["status"])
    op.create_index("ix_tailor_job_status_issue", "tailor_job", ["status", "issue_date"])
    op.create_index("ix_tailor_job_style_completed", "tailor_job", ["style_id", "completed_date"])

    op.create_table(
        "shipment",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=True),
        sa.Column("style_id", sa.Integer(), nullable=False),
        sa.Column("vendor_id", sa.Integer(), nullable=True),
        sa.Column("shipped_qty", sa.Integer(), nullable=True),
        sa.Column("invoice_value", sa.Numeric(precision=14, scale=2), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("payment_status", sa.String(length=20), nullable=True),
        sa.Column("shipped_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("promised_date", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["style_id"], ["style.id"]),
        sa.ForeignKeyConstraint(["vendor_id"], ["vendor.id"]),
    )
    op.create_index("ix_shipment_tenant_id", "shipment", ["tenant_id"])
    op.create_index("ix_shipment_style_id", "shipment", ["style_id"])
    op.create_index("ix_shipment_vendor_id", "shipment", ["vendor_id"])
    op.create_index("ix_shipment_style_shipped", "shipment", ["style_id", "shipped_at"])

    op.create_table(
        "tailor_payment",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=True),
        sa.Column("style_id", sa.Integer(), nullable=True),
        sa.Column("tailor_id", sa.Integer(), nullable=True),
        sa.Column("amount", sa.Numeric(precision=14, scale=2), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["style_id"], ["style.id"]),
        sa.ForeignKeyConstraint(["tailor_id"], ["tailor.id"]),
    )
    op.create_index("ix_tailor_payment_tenant_id", "tailor_payment", ["tenant_id"])
    op.create_index("ix_tailor_payment_style_id", "tailor_payment", ["style_id"])
    op.create_index("ix_tailor_payment_tailor_id", "tailor_payment", ["tailor_id"])

    op.create_table(
        "sample_version",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=True),
        sa.Column("style_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("requested_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["style_id"], ["style.id"]),
    )
    op.create_index("ix_sample_version_tenant_id", "sample_version", ["tenant_id"])
    op.create_index("ix_sample_version_style_id", "sample_version", ["style_id"])

    op.create_table(
        "qc_inspection",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=True),
        sa.Column("style_id", sa.Integer(), nullable=False),
        sa.Column("result", sa.String(length=20), nullable=True),
        sa.Column("inspected_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["style_id"], ["style.id"]),
        sa.CheckConstraint(
            "result IS NULL OR result IN ('passed', 'failed')",
            name="ck_qc_inspection_result",
        ),
    )
    op.create_index("ix_qc_inspection_tenant_id", "qc_inspection", ["tenant_id"])
    op.create_index("ix_qc_inspection_style_id", "qc_inspection", ["style_id"])

    # Rollup store, one table per granularity
    for name in ROLLUP_TABLES:
        _create_rollup_table(name)


def downgrade() -> None:
    """Revert migration - drop rollup and production tables."""
    for name in reversed(ROLLUP_TABLES):
        op.drop_table(name)

    op.drop_table("qc_inspection")
    op.drop_table("sample_version")
    op.drop_table("tailor_payment")
    op.drop_table("shipment")
    op.drop_table("tailor_job")
    op.drop_table("fabric_cutting")
    op.drop_table("vendor_rate")
    op.drop_table("tailor")
    op.drop_table("style")
    op.drop_table("vendor")
