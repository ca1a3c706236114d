"""Per-source configuration: which column dates an event, and how to scope it.

Every transactional source is described once here instead of spreading
timestamp and tenant column names across the calculators. Calculators ask
for ``window(source, bucket)`` and ``apply_scope(stmt, source, scope)``.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from sqlalchemy import Select, and_
from sqlalchemy.sql.elements import ColumnElement

from stitchlab.features.production.models import (
    FabricCutting,
    QCInspection,
    SampleVersion,
    Shipment,
    Style,
    TailorJob,
    TailorPayment,
)
from stitchlab.features.rollups.periods import Bucket


class SourceType(str, Enum):
    """Transactional event sources the calculators read."""

    FABRIC_CUTTING = "fabric_cutting"
    TAILOR_JOB_COMPLETION = "tailor_job_completion"
    TAILOR_JOB_ISSUE = "tailor_job_issue"
    SHIPMENT = "shipment"
    TAILOR_PAYMENT = "tailor_payment"
    SAMPLE_VERSION = "sample_version"
    QC_INSPECTION = "qc_inspection"


@dataclass(frozen=True)
class SourceSpec:
    """How one source is dated and scoped.

    Attributes:
        model: ORM model holding the records.
        timestamp_field: Column that places a record in a bucket.
        tenant_field: Tenant column, or None when tenancy comes from the style.
        style_field: Column referencing the style.
        tailor_field: Column referencing the tailor, or None if not tracked.
    """

    model: Any
    timestamp_field: str
    tenant_field: str | None
    style_field: str = "style_id"
    tailor_field: str | None = None

    def column(self, name: str) -> Any:
        return getattr(self.model, name)

    @property
    def timestamp(self) -> Any:
        return self.column(self.timestamp_field)


SOURCES: dict[SourceType, SourceSpec] = {
    SourceType.FABRIC_CUTTING: SourceSpec(FabricCutting, "created_at", "tenant_id"),
    # Tailor jobs have no tenant column; tenancy is resolved through style
    SourceType.TAILOR_JOB_COMPLETION: SourceSpec(
        TailorJob, "completed_date", None, tailor_field="tailor_id"
    ),
    SourceType.TAILOR_JOB_ISSUE: SourceSpec(
        TailorJob, "issue_date", None, tailor_field="tailor_id"
    ),
    SourceType.SHIPMENT: SourceSpec(Shipment, "shipped_at", "tenant_id"),
    SourceType.TAILOR_PAYMENT: SourceSpec(
        TailorPayment, "paid_at", "tenant_id", tailor_field="tailor_id"
    ),
    SourceType.SAMPLE_VERSION: SourceSpec(SampleVersion, "created_at", "tenant_id"),
    SourceType.QC_INSPECTION: SourceSpec(QCInspection, "inspected_at", "tenant_id"),
}


@dataclass(frozen=True)
class RollupScope:
    """Dimension filter a calculator runs under.

    ``None`` means "not filtered on this dimension". A scope with neither
    style nor tailor is the tenant-wide scope.
    """

    tenant_id: int | None = None
    style_id: int | None = None
    tailor_id: int | None = None


def window(source: SourceType, bucket: Bucket) -> ColumnElement[bool]:
    """Inclusive ``[bucket.start, bucket.end]`` filter on the source's timestamp."""
    ts = SOURCES[source].timestamp
    return and_(ts >= bucket.start, ts <= bucket.end)


def apply_scope(stmt: Select[Any], source: SourceType, scope: RollupScope) -> Select[Any] | None:
    """Restrict a statement over ``source`` to ``scope``.

    Args:
        stmt: Select statement whose FROM includes the source model.
        source: Source being queried.
        scope: Tenant/style/tailor filter.

    Returns:
        The filtered statement, or None when the source cannot be attributed
        to the requested tailor (its contribution is zero).
    """
    spec = SOURCES[source]

    if scope.tailor_id is not None:
        if spec.tailor_field is None:
            return None
        stmt = stmt.where(spec.column(spec.tailor_field) == scope.tailor_id)

    if scope.style_id is not None:
        stmt = stmt.where(spec.column(spec.style_field) == scope.style_id)

    if scope.tenant_id is not None:
        if spec.tenant_field is not None:
            stmt = stmt.where(spec.column(spec.tenant_field) == scope.tenant_id)
        else:
            stmt = stmt.join(Style, Style.id == spec.column(spec.style_field)).where(
                Style.tenant_id == scope.tenant_id
            )

    return stmt
