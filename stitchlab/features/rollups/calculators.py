"""Metric calculators.

Each calculator reads one source for one scope and one bucket window and
returns a metric group. Missing source data, missing rates and zero
denominators resolve to zero. Database errors are not caught here; they
abort the bucket in the builder.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import Select, and_, case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from stitchlab.core.logging import get_logger
from stitchlab.features.production.models import (
    COMPLETED_JOB_STATUSES,
    OPEN_JOB_STATUSES,
    OPEN_PAYMENT_STATUSES,
    REVENUE_SHIPMENT_STATUSES,
    FabricCutting,
    QCInspection,
    SampleVersion,
    Shipment,
    TailorJob,
    TailorPayment,
    VendorRate,
)
from stitchlab.features.rollups.metrics import ratio
from stitchlab.features.rollups.periods import Bucket
from stitchlab.features.rollups.schemas import (
    CuttingReceived,
    EfficiencyMetrics,
    ExpectedReceivable,
    FabricConsumption,
    InProduction,
    PendingFromTailors,
    QCMetrics,
    Revenue,
    SampleMetrics,
    ShipmentMetrics,
    TailorExpense,
)
from stitchlab.features.rollups.sources import RollupScope, SourceType, apply_scope, window

logger = get_logger(__name__)

SECONDS_PER_DAY = 86_400


def _int(value: Any) -> int:
    return int(value or 0)


def _decimal(value: Any) -> Decimal:
    if value is None:
        return Decimal("0")
    return Decimal(str(value))


def _days_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / SECONDS_PER_DAY


async def _one(db: AsyncSession, stmt: Select[Any]) -> Any:
    result = await db.execute(stmt)
    return result.one()


async def _all(db: AsyncSession, stmt: Select[Any]) -> list[Any]:
    result = await db.execute(stmt)
    return list(result.all())


# =============================================================================
# Period-bounded calculators
# =============================================================================


async def cutting_received(db: AsyncSession, scope: RollupScope, bucket: Bucket) -> CuttingReceived:
    """Cutting records (orders) and pieces received in the bucket."""
    stmt = (
        select(
            func.count(FabricCutting.id),
            func.coalesce(func.sum(FabricCutting.cutting_received_pcs), 0),
        )
        .select_from(FabricCutting)
        .where(window(SourceType.FABRIC_CUTTING, bucket))
    )
    scoped = apply_scope(stmt, SourceType.FABRIC_CUTTING, scope)
    if scoped is None:
        return CuttingReceived()
    orders, pcs = await _one(db, scoped)
    return CuttingReceived(orders=_int(orders), pcs=_int(pcs))


async def pcs_shipped(db: AsyncSession, scope: RollupScope, bucket: Bucket) -> int:
    stmt = (
        select(func.coalesce(func.sum(Shipment.shipped_qty), 0))
        .select_from(Shipment)
        .where(window(SourceType.SHIPMENT, bucket))
    )
    scoped = apply_scope(stmt, SourceType.SHIPMENT, scope)
    if scoped is None:
        return 0
    (total,) = await _one(db, scoped)
    return _int(total)


async def pcs_completed(db: AsyncSession, scope: RollupScope, bucket: Bucket) -> int:
    """Pieces returned on jobs completed in the bucket (by ``completed_date`` only)."""
    stmt = (
        select(func.coalesce(func.sum(TailorJob.returned_pcs), 0))
        .select_from(TailorJob)
        .where(
            TailorJob.status.in_(COMPLETED_JOB_STATUSES),
            window(SourceType.TAILOR_JOB_COMPLETION, bucket),
        )
    )
    scoped = apply_scope(stmt, SourceType.TAILOR_JOB_COMPLETION, scope)
    if scoped is None:
        return 0
    (total,) = await _one(db, scoped)
    return _int(total)


async def revenue(
    db: AsyncSession, scope: RollupScope, bucket: Bucket, currency: str = "INR"
) -> Revenue:
    """Invoice value of shipments shipped or delivered in the bucket."""
    stmt = (
        select(func.coalesce(func.sum(Shipment.invoice_value), 0))
        .select_from(Shipment)
        .where(
            Shipment.status.in_(REVENUE_SHIPMENT_STATUSES),
            window(SourceType.SHIPMENT, bucket),
        )
    )
    scoped = apply_scope(stmt, SourceType.SHIPMENT, scope)
    if scoped is None:
        return Revenue(currency=currency)
    (amount,) = await _one(db, scoped)
    return Revenue(amount=_decimal(amount), currency=currency)


async def expected_receivable(
    db: AsyncSession, scope: RollupScope, bucket: Bucket
) -> ExpectedReceivable:
    """Unpaid shipments in the bucket valued at the (style, vendor) rate.

    A shipment without a matching rate counts as an invoice worth 0.
    """
    line_value = func.coalesce(Shipment.shipped_qty, 0) * func.coalesce(VendorRate.vendor_rate, 0)
    stmt = (
        select(func.count(Shipment.id), func.coalesce(func.sum(line_value), 0))
        .select_from(Shipment)
        .outerjoin(
            VendorRate,
            and_(
                VendorRate.style_id == Shipment.style_id,
                VendorRate.vendor_id == Shipment.vendor_id,
            ),
        )
        .where(
            or_(
                Shipment.payment_status.is_(None),
                Shipment.payment_status.in_(OPEN_PAYMENT_STATUSES),
            ),
            window(SourceType.SHIPMENT, bucket),
        )
    )
    scoped = apply_scope(stmt, SourceType.SHIPMENT, scope)
    if scoped is None:
        return ExpectedReceivable()
    invoices, amount = await _one(db, scoped)
    return ExpectedReceivable(amount=_decimal(amount), invoices=_int(invoices))


async def tailor_expense(db: AsyncSession, scope: RollupScope, bucket: Bucket) -> TailorExpense:
    stmt = (
        select(func.count(TailorPayment.id), func.coalesce(func.sum(TailorPayment.amount), 0))
        .select_from(TailorPayment)
        .where(window(SourceType.TAILOR_PAYMENT, bucket))
    )
    scoped = apply_scope(stmt, SourceType.TAILOR_PAYMENT, scope)
    if scoped is None:
        return TailorExpense()
    payments, amount = await _one(db, scoped)
    return TailorExpense(amount=_decimal(amount), payments=_int(payments))


async def samples(db: AsyncSession, scope: RollupScope, bucket: Bucket) -> SampleMetrics:
    """Sample rounds created in the bucket.

    Turnaround is averaged only over samples with both ``requested_at`` and
    ``submitted_at``.
    """
    stmt = (
        select(SampleVersion.status, SampleVersion.requested_at, SampleVersion.submitted_at)
        .select_from(SampleVersion)
        .where(window(SourceType.SAMPLE_VERSION, bucket))
    )
    scoped = apply_scope(stmt, SourceType.SAMPLE_VERSION, scope)
    if scoped is None:
        return SampleMetrics()
    rows = await _all(db, scoped)

    submitted = sum(1 for row in rows if row.submitted_at is not None)
    approved = sum(1 for row in rows if row.status == "approved")
    rejected = sum(1 for row in rows if row.status == "rejected")
    turnarounds = [
        _days_between(row.requested_at, row.submitted_at)
        for row in rows
        if row.requested_at is not None and row.submitted_at is not None
    ]
    tat_total = sum(turnarounds)

    return SampleMetrics(
        requested=len(rows),
        submitted=submitted,
        approved=approved,
        rejected=rejected,
        avg_tat_days=ratio(tat_total, len(turnarounds), scale=1.0),
        approval_rate=ratio(approved, submitted),
        tat_total_days=tat_total,
        tat_count=len(turnarounds),
    )


async def qc(db: AsyncSession, scope: RollupScope, bucket: Bucket) -> QCMetrics:
    stmt = (
        select(
            func.count(QCInspection.id),
            func.coalesce(func.sum(case((QCInspection.result == "passed", 1), else_=0)), 0),
            func.coalesce(func.sum(case((QCInspection.result == "failed", 1), else_=0)), 0),
        )
        .select_from(QCInspection)
        .where(window(SourceType.QC_INSPECTION, bucket))
    )
    scoped = apply_scope(stmt, SourceType.QC_INSPECTION, scope)
    if scoped is None:
        return QCMetrics()
    inspections, passed, failed = await _one(db, scoped)
    return QCMetrics(
        inspections=_int(inspections),
        passed=_int(passed),
        failed=_int(failed),
        pass_rate=ratio(_int(passed), _int(inspections)),
    )


async def shipments(db: AsyncSession, scope: RollupScope, bucket: Bucket) -> ShipmentMetrics:
    """Shipment punctuality for shipments in the bucket.

    A shipment is late only when it has a promised date and left after it.
    Average delay is over every shipment with a promised date, counting
    on-time shipments as zero days late.
    """
    stmt = (
        select(Shipment.shipped_at, Shipment.promised_date)
        .select_from(Shipment)
        .where(window(SourceType.SHIPMENT, bucket))
    )
    scoped = apply_scope(stmt, SourceType.SHIPMENT, scope)
    if scoped is None:
        return ShipmentMetrics()
    rows = await _all(db, scoped)

    delays = [
        max(_days_between(row.promised_date, row.shipped_at), 0.0)
        for row in rows
        if row.promised_date is not None and row.shipped_at is not None
    ]
    count = len(rows)
    late = sum(1 for d in delays if d > 0)
    delay_total = sum(delays)

    return ShipmentMetrics(
        count=count,
        on_time=count - late,
        late=late,
        late_rate=ratio(late, count),
        avg_delay_days=ratio(delay_total, len(delays), scale=1.0),
        delay_total_days=delay_total,
        delay_count=len(delays),
    )


async def efficiency(db: AsyncSession, scope: RollupScope, bucket: Bucket) -> EfficiencyMetrics:
    """Yield, defect and rework rates over jobs completed in the bucket."""
    stmt = (
        select(
            func.coalesce(func.sum(TailorJob.issued_pcs), 0),
            func.coalesce(func.sum(func.coalesce(TailorJob.returned_pcs, 0)), 0),
            func.coalesce(func.sum(func.coalesce(TailorJob.rejected_pcs, 0)), 0),
        )
        .select_from(TailorJob)
        .where(window(SourceType.TAILOR_JOB_COMPLETION, bucket))
    )
    scoped = apply_scope(stmt, SourceType.TAILOR_JOB_COMPLETION, scope)
    if scoped is None:
        return EfficiencyMetrics()
    issued, returned, rejected = (_int(v) for v in await _one(db, scoped))
    return EfficiencyMetrics(
        yield_rate=ratio(returned, issued),
        rework_rate=ratio(issued - returned + rejected, issued),
        defect_rate=ratio(rejected, returned),
        issued_pcs=issued,
        returned_pcs=returned,
        rejected_pcs=rejected,
    )


async def fabric_consumption(
    db: AsyncSession, scope: RollupScope, bucket: Bucket
) -> FabricConsumption:
    stmt = (
        select(
            func.coalesce(func.sum(FabricCutting.fabric_received_meters), 0),
            func.coalesce(func.sum(FabricCutting.wastage_meters), 0),
        )
        .select_from(FabricCutting)
        .where(window(SourceType.FABRIC_CUTTING, bucket))
    )
    scoped = apply_scope(stmt, SourceType.FABRIC_CUTTING, scope)
    if scoped is None:
        return FabricConsumption()
    meters, wastage = await _one(db, scoped)
    return FabricConsumption(meters=_decimal(meters), wastage=_decimal(wastage))


# =============================================================================
# Snapshot calculators (state as of bucket end, not bounded by bucket start)
# =============================================================================


def _open_jobs(bucket: Bucket) -> Select[Any]:
    """Jobs issued by bucket end and not completed by then.

    ``completed_date`` decides when it is set, so a bucket reads the same no
    matter when it is rebuilt. Jobs without one fall back to their status.
    A job completed after the bucket still had all its pieces out.
    """
    completed_later = TailorJob.completed_date > bucket.end
    outstanding = case(
        (completed_later, func.coalesce(TailorJob.issued_pcs, 0)),
        else_=func.coalesce(TailorJob.issued_pcs, 0) - func.coalesce(TailorJob.returned_pcs, 0),
    )
    return (
        select(func.count(TailorJob.id), func.coalesce(func.sum(outstanding), 0))
        .select_from(TailorJob)
        .where(
            TailorJob.issue_date <= bucket.end,
            or_(
                and_(
                    TailorJob.completed_date.is_(None),
                    TailorJob.status.in_(OPEN_JOB_STATUSES),
                ),
                completed_later,
            ),
        )
    )


async def in_production(db: AsyncSession, scope: RollupScope, bucket: Bucket) -> InProduction:
    scoped = apply_scope(_open_jobs(bucket), SourceType.TAILOR_JOB_ISSUE, scope)
    if scoped is None:
        return InProduction()
    orders, pcs = await _one(db, scoped)
    return InProduction(orders=_int(orders), pcs=_int(pcs))


async def pending_from_tailors(
    db: AsyncSession, scope: RollupScope, bucket: Bucket
) -> PendingFromTailors:
    """Open jobs handed to a tailor as of bucket end."""
    stmt = _open_jobs(bucket).where(TailorJob.tailor_id.is_not(None))
    scoped = apply_scope(stmt, SourceType.TAILOR_JOB_ISSUE, scope)
    if scoped is None:
        return PendingFromTailors()
    assignments, pcs = await _one(db, scoped)
    return PendingFromTailors(assignments=_int(assignments), pcs=_int(pcs))


# =============================================================================
# All metrics for one scope
# =============================================================================


async def compute_metric_set(
    db: AsyncSession,
    scope: RollupScope,
    bucket: Bucket,
    currency: str = "INR",
) -> dict[str, Any]:
    """Run every calculator for one scope and bucket.

    Calculators run sequentially on the shared session.

    Returns:
        Mapping of ``AnalyticsAggregate`` field name to metric value.
    """
    metric_set: dict[str, Any] = {
        "cutting_received": await cutting_received(db, scope, bucket),
        "in_production": await in_production(db, scope, bucket),
        "pcs_shipped": await pcs_shipped(db, scope, bucket),
        "pcs_completed": await pcs_completed(db, scope, bucket),
        "revenue": await revenue(db, scope, bucket, currency),
        "expected_receivable": await expected_receivable(db, scope, bucket),
        "tailor_expense": await tailor_expense(db, scope, bucket),
        "pending_from_tailors": await pending_from_tailors(db, scope, bucket),
        "samples": await samples(db, scope, bucket),
        "qc": await qc(db, scope, bucket),
        "shipments": await shipments(db, scope, bucket),
        "efficiency": await efficiency(db, scope, bucket),
        "fabric_consumption": await fabric_consumption(db, scope, bucket),
    }
    logger.debug(
        "rollups.metric_set_computed",
        bucket=bucket.label,
        tenant_id=scope.tenant_id,
        style_id=scope.style_id,
        tailor_id=scope.tailor_id,
    )
    return metric_set
