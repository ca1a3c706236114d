"""Metric registry for rollup columns.

Every stored metric is tagged at schema level with how it combines across
buckets:

- ``ADDITIVE``: period delta, summed across buckets (cutting pcs, revenue, ...).
- ``SNAPSHOT``: outstanding state as of bucket end (in production, pending from
  tailors). Never summed across buckets; a wider window takes the value of
  its latest bucket.
- ``DERIVED``: ratio of additive totals (pass rate, avg TAT, ...). Combined by
  summing numerator and denominator first, then dividing.

Within a single bucket, values from different dimension rows (e.g. several
styles) may always be summed: snapshot values of disjoint styles are additive
across styles, just not across time.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class MetricKind(str, Enum):
    """How a metric combines across buckets."""

    ADDITIVE = "additive"
    SNAPSHOT = "snapshot"
    DERIVED = "derived"


@dataclass(frozen=True)
class MetricDef:
    """Definition of one queryable metric.

    Attributes:
        name: Registry name (equals the rollup column for stored metrics).
        kind: Combination semantics across buckets.
        numerator: Derived only - weighted columns summed into the numerator.
        denominator: Derived only - column summed into the denominator.
        scale: Derived only - 100 for percentages, 1 for averages.
    """

    name: str
    kind: MetricKind
    numerator: tuple[tuple[str, float], ...] = field(default=())
    denominator: str | None = None
    scale: float = 100.0

    @property
    def columns(self) -> tuple[str, ...]:
        """Rollup columns needed to evaluate this metric."""
        if self.kind != MetricKind.DERIVED:
            return (self.name,)
        assert self.denominator is not None
        names = [col for col, _ in self.numerator]
        if self.denominator not in names:
            names.append(self.denominator)
        return tuple(names)


def ratio(numerator: float, denominator: float, scale: float = 100.0) -> float:
    """Return ``numerator / denominator * scale``, or 0 when the denominator is 0."""
    if not denominator:
        return 0.0
    return float(numerator) / float(denominator) * scale


def _additive(*names: str) -> dict[str, MetricDef]:
    return {n: MetricDef(name=n, kind=MetricKind.ADDITIVE) for n in names}


def _snapshot(*names: str) -> dict[str, MetricDef]:
    return {n: MetricDef(name=n, kind=MetricKind.SNAPSHOT) for n in names}


def _derived(
    name: str,
    numerator: tuple[tuple[str, float], ...],
    denominator: str,
    scale: float = 100.0,
) -> dict[str, MetricDef]:
    return {
        name: MetricDef(
            name=name,
            kind=MetricKind.DERIVED,
            numerator=numerator,
            denominator=denominator,
            scale=scale,
        )
    }


METRICS: dict[str, MetricDef] = {
    **_additive(
        "cutting_received_orders",
        "cutting_received_pcs",
        "pcs_shipped",
        "pcs_completed",
        "revenue_amount",
        "expected_receivable_amount",
        "expected_receivable_invoices",
        "tailor_expense_amount",
        "tailor_expense_payments",
        "samples_requested",
        "samples_submitted",
        "samples_approved",
        "samples_rejected",
        "samples_tat_total_days",
        "samples_tat_count",
        "qc_inspections",
        "qc_passed",
        "qc_failed",
        "shipments_count",
        "shipments_on_time",
        "shipments_late",
        "shipments_delay_total_days",
        "shipments_delay_count",
        "efficiency_issued_pcs",
        "efficiency_returned_pcs",
        "efficiency_rejected_pcs",
        "fabric_meters",
        "fabric_wastage",
    ),
    **_snapshot(
        "in_production_orders",
        "in_production_pcs",
        "pending_from_tailors_assignments",
        "pending_from_tailors_pcs",
    ),
    **_derived(
        "samples_avg_tat_days",
        (("samples_tat_total_days", 1.0),),
        "samples_tat_count",
        scale=1.0,
    ),
    **_derived("samples_approval_rate", (("samples_approved", 1.0),), "samples_submitted"),
    **_derived("qc_pass_rate", (("qc_passed", 1.0),), "qc_inspections"),
    **_derived("shipments_late_rate", (("shipments_late", 1.0),), "shipments_count"),
    **_derived(
        "shipments_avg_delay_days",
        (("shipments_delay_total_days", 1.0),),
        "shipments_delay_count",
        scale=1.0,
    ),
    **_derived(
        "efficiency_yield_rate",
        (("efficiency_returned_pcs", 1.0),),
        "efficiency_issued_pcs",
    ),
    **_derived(
        "efficiency_defect_rate",
        (("efficiency_rejected_pcs", 1.0),),
        "efficiency_returned_pcs",
    ),
    # Pieces not returned clean: issued - returned + rejected
    **_derived(
        "efficiency_rework_rate",
        (
            ("efficiency_issued_pcs", 1.0),
            ("efficiency_returned_pcs", -1.0),
            ("efficiency_rejected_pcs", 1.0),
        ),
        "efficiency_issued_pcs",
    ),
}

# Dashboard names (camelCase and group shorthands) accepted besides registry names
METRIC_ALIASES: dict[str, str] = {
    "cuttingReceived": "cutting_received_pcs",
    "cutting_received": "cutting_received_pcs",
    "inProduction": "in_production_pcs",
    "in_production": "in_production_pcs",
    "shippedPcs": "pcs_shipped",
    "pcsShipped": "pcs_shipped",
    "completedPcs": "pcs_completed",
    "pcsCompleted": "pcs_completed",
    "revenue": "revenue_amount",
    "expectedReceivable": "expected_receivable_amount",
    "expected_receivable": "expected_receivable_amount",
    "tailorExpense": "tailor_expense_amount",
    "tailor_expense": "tailor_expense_amount",
    "pendingFromTailors": "pending_from_tailors_pcs",
    "pending_from_tailors": "pending_from_tailors_pcs",
    "avgTatDays": "samples_avg_tat_days",
    "approvalRate": "samples_approval_rate",
    "passRate": "qc_pass_rate",
    "lateRate": "shipments_late_rate",
    "avgDelayDays": "shipments_avg_delay_days",
    "yieldRate": "efficiency_yield_rate",
    "defectRate": "efficiency_defect_rate",
    "reworkRate": "efficiency_rework_rate",
    "fabricMeters": "fabric_meters",
    "fabricWastage": "fabric_wastage",
}

# Stored columns, i.e. everything that is not computed on read
STORED_COLUMNS: tuple[str, ...] = tuple(
    name for name, m in METRICS.items() if m.kind != MetricKind.DERIVED
)
# Derived values are also persisted per row for direct consumers of the store
DERIVED_COLUMNS: tuple[str, ...] = tuple(
    name for name, m in METRICS.items() if m.kind == MetricKind.DERIVED
)


def resolve_metric(name: str) -> MetricDef | None:
    """Look up a metric by registry name or dashboard alias.

    Returns:
        The metric definition, or None for unknown names.
    """
    canonical = METRIC_ALIASES.get(name, name)
    return METRICS.get(canonical)


def sum_across_buckets(metric: MetricDef, values: Sequence[float]) -> float:
    """Sum per-bucket values of an additive metric.

    Raises:
        ValueError: If the metric is not additive.
    """
    if metric.kind != MetricKind.ADDITIVE:
        raise ValueError(
            f"Metric '{metric.name}' is {metric.kind.value}; it cannot be summed across buckets"
        )
    return float(sum(values))


def evaluate(metric: MetricDef, totals: Mapping[str, Any]) -> float:
    """Evaluate a metric from column totals of a single bucket or combined window."""
    if metric.kind != MetricKind.DERIVED:
        return float(totals.get(metric.name) or 0)
    assert metric.denominator is not None
    numerator = sum(float(totals.get(col) or 0) * weight for col, weight in metric.numerator)
    return ratio(numerator, float(totals.get(metric.denominator) or 0), metric.scale)


def combine_buckets(metric: MetricDef, buckets: Sequence[Mapping[str, Any]]) -> float:
    """Combine per-bucket column totals into one value for the whole window.

    Args:
        metric: Metric to evaluate.
        buckets: Column totals per bucket, ordered ascending by bucket label.

    Returns:
        Sum for additive metrics, latest bucket for snapshots, and the ratio
        of summed numerator/denominator for derived metrics.
    """
    if not buckets:
        return 0.0
    if metric.kind == MetricKind.SNAPSHOT:
        return evaluate(metric, buckets[-1])
    if metric.kind == MetricKind.ADDITIVE:
        return sum_across_buckets(metric, [evaluate(metric, b) for b in buckets])

    combined: dict[str, float] = {}
    for col in metric.columns:
        column_metric = METRICS[col]
        combined[col] = sum_across_buckets(
            column_metric, [float(b.get(col) or 0) for b in buckets]
        )
    return evaluate(metric, combined)
