"""Tests for the rollup metric registry."""

import pytest

from stitchlab.features.rollups.metrics import (
    DERIVED_COLUMNS,
    METRICS,
    STORED_COLUMNS,
    MetricKind,
    combine_buckets,
    evaluate,
    ratio,
    resolve_metric,
    sum_across_buckets,
)
from stitchlab.features.rollups.models import AnalyticsDaily


class TestRatio:
    """Tests for zero-safe ratios."""

    def test_zero_denominator_is_zero(self) -> None:
        """Division by zero yields 0, never an error or NaN."""
        assert ratio(5, 0) == 0.0

    def test_percentage_scale(self) -> None:
        """Default scale is a percentage."""
        assert ratio(1, 4) == 25.0

    def test_unit_scale(self) -> None:
        """Averages use scale 1."""
        assert ratio(6, 3, scale=1.0) == 2.0


class TestRegistry:
    """Tests for metric definitions."""

    def test_every_metric_has_a_rollup_column(self) -> None:
        """Stored and derived metrics all map to rollup table columns."""
        for name in (*STORED_COLUMNS, *DERIVED_COLUMNS):
            assert hasattr(AnalyticsDaily, name), name

    def test_snapshot_metrics(self) -> None:
        """Outstanding-state metrics are tagged as snapshots."""
        snapshots = {n for n, m in METRICS.items() if m.kind == MetricKind.SNAPSHOT}
        assert snapshots == {
            "in_production_orders",
            "in_production_pcs",
            "pending_from_tailors_assignments",
            "pending_from_tailors_pcs",
        }

    def test_derived_columns_are_additive_inputs(self) -> None:
        """Derived metrics only reference additive columns."""
        for name in DERIVED_COLUMNS:
            for col in METRICS[name].columns:
                assert METRICS[col].kind == MetricKind.ADDITIVE

    def test_resolve_alias(self) -> None:
        """Dashboard aliases resolve to registry names."""
        metric = resolve_metric("cuttingReceived")
        assert metric is not None
        assert metric.name == "cutting_received_pcs"

    def test_resolve_registry_name(self) -> None:
        """Registry names resolve to themselves."""
        metric = resolve_metric("qc_pass_rate")
        assert metric is not None
        assert metric.kind == MetricKind.DERIVED

    def test_resolve_unknown_is_none(self) -> None:
        """Unknown names are not an error."""
        assert resolve_metric("not_a_metric") is None


class TestCombineBuckets:
    """Tests for combining per-bucket totals over a window."""

    def test_additive_metric_is_summed(self) -> None:
        """Additive metrics sum across buckets."""
        metric = METRICS["cutting_received_pcs"]
        buckets = [{"cutting_received_pcs": 200}, {"cutting_received_pcs": 300}]

        assert combine_buckets(metric, buckets) == 500.0

    def test_snapshot_takes_latest_bucket(self) -> None:
        """Snapshots are never summed; the window value is the latest bucket."""
        metric = METRICS["pending_from_tailors_pcs"]
        buckets = [
            {"pending_from_tailors_pcs": 100},
            {"pending_from_tailors_pcs": 80},
            {"pending_from_tailors_pcs": 50},
        ]

        assert combine_buckets(metric, buckets) == 50.0

    def test_derived_recombines_numerator_and_denominator(self) -> None:
        """Rates are recomputed from totals, not averaged."""
        metric = METRICS["qc_pass_rate"]
        buckets = [
            {"qc_passed": 1, "qc_inspections": 1},  # 100%
            {"qc_passed": 0, "qc_inspections": 3},  # 0%
        ]

        assert combine_buckets(metric, buckets) == 25.0

    def test_derived_with_zero_denominator_is_zero(self) -> None:
        """No inspections means a 0 pass rate."""
        metric = METRICS["qc_pass_rate"]
        assert combine_buckets(metric, [{"qc_passed": 0, "qc_inspections": 0}]) == 0.0

    def test_empty_window_is_zero(self) -> None:
        """A window without buckets evaluates to 0."""
        assert combine_buckets(METRICS["pcs_shipped"], []) == 0.0

    def test_average_delay_counts_on_time_promised_shipments(self) -> None:
        """Delay is averaged over every shipment with a promised date."""
        metric = METRICS["shipments_avg_delay_days"]
        buckets = [
            {"shipments_delay_total_days": 2.0, "shipments_delay_count": 2},
            {"shipments_delay_total_days": 0.0, "shipments_delay_count": 2},
        ]

        assert metric.denominator == "shipments_delay_count"
        assert combine_buckets(metric, buckets) == pytest.approx(0.5)

    def test_rework_rate_counts_unreturned_and_rejected(self) -> None:
        """Rework = (issued - returned + rejected) / issued."""
        metric = METRICS["efficiency_rework_rate"]
        totals = {
            "efficiency_issued_pcs": 50,
            "efficiency_returned_pcs": 45,
            "efficiency_rejected_pcs": 5,
        }

        assert evaluate(metric, totals) == pytest.approx(20.0)

    def test_average_turnaround_is_weighted(self) -> None:
        """Average TAT divides total days by the number of measured samples."""
        metric = METRICS["samples_avg_tat_days"]
        buckets = [
            {"samples_tat_total_days": 2.0, "samples_tat_count": 1},
            {"samples_tat_total_days": 10.0, "samples_tat_count": 4},
        ]

        assert combine_buckets(metric, buckets) == pytest.approx(2.4)


class TestSumAcrossBuckets:
    """Tests for the additive-only summation guard."""

    def test_sums_additive(self) -> None:
        """Additive values are summed."""
        assert sum_across_buckets(METRICS["pcs_shipped"], [10, 20]) == 30.0

    def test_rejects_snapshot(self) -> None:
        """Summing a snapshot over time is refused."""
        with pytest.raises(ValueError, match="snapshot"):
            sum_across_buckets(METRICS["in_production_pcs"], [10, 20])

    def test_rejects_derived(self) -> None:
        """Summing a ratio over time is refused."""
        with pytest.raises(ValueError, match="derived"):
            sum_across_buckets(METRICS["qc_pass_rate"], [50.0, 50.0])
