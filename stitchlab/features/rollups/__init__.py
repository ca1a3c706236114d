"""Rollup engine: period buckets, metric calculators, aggregate builder and store."""

from stitchlab.features.rollups.builder import AggregateBuilder
from stitchlab.features.rollups.models import (
    ROLLUP_MODELS,
    AnalyticsDaily,
    AnalyticsMonthly,
    AnalyticsWeekly,
)
from stitchlab.features.rollups.periods import Bucket, Granularity, generate_ranges
from stitchlab.features.rollups.schemas import AnalyticsAggregate, RollupDimension
from stitchlab.features.rollups.service import RollupService
from stitchlab.features.rollups.store import RollupStore

__all__ = [
    "ROLLUP_MODELS",
    "AggregateBuilder",
    "AnalyticsAggregate",
    "AnalyticsDaily",
    "AnalyticsMonthly",
    "AnalyticsWeekly",
    "Bucket",
    "Granularity",
    "RollupDimension",
    "RollupService",
    "RollupStore",
    "generate_ranges",
]
