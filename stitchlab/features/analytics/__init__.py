"""Analytics module: role-scoped KPI cards, trends, breakdowns and drilldowns.

All reads go to the rollup store maintained by ``stitchlab.features.rollups``.
"""

from stitchlab.features.analytics.scope import (
    AnalyticsFilters,
    CallerIdentity,
    QueryScope,
    Role,
    ScopeError,
    build_scope,
)
from stitchlab.features.analytics.service import AnalyticsQueryService

__all__ = [
    "AnalyticsFilters",
    "AnalyticsQueryService",
    "CallerIdentity",
    "QueryScope",
    "Role",
    "ScopeError",
    "build_scope",
]
