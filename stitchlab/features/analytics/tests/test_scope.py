"""Tests for role-based query scope resolution."""

import pytest

from stitchlab.core.exceptions import ForbiddenError
from stitchlab.features.analytics.scope import (
    AnalyticsFilters,
    CallerIdentity,
    Role,
    ScopeError,
    build_scope,
)
from stitchlab.features.rollups.models import AnalyticsDaily
from stitchlab.features.rollups.schemas import RollupDimension


class TestBuildScope:
    """Tests for build_scope."""

    def test_admin_without_filters_uses_preferred_dimension(self) -> None:
        """Unfiltered admins read tenant rows by default."""
        scope = build_scope(CallerIdentity(role=Role.ADMIN, tenant_id=1))

        assert scope.dimension == RollupDimension.TENANT
        assert scope.tenant_id == 1
        assert scope.style_ids == ()

    def test_admin_style_filter_reads_style_rows(self) -> None:
        """Style filters switch to style rows."""
        scope = build_scope(
            CallerIdentity(role=Role.MANAGER, tenant_id=1),
            AnalyticsFilters(style_ids=(3, 4)),
        )

        assert scope.dimension == RollupDimension.STYLE
        assert scope.style_ids == (3, 4)

    def test_admin_tailor_filter_reads_tailor_rows(self) -> None:
        """Tailor filters switch to tailor rows."""
        scope = build_scope(
            CallerIdentity(role=Role.ADMIN), AnalyticsFilters(tailor_ids=(9,))
        )

        assert scope.dimension == RollupDimension.TAILOR
        assert scope.tailor_ids == (9,)

    def test_vendor_is_hard_scoped(self) -> None:
        """Vendor callers only read their own vendor's style rows."""
        scope = build_scope(CallerIdentity(role=Role.VENDOR, tenant_id=1, vendor_id=7))

        assert scope.dimension == RollupDimension.STYLE
        assert scope.vendor_ids == (7,)

    def test_vendor_filter_cannot_widen_scope(self) -> None:
        """A vendor asking for another vendor still gets only its own."""
        scope = build_scope(
            CallerIdentity(role=Role.VENDOR, tenant_id=1, vendor_id=7),
            AnalyticsFilters(vendor_ids=(8,), tailor_ids=(2,)),
        )

        assert scope.vendor_ids == (7,)
        assert scope.tailor_ids == ()

    def test_vendor_style_filter_narrows_scope(self) -> None:
        """Style filters narrow a vendor scope further."""
        scope = build_scope(
            CallerIdentity(role=Role.VENDOR, vendor_id=7),
            AnalyticsFilters(style_ids=(11,)),
        )

        assert scope.vendor_ids == (7,)
        assert scope.style_ids == (11,)

    def test_tailor_is_hard_scoped(self) -> None:
        """Tailor callers only read their own tailor rows."""
        scope = build_scope(
            CallerIdentity(role=Role.TAILOR, tenant_id=1, tailor_id=4),
            AnalyticsFilters(tailor_ids=(5,), style_ids=(1,)),
        )

        assert scope.dimension == RollupDimension.TAILOR
        assert scope.tailor_ids == (4,)
        assert scope.style_ids == ()

    def test_vendor_without_vendor_id_is_rejected(self) -> None:
        """A vendor identity without a vendor id cannot be scoped."""
        with pytest.raises(ScopeError) as exc_info:
            build_scope(CallerIdentity(role=Role.VENDOR, tenant_id=1))

        assert isinstance(exc_info.value, ForbiddenError)
        assert exc_info.value.code == "SCOPE_REJECTED"
        assert exc_info.value.status_code == 403

    def test_tailor_without_tailor_id_is_rejected(self) -> None:
        """A tailor identity without a tailor id cannot be scoped."""
        with pytest.raises(ScopeError):
            build_scope(CallerIdentity(role=Role.TAILOR, tenant_id=1))


class TestForDimension:
    """Tests for re-targeting a scope at other rollup rows."""

    def test_same_dimension_is_unchanged(self) -> None:
        """Re-targeting at the current dimension returns the scope itself."""
        scope = build_scope(CallerIdentity(role=Role.VENDOR, vendor_id=7))
        assert scope.for_dimension(RollupDimension.STYLE) is scope

    def test_vendor_scope_cannot_read_tailor_rows(self) -> None:
        """Tailor rows carry no vendor, so a vendor scope reads nothing there."""
        scope = build_scope(CallerIdentity(role=Role.VENDOR, vendor_id=7))
        assert scope.for_dimension(RollupDimension.TAILOR) is None

    def test_tailor_scope_cannot_read_style_rows(self) -> None:
        """Style rows are not attributable to one tailor."""
        scope = build_scope(CallerIdentity(role=Role.TAILOR, tailor_id=4))
        assert scope.for_dimension(RollupDimension.STYLE) is None

    def test_admin_scope_moves_to_style_rows(self) -> None:
        """An unfiltered admin scope can read style rows."""
        scope = build_scope(CallerIdentity(role=Role.ADMIN, tenant_id=1))
        retargeted = scope.for_dimension(RollupDimension.STYLE)

        assert retargeted is not None
        assert retargeted.dimension == RollupDimension.STYLE
        assert retargeted.tenant_id == 1

    def test_conflicting_filters_yield_nothing(self) -> None:
        """A style-filtered scope cannot be read from tailor rows."""
        scope = build_scope(
            CallerIdentity(role=Role.ADMIN), AnalyticsFilters(style_ids=(1,))
        )
        assert scope.for_dimension(RollupDimension.TAILOR) is None


class TestConditions:
    """Tests for the WHERE clauses of a scope."""

    def test_null_tenant_matches_null_rows(self) -> None:
        """Single-tenant scopes filter on tenant_id IS NULL."""
        scope = build_scope(CallerIdentity(role=Role.ADMIN))
        clauses = [str(c) for c in scope.conditions(AnalyticsDaily)]

        assert any("tenant_id IS NULL" in clause for clause in clauses)

    def test_vendor_conditions_include_vendor_filter(self) -> None:
        """Vendor scopes always filter on vendor_id."""
        scope = build_scope(CallerIdentity(role=Role.VENDOR, tenant_id=1, vendor_id=7))
        clauses = [str(c) for c in scope.conditions(AnalyticsDaily)]

        assert any("vendor_id IN" in clause for clause in clauses)
        assert any("dimension" in clause for clause in clauses)
