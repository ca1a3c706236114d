"""Caller identity and role-based query scope.

Scope is resolved before any query runs. Vendor and tailor callers are
hard-scoped to their own id; caller-supplied filters can only narrow that
scope, never widen or replace it.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from sqlalchemy.sql.elements import ColumnElement

from stitchlab.core.exceptions import ForbiddenError
from stitchlab.core.logging import get_logger
from stitchlab.features.rollups.schemas import RollupDimension

logger = get_logger(__name__)


class Role(str, Enum):
    """Caller roles supplied by the authentication layer."""

    ADMIN = "admin"
    MANAGER = "manager"
    VENDOR = "vendor"
    TAILOR = "tailor"


PRIVILEGED_ROLES = frozenset({Role.ADMIN, Role.MANAGER})


class ScopeError(ForbiddenError):
    """Caller identity cannot be turned into a data scope."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message=message, code="SCOPE_REJECTED", details=details)


@dataclass(frozen=True)
class CallerIdentity:
    """Identity asserted by the upstream authentication layer."""

    role: Role
    tenant_id: int | None = None
    vendor_id: int | None = None
    tailor_id: int | None = None
    user_id: str | None = None

    @property
    def is_privileged(self) -> bool:
        return self.role in PRIVILEGED_ROLES


@dataclass(frozen=True)
class AnalyticsFilters:
    """Optional caller filters. Empty tuples mean "no filter"."""

    style_ids: tuple[int, ...] = ()
    vendor_ids: tuple[int, ...] = ()
    tailor_ids: tuple[int, ...] = ()


@dataclass(frozen=True)
class QueryScope:
    """Resolved filter over rollup rows.

    Attributes:
        tenant_id: Tenant to read; None reads single-tenant rows (NULL tenant).
        dimension: Which rollup rows to read (tenant, style or tailor rows).
        style_ids: Restrict style rows to these styles.
        vendor_ids: Restrict style rows to these vendors.
        tailor_ids: Restrict tailor rows to these tailors.
        role: Role the scope was built for.
    """

    tenant_id: int | None
    dimension: RollupDimension
    style_ids: tuple[int, ...] = field(default=())
    vendor_ids: tuple[int, ...] = field(default=())
    tailor_ids: tuple[int, ...] = field(default=())
    role: Role = Role.ADMIN

    def conditions(self, model: Any) -> list[ColumnElement[bool]]:
        """WHERE clauses selecting this scope's rows from a rollup model."""
        clauses: list[ColumnElement[bool]] = [model.dimension == self.dimension.value]
        if self.tenant_id is None:
            clauses.append(model.tenant_id.is_(None))
        else:
            clauses.append(model.tenant_id == self.tenant_id)
        if self.style_ids:
            clauses.append(model.style_id.in_(self.style_ids))
        if self.vendor_ids:
            clauses.append(model.vendor_id.in_(self.vendor_ids))
        if self.tailor_ids:
            clauses.append(model.tailor_id.in_(self.tailor_ids))
        return clauses

    def for_dimension(self, dimension: RollupDimension) -> QueryScope | None:
        """Re-target the scope at another row dimension.

        Hard-scoped roles keep their restriction: a vendor scope cannot be read
        from tailor or tenant rows, and a tailor scope only from tailor rows.

        Returns:
            The re-targeted scope, or None when the restriction cannot be
            expressed on ``dimension`` rows (an empty result).
        """
        if dimension == self.dimension:
            return self

        if self.role == Role.VENDOR or self.role == Role.TAILOR:
            return None

        if dimension == RollupDimension.STYLE:
            if self.tailor_ids:
                return None
            return replace(self, dimension=dimension)
        if dimension == RollupDimension.TAILOR:
            if self.style_ids or self.vendor_ids:
                return None
            return replace(self, dimension=dimension)
        if self.style_ids or self.vendor_ids or self.tailor_ids:
            return None
        return replace(self, dimension=dimension)


def build_scope(
    identity: CallerIdentity,
    filters: AnalyticsFilters | None = None,
    preferred: RollupDimension = RollupDimension.TENANT,
) -> QueryScope:
    """Resolve a caller identity and filters into a query scope.

    Args:
        identity: Caller identity.
        filters: Optional caller filters.
        preferred: Row dimension to read when no filter forces one.

    Returns:
        The query scope.

    Raises:
        ScopeError: If a vendor or tailor caller has no bound vendor/tailor id.
    """
    filters = filters or AnalyticsFilters()

    if identity.role == Role.VENDOR:
        if identity.vendor_id is None:
            logger.warning(
                "analytics.scope_rejected", role=identity.role.value, reason="no_vendor_id"
            )
            raise ScopeError(
                "Vendor caller has no vendor id", details={"role": identity.role.value}
            )
        # Caller vendor_ids/tailor_ids are ignored; only style narrowing applies
        return QueryScope(
            tenant_id=identity.tenant_id,
            dimension=RollupDimension.STYLE,
            style_ids=filters.style_ids,
            vendor_ids=(identity.vendor_id,),
            role=identity.role,
        )

    if identity.role == Role.TAILOR:
        if identity.tailor_id is None:
            logger.warning(
                "analytics.scope_rejected", role=identity.role.value, reason="no_tailor_id"
            )
            raise ScopeError(
                "Tailor caller has no tailor id", details={"role": identity.role.value}
            )
        return QueryScope(
            tenant_id=identity.tenant_id,
            dimension=RollupDimension.TAILOR,
            tailor_ids=(identity.tailor_id,),
            role=identity.role,
        )

    if filters.tailor_ids:
        return QueryScope(
            tenant_id=identity.tenant_id,
            dimension=RollupDimension.TAILOR,
            tailor_ids=filters.tailor_ids,
            role=identity.role,
        )
    if filters.style_ids or filters.vendor_ids:
        return QueryScope(
            tenant_id=identity.tenant_id,
            dimension=RollupDimension.STYLE,
            style_ids=filters.style_ids,
            vendor_ids=filters.vendor_ids,
            role=identity.role,
        )
    return QueryScope(tenant_id=identity.tenant_id, dimension=preferred, role=identity.role)
