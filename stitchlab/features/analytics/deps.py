"""FastAPI dependencies for caller identity and analytics filters.

Identity is asserted by the upstream authentication layer through request
headers; this service trusts it and derives its own data scope from it.
"""

from fastapi import Depends, Header, Query

from stitchlab.core.exceptions import BadRequestError, ForbiddenError
from stitchlab.features.analytics.scope import AnalyticsFilters, CallerIdentity, Role


async def get_caller_identity(
    x_user_role: str = Header(..., description="Caller role: admin, manager, vendor or tailor."),
    x_tenant_id: int | None = Header(None, description="Caller tenant id."),
    x_vendor_id: int | None = Header(None, description="Caller vendor id (vendor role)."),
    x_tailor_id: int | None = Header(None, description="Caller tailor id (tailor role)."),
    x_user_id: str | None = Header(None, description="Caller user id, for audit logs."),
) -> CallerIdentity:
    """Build the caller identity from authentication headers.

    Raises:
        BadRequestError: If the role header is not a known role.
    """
    try:
        role = Role(x_user_role.strip().lower())
    except ValueError as e:
        raise BadRequestError(
            message=f"Unknown role '{x_user_role}'",
            details={"allowed": [r.value for r in Role]},
        ) from e

    return CallerIdentity(
        role=role,
        tenant_id=x_tenant_id,
        vendor_id=x_vendor_id,
        tailor_id=x_tailor_id,
        user_id=x_user_id,
    )


async def require_privileged(
    identity: CallerIdentity = Depends(get_caller_identity),
) -> CallerIdentity:
    """Allow only admin and manager callers.

    Raises:
        ForbiddenError: For vendor and tailor callers.
    """
    if not identity.is_privileged:
        raise ForbiddenError(
            message="Only admin or manager callers may perform this operation",
            details={"role": identity.role.value},
        )
    return identity


async def get_filters(
    style_id: list[int] | None = Query(None, description="Restrict to these style ids."),
    vendor_id: list[int] | None = Query(None, description="Restrict to these vendor ids."),
    tailor_id: list[int] | None = Query(None, description="Restrict to these tailor ids."),
) -> AnalyticsFilters:
    """Collect repeated ``style_id``/``vendor_id``/``tailor_id`` query params."""
    return AnalyticsFilters(
        style_ids=tuple(style_id or ()),
        vendor_ids=tuple(vendor_id or ()),
        tailor_ids=tuple(tailor_id or ()),
    )
